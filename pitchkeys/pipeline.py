"""
PitchKeyPipeline: real-time audio capture wired to key emission.

The pipeline connects the components in this order::

    sounddevice callback ─► PitchWindower ─► mailbox ─► worker thread
        worker: KeyMappingTable.classify ─► DebounceController ─► EventEmitter

The PortAudio callback is the only producer.  It windows and analyses
the incoming audio and posts each result into a single-slot mailbox.
If the worker has not yet collected the previous result it is replaced,
because only the latest vocal state matters.  A single worker thread
consumes results in arrival order, so the active-key state inside the
:class:`~pitchkeys.debounce.DebounceController` is only ever touched
from that thread.  With ``inline=True`` the consumer path runs directly
inside the callback instead and no worker thread is started.

Shutdown (``stop()``) aborts the stream first so no more audio is
consumed.  The debounce controller then releases any held key, and
finally the injection backend is closed.  Audio device failures and
injection failures are fatal.  They stop the pipeline through the same
path, so a key is never left stuck down.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Callable, Optional, Union

import numpy as np
import sounddevice as sd

from .config import PitchKeysConfig
from .constants import BLOCK_SIZE
from .debounce import DebounceController, KeyEvent
from .emitter import EventEmitter, KeyInjector
from .errors import AudioDeviceError, PitchKeysError
from .key_sender import KeySender
from .pitch import PitchEstimate, PitchEstimator, make_estimator
from .windowing import PitchWindower

logger = logging.getLogger(__name__)


def default_sample_rate(device: Optional[Union[int, str]] = None) -> int:
    """Return the default sample rate of the input ``device``.

    Raises:
        AudioDeviceError: if there is no such input device.
    """
    try:
        info = sd.query_devices(device, "input")
    except Exception as exc:
        raise AudioDeviceError(
            "No input device available. Please ensure a microphone is connected "
            f"and recognized by your system ({exc})"
        ) from exc
    return int(info["default_samplerate"])


class PitchKeyPipeline:
    """Capture audio, detect pitch and drive key events until stopped.

    Args:
        config: Loaded configuration.
        injector: Injection collaborator.  Defaults to a
            :class:`~pitchkeys.key_sender.KeySender` for the table's keys.
        estimator: Pitch estimator.  Defaults to the one named by
            ``config.audio.pitch_method``.
        sample_rate: Capture rate in hertz.  Defaults to the configured
            rate, else the input device's default rate.
        send_enabled: ``False`` for a dry run (only used when the default
            injector is created).
        inline: Run the consumer path inside the audio callback instead
            of on a worker thread.
        block_size: Frames per PortAudio callback.
        clock: Monotonic clock used by the debounce controller.
    """

    def __init__(
        self,
        config: PitchKeysConfig,
        *,
        injector: Optional[KeyInjector] = None,
        estimator: Optional[PitchEstimator] = None,
        sample_rate: Optional[int] = None,
        send_enabled: bool = True,
        inline: bool = False,
        block_size: int = BLOCK_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.config = config
        self.table = config.keys
        audio = config.audio
        self.sample_rate: int = (
            sample_rate or audio.sample_rate or default_sample_rate(audio.device)
        )
        self.block_size = block_size
        self.inline = inline

        if estimator is None:
            estimator = make_estimator(audio.pitch_method, audio.window_size, self.sample_rate)
        if injector is None:
            injector = KeySender(self.table.keys, send_enabled=send_enabled)
        self.windower = PitchWindower.from_settings(
            estimator, self.sample_rate, audio, config.detection
        )
        self.controller = DebounceController(config.debounce, clock=clock)
        self.emitter = EventEmitter(injector)

        # Single-slot mailbox between the audio callback and the worker
        self._mailbox: queue.Queue[tuple[Optional[PitchEstimate]]] = queue.Queue(maxsize=1)
        self._stop_event = threading.Event()
        self._lock = threading.Lock()
        self._stopping = False
        self._closed = False
        self._error: Optional[PitchKeysError] = None
        self._worker: Optional[threading.Thread] = None
        self.stream: Optional[sd.InputStream] = None
        self.cycles = 0
        self.dropped = 0

    # ─── Consumer path ──────────────────────────────────────────────────
    def process_estimate(self, estimate: Optional[PitchEstimate]) -> list[KeyEvent]:
        """Run one classification cycle and emit the resulting events."""
        if estimate is None:
            candidate = None
        else:
            candidate = self.table.classify(estimate.frequency)
            logger.debug(
                "Input: %.2f Hz (clarity %.2f) -> %s",
                estimate.frequency,
                estimate.clarity,
                candidate or "no key",
            )
        events = self.controller.update(candidate)
        self.emitter.apply(events)
        self.cycles += 1
        return events

    def feed(self, samples: np.ndarray) -> list[KeyEvent]:
        """Window, analyse and process ``samples`` synchronously.

        Convenience for offline use and tests; no device is involved.
        """
        events: list[KeyEvent] = []
        for estimate in self.windower.push(samples):
            events.extend(self.process_estimate(estimate))
        return events

    def _consume(self) -> None:
        try:
            while not self._stop_event.is_set():
                try:
                    (estimate,) = self._mailbox.get(timeout=0.1)
                except queue.Empty:
                    continue
                self.process_estimate(estimate)
        except PitchKeysError as exc:
            self._fail(exc)
        finally:
            self._release_held()

    def _release_held(self) -> None:
        """Emit the final release for a held key, if any."""
        events = self.controller.shutdown()
        # After a failed emit the controller may be ahead of the emitter;
        # only release what was actually pressed.
        events = [e for e in events if e.key in self.emitter.held_keys]
        if not events:
            return
        logger.info("Shutting down: releasing held key '%s'", events[0].key)
        try:
            self.emitter.apply(events)
        except PitchKeysError as exc:
            self._fail(exc)

    # ─── Producer path ──────────────────────────────────────────────────
    def _publish(self, estimate: Optional[PitchEstimate]) -> None:
        try:
            self._mailbox.put_nowait((estimate,))
            return
        except queue.Full:
            pass
        # Consumer fell behind: replace the stale estimate
        try:
            self._mailbox.get_nowait()
            self.dropped += 1
            logger.warning("Consumer behind; dropped stale pitch estimate (%d total)", self.dropped)
        except queue.Empty:
            pass
        self._mailbox.put_nowait((estimate,))

    def _callback(self, indata: np.ndarray, frames: int, _time, status) -> None:
        if status:
            logger.warning("Audio stream status: %s", status)
        if self._stop_event.is_set():
            raise sd.CallbackStop
        try:
            for estimate in self.windower.push(indata):
                if self.inline:
                    self.process_estimate(estimate)
                else:
                    self._publish(estimate)
        except PitchKeysError as exc:
            self._fail(exc)
            raise sd.CallbackAbort from exc
        except Exception as exc:
            self._fail(AudioDeviceError(f"audio processing failed: {exc}"))
            raise sd.CallbackAbort from exc

    def _on_finished(self) -> None:
        if not self._stopping and not self._stop_event.is_set():
            self._fail(AudioDeviceError("audio stream ended unexpectedly"))

    def _fail(self, error: PitchKeysError) -> None:
        with self._lock:
            if self._error is None:
                self._error = error
                logger.error("Fatal: %s", error)
        self._stop_event.set()

    # ─── Lifecycle ──────────────────────────────────────────────────────
    @property
    def error(self) -> Optional[PitchKeysError]:
        return self._error

    def start(self) -> None:
        """Open the input stream and start the worker thread.

        Raises:
            AudioDeviceError: if the input stream cannot be opened.
        """
        if self.stream is not None or self._closed:
            raise RuntimeError("pipeline can only be started once")
        if not self.inline:
            self._worker = threading.Thread(
                target=self._consume, name="pitchkeys-consumer", daemon=True
            )
            self._worker.start()
        audio = self.config.audio
        try:
            self.stream = sd.InputStream(
                device=audio.device,
                channels=audio.channels,
                samplerate=self.sample_rate,
                blocksize=self.block_size,
                dtype="float32",
                callback=self._callback,
                finished_callback=self._on_finished,
            )
            self.stream.start()
        except Exception as exc:
            error = AudioDeviceError(f"cannot open audio input: {exc}")
            self._fail(error)
            self.stop()
            raise error from exc
        logger.info(
            "Audio stream started (%d Hz, window %d, hop %d)",
            self.sample_rate,
            audio.window_size,
            audio.hop_size,
        )

    def _close_stream(self) -> None:
        stream, self.stream = self.stream, None
        if stream is None:
            return
        try:
            stream.abort()
            stream.close()
        except Exception as exc:
            logger.warning("Error while closing audio stream: %s", exc)

    def stop(self) -> None:
        """Stop audio, release any held key and close the injector.

        Safe to call more than once and from any thread except the
        worker itself.
        """
        with self._lock:
            if self._closed:
                return
            self._closed = True
            self._stopping = True
        self._close_stream()
        self._stop_event.set()
        if self._worker is not None:
            self._worker.join()
            self._worker = None
        # No-op if the worker already released; covers inline mode
        self._release_held()
        try:
            self.emitter.close()
        except PitchKeysError as exc:
            self._fail(exc)
        logger.info(
            "Pipeline stopped after %d cycles (%d presses, %d releases)",
            self.cycles,
            self.emitter.presses,
            self.emitter.releases,
        )

    def wait(self, timeout: Optional[float] = None) -> bool:
        """Block until the pipeline is asked to stop or fails."""
        return self._stop_event.wait(timeout)

    def run(self) -> None:
        """Start, block until stopped or failed, then tear down.

        Raises:
            AudioDeviceError, InjectionError: the fatal error that ended
                the session, re-raised after the final release.
        """
        self.start()
        try:
            while not self.wait(0.1):
                pass
        finally:
            self.stop()
        if self._error is not None:
            raise self._error

    def __enter__(self) -> "PitchKeyPipeline":
        self.start()
        return self

    def __exit__(self, *_exc) -> None:
        self.stop()


__all__ = ["PitchKeyPipeline", "default_sample_rate"]
