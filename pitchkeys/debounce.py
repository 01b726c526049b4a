"""Hysteresis/debounce state machine between classifier and emitter.

Raw per-window classifications are noisy: a note sung near an interval
boundary, or a wobble in the voice, makes the classifier flicker
between neighbouring keys (or between a key and nothing) many times a
second.  :class:`DebounceController` turns that stream of candidates
into clean, edge-triggered press and release decisions.

The controller has two states, ``Idle`` and ``Holding(key)``:

* From ``Idle`` a key must be the candidate for ``min_sustain_cycles``
  consecutive cycles before it is pressed.
* While ``Holding(key)`` the same candidate keeps the key down and emits
  nothing.
* A different candidate (another key or ``None``) must persist for
  ``release_confirm_cycles`` consecutive cycles, and the key must have
  been down for at least ``min_hold_seconds``, before the key is
  released.  If the new candidate is a key, the cycles already counted
  carry over towards its press, so a clean change of note releases the
  old key and presses the new one in the same cycle when the counts
  allow it.

The controller only decides; :class:`~pitchkeys.emitter.EventEmitter`
sends the events.  It is not thread-safe and must be driven from a
single thread.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Literal, Optional

from .config import DebounceSettings

logger = logging.getLogger(__name__)

Action = Literal["press", "release"]


@dataclass(frozen=True)
class KeyEvent:
    """A press or release decision for one key."""

    action: Action
    key: str

    @classmethod
    def press(cls, key: str) -> "KeyEvent":
        return cls("press", key)

    @classmethod
    def release(cls, key: str) -> "KeyEvent":
        return cls("release", key)

    def __str__(self) -> str:
        return f"{self.action}({self.key})"


class DebounceController:
    """Track the active key across analysis cycles.

    Args:
        settings: Cycle counts and minimum hold duration.
        clock: Monotonic time source in seconds; injectable for tests.
    """

    def __init__(
        self,
        settings: Optional[DebounceSettings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or DebounceSettings()
        self._clock = clock
        # Active-key state
        self._held: Optional[str] = None
        self._held_since: float = 0.0
        # Candidate being counted towards a press (Idle) or a change (Holding)
        self._pending: Optional[str] = None
        self._count: int = 0

    # ------------------------------------------------------------------
    @property
    def held(self) -> Optional[str]:
        """The key currently held down, or ``None`` when idle."""
        return self._held

    @property
    def holding(self) -> bool:
        return self._held is not None

    @property
    def state(self) -> str:
        return f"Holding({self._held})" if self._held is not None else "Idle"

    def _count_candidate(self, candidate: Optional[str]) -> int:
        if self._count and candidate == self._pending:
            self._count += 1
        else:
            self._pending = candidate
            self._count = 1
        return self._count

    def _clear_pending(self) -> None:
        self._pending = None
        self._count = 0

    # ------------------------------------------------------------------
    def update(self, candidate: Optional[str]) -> list[KeyEvent]:
        """Advance one analysis cycle.

        Args:
            candidate: Key reported by the classifier for this cycle, or
                ``None`` for silence, low clarity or an unmapped pitch.

        Returns:
            The transitions to emit, in order: nothing, a press, a
            release, or a release followed by a press.
        """
        if self._held is None:
            return self._update_idle(candidate)
        return self._update_holding(self._held, candidate)

    def _update_idle(self, candidate: Optional[str]) -> list[KeyEvent]:
        if candidate is None:
            self._clear_pending()
            return []
        count = self._count_candidate(candidate)
        if count < self.settings.min_sustain_cycles:
            logger.debug(
                "Throttling press of '%s' (%d/%d cycles)",
                candidate,
                count,
                self.settings.min_sustain_cycles,
            )
            return []
        self._clear_pending()
        self._held = candidate
        self._held_since = self._clock()
        return [KeyEvent.press(candidate)]

    def _update_holding(self, key: str, candidate: Optional[str]) -> list[KeyEvent]:
        if candidate == key:
            if self._count:
                logger.debug("Key '%s' confirmed again; change discarded", key)
            self._clear_pending()
            return []

        count = self._count_candidate(candidate)
        if count < self.settings.release_confirm_cycles:
            logger.debug(
                "Throttling release of '%s' (%s seen %d/%d cycles)",
                key,
                candidate or "silence",
                count,
                self.settings.release_confirm_cycles,
            )
            return []
        held_for = self._clock() - self._held_since
        if held_for < self.settings.min_hold_seconds:
            logger.debug(
                "Holding '%s' for minimum duration (%.0f ms remaining)",
                key,
                (self.settings.min_hold_seconds - held_for) * 1000.0,
            )
            return []

        events = [KeyEvent.release(key)]
        self._held = None
        if candidate is None:
            self._clear_pending()
            return events
        # The change cycles already count towards pressing the new key
        if count >= self.settings.min_sustain_cycles:
            self._clear_pending()
            self._held = candidate
            self._held_since = self._clock()
            events.append(KeyEvent.press(candidate))
        return events

    def shutdown(self) -> list[KeyEvent]:
        """Return to ``Idle``, releasing the held key if there is one.

        Safe to call more than once; only the first call while holding
        produces a release.
        """
        self._clear_pending()
        if self._held is None:
            return []
        key, self._held = self._held, None
        return [KeyEvent.release(key)]

    def __repr__(self) -> str:
        return f"DebounceController(state={self.state}, settings={self.settings!r})"


__all__ = ["Action", "KeyEvent", "DebounceController"]
