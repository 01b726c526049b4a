"""
KeySender — deliver synthetic key events to the operating system.

This module is the input-injection collaborator: it knows how to turn a
friendly key name (``"x"``, ``"up"``, ``"enter"``, ``"f5"`` …) into a
low-level key down/up event.  On Linux it prefers the ``python-uinput``
backend, which works regardless of the display server; elsewhere, or
when ``/dev/uinput`` is not accessible, it falls back to ``pynput``.
In dry-run mode (``send_enabled=False``) no backend is opened and
events are only logged.

Failures are not swallowed: a backend that cannot be opened when
sending is enabled, or an event that cannot be delivered, raises
:class:`~pitchkeys.errors.InjectionError`, which stops the pipeline.
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Optional

from .errors import ConfigError, InjectionError

logger = logging.getLogger(__name__)

# Mapping of friendly key names to (uinput constant name, pynput key name)
SPECIAL_KEYS: dict[str, tuple[str, str]] = {
    "space": ("KEY_SPACE", "space"),
    "enter": ("KEY_ENTER", "enter"),
    "return": ("KEY_ENTER", "enter"),
    "tab": ("KEY_TAB", "tab"),
    "esc": ("KEY_ESC", "esc"),
    "escape": ("KEY_ESC", "esc"),
    "left": ("KEY_LEFT", "left"),
    "right": ("KEY_RIGHT", "right"),
    "up": ("KEY_UP", "up"),
    "down": ("KEY_DOWN", "down"),
    "home": ("KEY_HOME", "home"),
    "end": ("KEY_END", "end"),
    "pageup": ("KEY_PAGEUP", "page_up"),
    "pagedown": ("KEY_PAGEDOWN", "page_down"),
    "backspace": ("KEY_BACKSPACE", "backspace"),
    "delete": ("KEY_DELETE", "delete"),
    "insert": ("KEY_INSERT", "insert"),
    "capslock": ("KEY_CAPSLOCK", "caps_lock"),
    "shift": ("KEY_LEFTSHIFT", "shift"),
    "ctrl": ("KEY_LEFTCTRL", "ctrl"),
    "alt": ("KEY_LEFTALT", "alt"),
}
for _i in range(1, 13):
    SPECIAL_KEYS[f"f{_i}"] = (f"KEY_F{_i}", f"f{_i}")
del _i

BACKENDS = ("auto", "uinput", "pynput", "none")


def normalise_key_name(name: str) -> str:
    return name.strip().lower()


def validate_key_name(name: str) -> str:
    """Return the normalised form of ``name`` or raise :class:`ConfigError`.

    Accepted names are single letters or digits and the names in
    :data:`SPECIAL_KEYS`.
    """
    key = normalise_key_name(name) if isinstance(name, str) else ""
    if len(key) == 1 and key.isascii() and key.isalnum():
        return key
    if key in SPECIAL_KEYS:
        return key
    raise ConfigError(f"unknown key name {name!r}")


def _uinput_code(uinput: Any, name: str) -> Any:
    if len(name) == 1:
        return getattr(uinput, f"KEY_{name.upper()}")
    return getattr(uinput, SPECIAL_KEYS[name][0])


def _pynput_key(name: str) -> Any:
    if len(name) == 1:
        return name
    from pynput.keyboard import Key  # type: ignore

    return getattr(Key, SPECIAL_KEYS[name][1])


class KeySender:
    """
    Send key down/up events for a fixed set of friendly key names.

    Parameters
    ----------
    keys : Iterable[str]
        Every key name this sender will be asked to press.  Names are
        validated up front so that a typo in the key table is reported
        at startup rather than when the note is first sung.
    send_enabled : bool, optional
        When ``False`` no backend is opened and events are only logged.
        Use this for "dry run" sessions.  The default is ``True``.
    backend : str, optional
        ``"auto"`` (default) tries uinput then pynput.  ``"uinput"`` and
        ``"pynput"`` force a backend; ``"none"`` is the same as
        ``send_enabled=False``.

    Raises
    ------
    ConfigError
        A key name is unknown, or ``backend`` is not recognised.
    InjectionError
        Sending is enabled and no backend could be opened.
    """

    def __init__(
        self,
        keys: Iterable[str],
        send_enabled: bool = True,
        backend: str = "auto",
    ) -> None:
        if backend not in BACKENDS:
            raise ConfigError(f"unknown injection backend {backend!r}")
        self.keys: frozenset[str] = frozenset(validate_key_name(k) for k in keys)
        self.send_enabled: bool = bool(send_enabled) and backend != "none"
        self.backend: str = "none"
        self._dev: Any = None
        self._ctrl: Any = None
        self._uinput: Any = None

        if not self.send_enabled:
            logger.info("Key sending disabled; key events will only be logged")
            return

        reason = ""
        if backend in ("auto", "uinput"):
            reason = self._setup_uinput()
            if self.backend == "uinput":
                return
            if backend == "uinput":
                raise InjectionError(f"uinput backend unavailable: {reason}")
            logger.warning("%s, falling back to pynput", reason)
        self._setup_pynput()

    # ------------------------------------------------------------------
    def _setup_uinput(self) -> str:
        """Try to open a uinput device; return a reason string on failure."""
        try:
            import uinput  # type: ignore
        except ImportError:
            return "python-uinput not found"

        codes = [_uinput_code(uinput, k) for k in sorted(self.keys)]
        try:
            self._dev = uinput.Device(codes, name="PitchKeys")
        except PermissionError:
            return (
                "cannot open /dev/uinput (permission denied; add a udev rule "
                'KERNEL=="uinput", MODE="0660", GROUP="input" and join the input group)'
            )
        except OSError as exc:
            return f"uinput setup failed ({exc})"
        self._uinput = uinput
        self.backend = "uinput"
        logger.info("Sending keys through uinput")
        return ""

    def _setup_pynput(self) -> None:
        try:
            from pynput.keyboard import Controller  # type: ignore
        except ImportError as exc:
            raise InjectionError(f"no key injection backend available: {exc}") from exc
        self._ctrl = Controller()
        self.backend = "pynput"
        logger.info("Sending keys through pynput")

    # ------------------------------------------------------------------
    def _emit(self, key: str, down: bool) -> None:
        if self.backend == "closed":
            raise InjectionError("key sender is closed")
        name = normalise_key_name(key)
        if name not in self.keys:
            raise ConfigError(f"key {key!r} was not registered with this sender")
        if self.backend == "none":
            logger.info("[dry-run] %s %s", "press" if down else "release", name)
            return
        try:
            if self.backend == "uinput":
                self._dev.emit(_uinput_code(self._uinput, name), 1 if down else 0)
            elif down:
                self._ctrl.press(_pynput_key(name))
            else:
                self._ctrl.release(_pynput_key(name))
        except Exception as exc:
            raise InjectionError(
                f"failed to {'press' if down else 'release'} {name!r} via {self.backend}: {exc}"
            ) from exc

    def key_down(self, key: str) -> None:
        self._emit(key, True)

    def key_up(self, key: str) -> None:
        self._emit(key, False)

    def close(self) -> None:
        """Release the backend.  Further events are rejected."""
        if self._dev is not None:
            try:
                self._dev.destroy()
            except OSError as exc:
                raise InjectionError(f"failed to close uinput device: {exc}") from exc
            finally:
                self._dev = None
        self._ctrl = None
        if self.backend != "none":
            logger.debug("Closed %s key sender", self.backend)
        self.backend = "closed"


__all__ = [
    "BACKENDS",
    "SPECIAL_KEYS",
    "KeySender",
    "normalise_key_name",
    "validate_key_name",
]
