"""Event emitter: the only component that sends key events.

:class:`EventEmitter` executes the press/release decisions produced by
:class:`~pitchkeys.debounce.DebounceController` through an injection
collaborator (normally :class:`~pitchkeys.key_sender.KeySender`).  It
performs no deduplication, but it does track which keys it has pressed
and refuses to press a held key twice or release a key it never
pressed; either would mean the debounce logic is broken, so an
:class:`~pitchkeys.errors.InvariantViolation` is raised.
"""

from __future__ import annotations

import logging
from typing import AbstractSet, Iterable, Protocol

from .debounce import KeyEvent
from .errors import InvariantViolation

logger = logging.getLogger(__name__)


class KeyInjector(Protocol):
    def key_down(self, key: str) -> None: ...

    def key_up(self, key: str) -> None: ...

    def close(self) -> None: ...


class EventEmitter:
    def __init__(self, injector: KeyInjector) -> None:
        self.injector = injector
        self._held: set[str] = set()
        self.presses = 0
        self.releases = 0

    @property
    def held_keys(self) -> AbstractSet[str]:
        return frozenset(self._held)

    def press(self, key: str) -> None:
        if key in self._held:
            raise InvariantViolation(f"press of '{key}' while it is already held")
        self.injector.key_down(key)
        self._held.add(key)
        self.presses += 1
        logger.info("Action: pressed key '%s'", key)

    def release(self, key: str) -> None:
        if key not in self._held:
            raise InvariantViolation(f"release of '{key}' which is not held")
        # Forget the key even if the backend fails so shutdown does not
        # try to release it a second time.
        self._held.discard(key)
        self.injector.key_up(key)
        self.releases += 1
        logger.info("Action: released key '%s'", key)

    def emit(self, event: KeyEvent) -> None:
        if event.action == "press":
            self.press(event.key)
        elif event.action == "release":
            self.release(event.key)
        else:
            raise InvariantViolation(f"unknown key action {event.action!r}")

    def apply(self, events: Iterable[KeyEvent]) -> None:
        """Emit ``events`` in order."""
        for event in events:
            self.emit(event)

    def close(self) -> None:
        """Close the injection collaborator.

        Every key must have been released first; a key still held here
        would stay stuck down in the target application.
        """
        stuck = sorted(self._held)
        self.injector.close()
        if stuck:
            raise InvariantViolation(
                f"emitter closed with keys still held: {', '.join(stuck)}"
            )


__all__ = ["EventEmitter", "KeyInjector"]
