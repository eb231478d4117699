"""reqflow.orchestration.observable

The contract toward whatever renders engine state: ``subscribe(listener)``
returns an unsubscribe function, and listeners are called synchronously with a
frozen snapshot on every transition.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

Listener = Callable[[Any], None]


class Observable:
    _log: logging.Logger

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    @property
    def state(self) -> Any:
        raise NotImplementedError

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def _unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.state
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001 - observer isolation boundary
                self._log.exception("listener_failed")

    def _invoke_callback(self, name: str, callback: Callable[[Any], Any] | None, arg: Any) -> None:
        if callback is None:
            return
        try:
            callback(arg)
        except Exception:  # noqa: BLE001 - caller callbacks never change engine state
            self._log.exception("callback_failed", extra={"callback": name})
