# summarizer_auth/services/identity/events.py
from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class Subscription:
    """subscribe() 的回傳值；呼叫 unsubscribe() 後就不會再收到事件（可重複呼叫）。"""

    def __init__(self, unsubscribe: Callable[[], None]) -> None:
        self._unsubscribe = unsubscribe
        self.active = True

    def unsubscribe(self) -> None:
        if not self.active:
            return
        self.active = False
        self._unsubscribe()


class EventChannel(Generic[T]):
    """
    簡單的觀察者通道。

    - 依訂閱順序、依 emit 順序同步送出，保證事件不會被重排
    - 某個 listener 拋錯只記 log，不影響其他 listener
    """

    def __init__(self, name: str) -> None:
        self._name = name
        self._listeners: list[Callable[[T], None]] = []

    def subscribe(self, listener: Callable[[T], None]) -> Subscription:
        self._listeners.append(listener)

        def _remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return Subscription(_remove)

    def emit(self, event: T) -> None:
        # 複製一份，listener 在回呼裡取消訂閱也不會影響這一輪
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Listener on %s channel failed", self._name)

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
