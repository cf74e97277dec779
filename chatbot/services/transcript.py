"""Local projection of the live chat history subscription."""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Dict, Iterable, List, Set

from ..models import ChatMessage

logger = logging.getLogger(__name__)

Listener = Callable[[List[ChatMessage]], None]


class TranscriptView:
    """What the user currently sees.

    Only ever fed by store snapshots. ``clear`` hides the messages known at
    that point (plus any ids passed in) without touching the store, so later
    snapshots that re-deliver them stay hidden.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._messages: List[ChatMessage] = []
        self._hidden: Set[str] = set()
        self._listeners: Dict[int, Listener] = {}
        self._ids = itertools.count()

    @property
    def messages(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._messages)

    def apply_snapshot(self, messages: Iterable[ChatMessage]) -> None:
        with self._lock:
            self._messages = [m for m in messages if m.id not in self._hidden]
            current = list(self._messages)
        self._notify(current)

    def clear(self, also_hide: Iterable[str] = ()) -> None:
        with self._lock:
            self._hidden.update(m.id for m in self._messages if m.id)
            self._hidden.update(i for i in also_hide if i)
            self._messages = []
        logger.info("Transcript view cleared")
        self._notify([])

    def listen(self, listener: Listener) -> Callable[[], None]:
        """Register *listener* for view changes; returns the unsubscribe callable."""
        with self._lock:
            token = next(self._ids)
            self._listeners[token] = listener

        def _unsubscribe() -> None:
            with self._lock:
                self._listeners.pop(token, None)

        return _unsubscribe

    def _notify(self, messages: List[ChatMessage]) -> None:
        with self._lock:
            listeners = list(self._listeners.values())
        for listener in listeners:
            try:
                listener(list(messages))
            except Exception as exc:
                logger.error("Transcript listener failed: %s", exc, exc_info=True)
