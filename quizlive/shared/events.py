"""
MODULE OVERVIEW:
This module provides the event dispatcher that sits between the channel and
everything that reacts to server events.

WHAT IS HAPPENING HERE:
Socket.IO hands us named events ("new_question", "timer_update"...). Rather than
letting each screen grab a single callback slot on the socket (where a second
listener silently replaces the first), the ChannelManager publishes here and any
number of consumers subscribe by name. Each subscription gets its own token, so a
screen tearing down removes only its own handlers.

The ChannelManager publishes here -> GameStateMachine / HostConsole subscribe here.
"""

import inspect
import itertools
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Union

from loguru import logger

Handler = Callable[[dict], Union[None, Awaitable[None]]]

@dataclass(frozen=True)
class SubscriptionToken:
    event_name: str
    serial: int

class EventDispatcher:
    """
    A pub/sub registry keyed by event name with ordered, multi-listener fan-out.
    """
    def __init__(self):
        self._handlers: Dict[str, List[tuple[SubscriptionToken, Handler]]] = {}
        self._serials = itertools.count(1)

    def subscribe(self, event_name: str, handler: Handler) -> SubscriptionToken:
        token = SubscriptionToken(event_name, next(self._serials))
        self._handlers.setdefault(event_name, []).append((token, handler))
        return token

    def unsubscribe(self, token: SubscriptionToken) -> None:
        entries = self._handlers.get(token.event_name)
        if not entries:
            return
        entries[:] = [(t, h) for t, h in entries if t != token]
        if not entries:
            del self._handlers[token.event_name]

    def unsubscribe_all(self, tokens: Iterable[SubscriptionToken]) -> None:
        for token in list(tokens):
            self.unsubscribe(token)

    def handler_count(self, event_name: str) -> int:
        return len(self._handlers.get(event_name, []))

    async def publish(self, event_name: str, payload: Any) -> None:
        # Snapshot: a handler that unsubscribes mid-delivery must not skip its neighbours
        for token, handler in list(self._handlers.get(event_name, [])):
            try:
                result = handler(payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                logger.error(f"event={event_name} subscription={token.serial} handler error: {e}")
