import asyncio
import random
from typing import Awaitable, Callable

from socketio import exceptions as sio_exceptions
from loguru import logger
from datetime import datetime, timezone

def make_client_stats() -> dict:
    """
    Returns a fresh stats dictionary with zeroed counters.
    The ChannelManager calls this once in __init__; the dashboard reads it.
    Keys: events_received, empty_responses, reconnect_count,
          bytes_received, last_event_at, connected_at.
    """
    return {
        "events_received": 0,
        "empty_responses": 0,
        "reconnect_count": 0,
        "bytes_received": 0,
        "last_event_at": None,
        "connected_at": None,
    }

def backoff_delay(
    attempt: int,
    base_delay_s: float = 0.5,
    max_delay_s: float = 10.0,
    jitter: float | None = None,
) -> float:
    """
    Exponential backoff for the `attempt`-th consecutive failure (1-based).
    Jitter is applied before the cap so the sequence never decreases and
    never exceeds `max_delay_s`.
    """
    if jitter is None:
        jitter = random.uniform(0, 0.1)
    raw = base_delay_s * (2 ** max(attempt, 1)) * (1 + jitter)
    return min(raw, max_delay_s)

async def with_reconnect(
    connect_fn: Callable[[], Awaitable[None]],
    stats: dict,
    should_stop: Callable[[], bool],
    base_delay_s: float = 0.5,
    max_delay_s: float = 10.0,
    client_id: str = "unknown",
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """
    Wraps an async connect function with automatic reconnection that never gives up.

    `connect_fn` returns normally when an established session ends and raises when
    the connection could not be established. Only `should_stop()` ends the loop.
    """
    attempt = 0

    while not should_stop():
        try:
            await connect_fn()
            attempt = 0
            if not should_stop():
                await sleep(base_delay_s)
        except (ConnectionError, OSError, asyncio.TimeoutError, sio_exceptions.ConnectionError) as e:
            attempt += 1
            delay = backoff_delay(attempt, base_delay_s, max_delay_s)
            stats["reconnect_count"] += 1
            logger.warning(
                f"Client {client_id} Attempt {attempt} "
                f"Delay {delay:.2f}s Error {e}"
            )
            if should_stop():
                break
            await sleep(delay)

def stamp_event(stats: dict, payload) -> None:
    stats["events_received"] += 1
    stats["bytes_received"] += len(str(payload))
    stats["last_event_at"] = datetime.now(timezone.utc).isoformat()
    if not payload:
        stats["empty_responses"] += 1
