"""
MODULE OVERVIEW:
The Channel Manager: the one persistent Socket.IO connection to the quiz server.

WHAT IS HAPPENING HERE:
We use python-socketio's AsyncClient for the wire protocol but switch its built-in
reconnection off. Reconnection is ours: `with_reconnect` drives a loop that never
gives up, backs off exponentially on consecutive failures, and after every
successful (re)connect re-issues `join_session` for the remembered identity.
That rejoin is the only thing ever resent. Commands sent while the channel is down
are dropped, not queued, so a lost answer is never replayed behind the user's back.

Inbound events are not handled here. Every named event is published, in arrival
order, to the EventDispatcher.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, List, Optional

import socketio
from loguru import logger
from socketio import exceptions as sio_exceptions

from quizlive.shared.client_utils import make_client_stats, stamp_event, with_reconnect
from quizlive.shared.config import Settings, settings as default_settings
from quizlive.shared.events import EventDispatcher
from quizlive.shared.models import ConnectionState, SessionIdentity

StateCallback = Callable[[ConnectionState], Awaitable[None]]

class ChannelManager:
    def __init__(
        self,
        dispatcher: EventDispatcher,
        cfg: Settings = default_settings,
        transport: Any = None,
        client_id: str = "player",
    ):
        self.dispatcher = dispatcher
        self.client_id = client_id
        self.server_url = cfg.server_url
        self.transports = list(cfg.TRANSPORTS)
        self.base_delay_s = cfg.RECONNECT_BASE_DELAY_S
        self.max_delay_s = cfg.RECONNECT_MAX_DELAY_S
        self.connect_timeout_s = cfg.CONNECT_TIMEOUT_S

        self._transport = transport or socketio.AsyncClient(reconnection=False, logger=False)
        self._transport.on("*", self._on_any_event)

        self.state = ConnectionState.DISCONNECTED
        # Copy of the persisted identity, replayed as `join_session` on every connect
        self.identity: Optional[SessionIdentity] = None
        self.stats = make_client_stats()

        self._state_callbacks: List[StateCallback] = []
        self._runner: Optional[asyncio.Task] = None
        self._closing = False

    @property
    def reconnect_count(self): return self.stats["reconnect_count"]

    @property
    def events_received(self): return self.stats["events_received"]

    def subscribe_state(self, callback: StateCallback) -> None:
        self._state_callbacks.append(callback)

    def unsubscribe_state(self, callback: StateCallback) -> None:
        if callback in self._state_callbacks:
            self._state_callbacks.remove(callback)

    async def _set_state(self, state: ConnectionState) -> None:
        if state is self.state:
            return
        previous, self.state = self.state, state
        logger.info(f"client_id={self.client_id} event=state from={previous.value} to={state.value}")
        for callback in list(self._state_callbacks):
            try:
                await callback(state)
            except Exception as e:
                logger.error(f"client_id={self.client_id} state callback error: {e}")

    # ==========================
    # LIFECYCLE
    # ==========================
    async def connect(self) -> None:
        if self._runner is not None and not self._runner.done():
            return
        self._closing = False
        self._runner = asyncio.create_task(self._run())

    async def _run(self) -> None:
        try:
            await with_reconnect(
                self._session,
                self.stats,
                should_stop=lambda: self._closing,
                base_delay_s=self.base_delay_s,
                max_delay_s=self.max_delay_s,
                client_id=self.client_id,
            )
        except asyncio.CancelledError:
            pass
        finally:
            await self._set_state(ConnectionState.DISCONNECTED)

    async def _session(self) -> None:
        """One connection lifetime. Raises if the connection cannot be established."""
        await self._set_state(ConnectionState.CONNECTING)
        try:
            await self._transport.connect(
                self.server_url,
                transports=self.transports,
                wait_timeout=self.connect_timeout_s,
            )
        except (sio_exceptions.ConnectionError, OSError) as e:
            await self._set_state(ConnectionState.DISCONNECTED)
            raise ConnectionError(str(e)) from e

        self.stats["connected_at"] = datetime.now(timezone.utc).isoformat()
        await self._set_state(ConnectionState.CONNECTED)
        await self._rejoin()

        # Returns once the server or the network drops us
        await self._transport.wait()
        await self._set_state(ConnectionState.DISCONNECTED)
        if not self._closing:
            logger.warning(f"client_id={self.client_id} event=disconnect reason=unexpected")

    async def _rejoin(self) -> None:
        if self.identity is None:
            return
        logger.info(
            f"client_id={self.client_id} event=rejoin "
            f"session={self.identity.session_code} name={self.identity.participant_name}"
        )
        await self.send("join_session", {
            "session_id": self.identity.session_code,
            "player_name": self.identity.participant_name,
        })

    async def close(self) -> None:
        self._closing = True
        if getattr(self._transport, "connected", False):
            try:
                await self._transport.disconnect()
            except (sio_exceptions.SocketIOError, OSError) as e:
                logger.debug(f"client_id={self.client_id} event=close error='{e}'")
        if self._runner is not None and not self._runner.done():
            self._runner.cancel()
            try:
                await self._runner
            except asyncio.CancelledError:
                pass
        self._runner = None
        await self._set_state(ConnectionState.DISCONNECTED)

    # ==========================
    # TRAFFIC
    # ==========================
    async def send(self, command: str, payload: dict) -> bool:
        """Fire-and-forget. Returns False when the command was dropped."""
        if self.state is not ConnectionState.CONNECTED:
            logger.debug(f"client_id={self.client_id} command={command} dropped reason={self.state.value}")
            return False
        try:
            await self._transport.emit(command, payload)
        except (sio_exceptions.SocketIOError, OSError) as e:
            logger.warning(f"client_id={self.client_id} command={command} dropped reason='{e}'")
            return False
        logger.debug(f"client_id={self.client_id} command={command} payload={payload}")
        return True

    async def _on_any_event(self, event: str, *args) -> None:
        payload = args[0] if args else {}
        stamp_event(self.stats, payload)
        await self.dispatcher.publish(event, payload)
