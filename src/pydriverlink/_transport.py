"""Persistent WebSocket transport.

One transport instance is one connection attempt. The connection manager
creates a fresh instance for every (re)connect and detaches the old one
so a stale socket can never drive state.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol

import aiohttp

from pydriverlink._constants import USER_AGENT
from pydriverlink._protocol import decode_frame, encode_frame
from pydriverlink._redact import redact_for_log
from pydriverlink.config import DriverLinkConfig
from pydriverlink.exceptions import DriverLinkProtocolError, DriverLinkTransportError
from pydriverlink.models.credentials import Credentials

_logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransportHandlers:
    """Callbacks a transport reports to. All are invoked on the event loop."""

    on_open: Callable[[], None]
    on_close: Callable[[str], None]
    on_event: Callable[[str, Any], None]
    on_send_failed: Callable[[str, Any], None]


class Transport(Protocol):
    """Structural transport interface.

    ``send`` must not block: it either accepts the frame (delivery order is
    call order) or raises :class:`DriverLinkTransportError`.
    """

    @property
    def is_open(self) -> bool: ...

    def open(self, handlers: TransportHandlers) -> None: ...

    def send(self, event: str, payload: Any) -> None: ...

    def close(self) -> None: ...

    def detach(self) -> None: ...


TransportFactory = Callable[[Credentials], Transport]

_Frame = tuple[str, Any, str]


class WebSocketTransport:
    """aiohttp WebSocket client speaking JSON ``{"event", "data"}`` frames."""

    def __init__(
        self,
        config: DriverLinkConfig,
        credentials: Credentials,
        *,
        session_provider: Callable[[], aiohttp.ClientSession],
    ) -> None:
        self._config = config
        self._credentials = credentials
        self._session_provider = session_provider
        self._handlers: TransportHandlers | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._outbox: asyncio.Queue[_Frame] = asyncio.Queue()
        self._in_flight: _Frame | None = None
        self._task: asyncio.Task[None] | None = None
        self._writer: asyncio.Task[None] | None = None
        self._closing = False

    @property
    def is_open(self) -> bool:
        return self._ws is not None and not self._ws.closed and not self._closing

    def open(self, handlers: TransportHandlers) -> None:
        if self._task is not None:
            raise DriverLinkTransportError("Transport already opened")
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError as exc:
            raise DriverLinkTransportError("WebSocket transport needs a running event loop") from exc
        self._handlers = handlers
        self._task = loop.create_task(self._run(), name="pydriverlink-ws")

    def send(self, event: str, payload: Any) -> None:
        if not self.is_open:
            raise DriverLinkTransportError("WebSocket is not open", event=str(event))
        frame = encode_frame(event, payload)
        self._outbox.put_nowait((str(event), payload, frame))

    def close(self) -> None:
        self._closing = True
        for task in (self._writer, self._task):
            if task is not None and not task.done():
                task.cancel()

    def detach(self) -> None:
        self._handlers = None

    # ------------------------------------------------------------------
    # Connection task
    # ------------------------------------------------------------------

    async def _connect(self) -> aiohttp.ClientWebSocketResponse:
        session = self._session_provider()
        return await session.ws_connect(
            self._config.endpoint_url,
            headers={
                "Authorization": f"Bearer {self._credentials.token}",
                "User-Agent": USER_AGENT,
            },
            params={"driverId": self._credentials.driver_id},
            heartbeat=self._config.ws_heartbeat,
        )

    async def _run(self) -> None:
        url = self._config.endpoint_url
        reason = "closed"
        ws: aiohttp.ClientWebSocketResponse | None = None
        try:
            _logger.debug("Opening WebSocket url=%s driver=%s", url, self._credentials.driver_id)
            ws = await asyncio.wait_for(self._connect(), timeout=self._config.connect_timeout)
            self._ws = ws
            self._writer = asyncio.create_task(self._write_loop(ws), name="pydriverlink-ws-writer")
            _logger.info("WebSocket connected url=%s", url)
            self._dispatch_open()

            async for msg in ws:
                if msg.type == aiohttp.WSMsgType.TEXT:
                    self._dispatch_frame(msg.data)
                elif msg.type == aiohttp.WSMsgType.ERROR:
                    reason = f"error: {ws.exception()}"
                    break
            else:
                reason = f"closed code={ws.close_code}"
        except TimeoutError:
            reason = "handshake timed out"
        except aiohttp.ClientError as exc:
            reason = f"connect failed: {exc}"
        finally:
            writer = self._writer
            if writer is not None and not writer.done():
                writer.cancel()
            self._ws = None
            if ws is not None and not ws.closed:
                try:
                    await ws.close()
                except Exception:
                    _logger.debug("WebSocket close failed", exc_info=True)
            if not self._closing:
                self._closing = True
                self._hand_back_pending()
                _logger.info("WebSocket disconnected url=%s reason=%s", url, reason)
                self._dispatch_close(reason)

    async def _write_loop(self, ws: aiohttp.ClientWebSocketResponse) -> None:
        while True:
            item = await self._outbox.get()
            self._in_flight = item
            event, payload, frame = item
            try:
                await ws.send_str(frame)
            except (ConnectionError, aiohttp.ClientError) as exc:
                _logger.debug("WebSocket write failed event=%s: %s", event, exc)
                await ws.close()
                return
            self._in_flight = None
            _logger.debug("Sent %s %s", event, redact_for_log(payload))

    def _hand_back_pending(self) -> None:
        pending: list[_Frame] = []
        if self._in_flight is not None:
            pending.append(self._in_flight)
            self._in_flight = None
        while not self._outbox.empty():
            pending.append(self._outbox.get_nowait())
        for event, payload, _frame in pending:
            self._dispatch("on_send_failed", event, payload)

    # ------------------------------------------------------------------
    # Handler dispatch
    # ------------------------------------------------------------------

    def _dispatch_open(self) -> None:
        self._dispatch("on_open")

    def _dispatch_close(self, reason: str) -> None:
        self._dispatch("on_close", reason)

    def _dispatch_frame(self, text: str) -> None:
        try:
            event, payload = decode_frame(text)
        except DriverLinkProtocolError:
            _logger.debug("Skipping malformed inbound frame", exc_info=True)
            return
        self._dispatch("on_event", event, payload)

    def _dispatch(self, name: str, *args: Any) -> None:
        handlers = self._handlers
        if handlers is None:
            return
        try:
            getattr(handlers, name)(*args)
        except Exception:
            _logger.warning("Transport handler %s failed", name, exc_info=True)
