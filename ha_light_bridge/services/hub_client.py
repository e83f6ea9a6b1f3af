import asyncio
import json
from collections.abc import Callable
from time import perf_counter
from typing import Any
from urllib.parse import urlparse

import httpx
import websockets
from websockets.exceptions import WebSocketException

from ha_light_bridge.core import settings
from ha_light_bridge.core.errors import AuthenticationError, ProtocolError, TransportError, UserInputError
from ha_light_bridge.models.schemas import BridgeConfig
from ha_light_bridge.services.log_service import log_ha_request, log_operation


WS_AUTH_REQUIRED = "auth_required"
WS_AUTH_OK = "auth_ok"
WS_REQUEST_ID = 1
WS_MAX_FRAME_BYTES = 8_000_000


def hub_websocket_url(base_url: str) -> str:
    parsed = urlparse((base_url or "").strip().rstrip("/"))
    scheme = "wss" if parsed.scheme == "https" else "ws"
    netloc = parsed.netloc or parsed.path
    prefix = parsed.path.rstrip("/") if parsed.netloc else ""
    return f"{scheme}://{netloc}{prefix}/api/websocket"


def build_http_client(config: BridgeConfig) -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=config.ha_url,
        timeout=settings.HA_TIMEOUT_SEC,
        limits=httpx.Limits(
            max_connections=settings.HA_HTTP_MAX_CONNECTIONS,
            max_keepalive_connections=settings.HA_HTTP_MAX_KEEPALIVE,
            keepalive_expiry=settings.HA_HTTP_KEEPALIVE_EXPIRY_SEC,
        ),
    )


class HubClient:
    """Authenticated access to the hub's REST and socket APIs.

    Stateless per call and never retries; callers decide what a failure means.
    The HTTP client is pooled and shared; each socket request opens and closes
    its own connection.
    """

    def __init__(
        self,
        config: BridgeConfig,
        *,
        http_client: httpx.AsyncClient | None = None,
        ws_connect: Callable[..., Any] = websockets.connect,
        ws_timeout_sec: float | None = None,
    ) -> None:
        self.config = config
        self._owns_http_client = http_client is None
        self._http = http_client or build_http_client(config)
        self._ws_connect = ws_connect
        self._ws_timeout_sec = settings.HA_WS_TIMEOUT_SEC if ws_timeout_sec is None else ws_timeout_sec

    def auth_headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.ha_token}",
            "Content-Type": "application/json",
        }

    async def aclose(self) -> None:
        if self._owns_http_client:
            await self._http.aclose()

    async def fetch_json(
        self,
        method: str,
        path: str,
        body: Any = None,
        *,
        context: str = "hub",
        trace_id: str | None = None,
    ) -> tuple[int, bytes]:
        url = f"{self.config.ha_url}{path}"
        started = perf_counter()
        try:
            if body is None:
                response = await self._http.request(method, url, headers=self.auth_headers())
            else:
                response = await self._http.request(method, url, headers=self.auth_headers(), json=body)
        except httpx.InvalidURL as ex:
            raise UserInputError(f"invalid hub path {path!r}: {ex}") from ex
        except httpx.HTTPError as ex:
            duration_ms = round((perf_counter() - started) * 1000, 2)
            log_ha_request(
                method=method,
                path=path,
                status_code=0,
                duration_ms=duration_ms,
                context=context,
                trace_id=trace_id,
                detail={"message": f"{type(ex).__name__}: {ex}"},
            )
            raise TransportError(f"{method} {path} failed: {type(ex).__name__}: {ex}") from ex

        duration_ms = round((perf_counter() - started) * 1000, 2)
        log_ha_request(
            method=method,
            path=path,
            status_code=response.status_code,
            duration_ms=duration_ms,
            context=context,
            trace_id=trace_id,
        )
        return response.status_code, response.content

    async def _recv_frame(self, ws: Any, stage: str) -> dict[str, Any]:
        raw = await asyncio.wait_for(ws.recv(), timeout=self._ws_timeout_sec)
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError) as ex:
            raise ProtocolError(f"websocket {stage} frame is not JSON: {ex}") from ex
        if not isinstance(frame, dict):
            raise ProtocolError(f"websocket {stage} frame is not an object")
        return frame

    async def _authenticate(self, ws: Any) -> None:
        first = await self._recv_frame(ws, "hello")
        if first.get("type") != WS_AUTH_REQUIRED:
            raise ProtocolError(f"unexpected websocket handshake: {first.get('type')}")

        await ws.send(json.dumps({"type": "auth", "access_token": self.config.ha_token}))
        try:
            second = await self._recv_frame(ws, "auth")
        except (OSError, asyncio.TimeoutError, WebSocketException, ProtocolError) as ex:
            raise AuthenticationError(f"websocket auth failed: {type(ex).__name__}: {ex}") from ex
        if second.get("type") != WS_AUTH_OK:
            raise AuthenticationError(f"websocket auth failed: {second.get('type')} {second.get('message', '')}".strip())

    async def socket_request(
        self,
        request_type: str,
        payload: dict[str, Any] | None = None,
        *,
        trace_id: str | None = None,
    ) -> Any:
        """Run one authenticated request/reply exchange and return the ``result`` field."""
        url = hub_websocket_url(self.config.ha_url)
        started = perf_counter()
        error: Exception | None = None
        try:
            async with self._ws_connect(
                url,
                open_timeout=self._ws_timeout_sec,
                close_timeout=2,
                max_size=WS_MAX_FRAME_BYTES,
            ) as ws:
                await self._authenticate(ws)
                message = {**(payload or {}), "id": WS_REQUEST_ID, "type": request_type}
                await ws.send(json.dumps(message, ensure_ascii=False))
                reply = await self._recv_frame(ws, request_type)
                if not reply.get("success"):
                    raise ProtocolError(f"{request_type} failed: {reply.get('error') or reply.get('type')}")
                return reply.get("result")
        except (OSError, asyncio.TimeoutError, WebSocketException) as ex:
            error = TransportError(f"websocket {request_type} failed: {type(ex).__name__}: {ex}")
            raise error from ex
        except (AuthenticationError, ProtocolError) as ex:
            error = ex
            raise
        finally:
            log_operation(
                event_type="ha_ws",
                action="ha.ws.request",
                level="info" if error is None else "warning",
                path=request_type,
                duration_ms=round((perf_counter() - started) * 1000, 2),
                trace_id=trace_id,
                success=error is None,
                detail={"url": url} if error is None else {"url": url, "message": str(error)},
            )
