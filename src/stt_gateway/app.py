import json
import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, Optional

from fastapi import FastAPI, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from . import __version__
from .schemas import KeepAliveMessage
from .session import SessionRegistry, SessionTransport, SttSession
from .settings import settings as runtime_settings

logger = logging.getLogger(__name__)

registry = SessionRegistry()


class WebSocketTransport(SessionTransport):
    """Adapts a FastAPI WebSocket to the session transport interface."""

    def __init__(self, websocket: WebSocket) -> None:
        self._websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self._websocket.client_state == WebSocketState.CONNECTED
            and self._websocket.application_state == WebSocketState.CONNECTED
        )

    async def send_json(self, payload: Dict[str, Any]) -> None:
        if not self.is_open:
            return
        await self._websocket.send_text(json.dumps(payload, ensure_ascii=False))

    async def ping(self) -> None:
        # ASGI exposes no ping frame
        await self.send_json(KeepAliveMessage().to_wire())

    async def close(self, code: int = 1000, reason: str = "") -> None:
        if self._websocket.application_state == WebSocketState.DISCONNECTED:
            return
        await self._websocket.close(code=code, reason=reason)


def create_session(websocket: WebSocket) -> SttSession:
    return SttSession.from_settings(transport=WebSocketTransport(websocket), app_settings=runtime_settings)


@asynccontextmanager
async def lifespan(app: FastAPI):
    mode = "live" if runtime_settings.asr.has_credential else "mock"
    logger.info(
        "stt.server.started",
        extra={"ws_path": runtime_settings.server.ws_path, "mode": mode},
    )
    yield
    logger.info("stt.server.shutdown", extra={"sessions": len(registry)})
    await registry.close_all(code=1000, reason="Server shutdown")


app = FastAPI(lifespan=lifespan)


@app.get("/health")
async def health() -> Dict[str, Any]:
    return {
        "status": "ok",
        "service": "stt-gateway",
        "version": __version__,
        "mock_mode": not runtime_settings.asr.has_credential,
        "active_sessions": len(registry),
    }


@app.websocket(runtime_settings.server.ws_path)
async def stt_websocket(websocket: WebSocket) -> None:
    await websocket.accept()
    session = create_session(websocket)
    registry.add(session)
    session.start()

    code: Optional[int] = None
    reason: Optional[str] = None
    error: Optional[BaseException] = None
    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                code = message.get("code")
                reason = message.get("reason")
                break
            data = message.get("text")
            if data is None:
                data = message.get("bytes") or b""
            await session.handle_message(data)
    except WebSocketDisconnect as exc:
        code, reason = exc.code, exc.reason
    except Exception as exc:
        error = exc
    finally:
        registry.discard(session)
        await session.close(code=code, reason=reason, error=error)
