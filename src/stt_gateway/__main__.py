import logging

import uvicorn

from .app import registry
from .logging_utils import setup_logging
from .settings import settings

logger = logging.getLogger(__name__)


class GatewayServer(uvicorn.Server):
    """uvicorn server that closes open sessions before dropping connections."""

    async def shutdown(self, sockets=None) -> None:
        # uvicorn closes live sockets with 1012 before lifespan shutdown runs
        logger.info("stt.server.closing_sessions", extra={"sessions": len(registry)})
        await registry.close_all(code=1000, reason="Server shutdown")
        await super().shutdown(sockets=sockets)


def build_server(**overrides) -> GatewayServer:
    options = dict(
        host=settings.server.host,
        port=settings.server.port,
        log_level=settings.server.log_level.lower(),
        ws_max_size=settings.audio.max_bytes * 2,
    )
    options.update(overrides)
    return GatewayServer(uvicorn.Config("stt_gateway.app:app", **options))


def main() -> None:
    setup_logging(settings.server.log_level, settings.server.log_file)
    build_server().run()


if __name__ == "__main__":
    main()
