from __future__ import annotations

import asyncio
import logging

import uvicorn

from .api import app, set_monitor_service
from .config import load_config
from .monitor import MonitorService
from .state import monitor_state

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s %(levelname)s %(name)s - %(message)s",
)
logger = logging.getLogger(__name__)


async def serve() -> None:
    config = load_config()
    monitor = MonitorService(config=config, state=monitor_state)
    set_monitor_service(monitor)

    server = uvicorn.Server(
        uvicorn.Config(
            app=app,
            host="0.0.0.0",
            port=config.monitor_api_port,
            log_level="info",
        )
    )

    logger.info("[Service] Starting futures monitor API on port %s", config.monitor_api_port)
    try:
        async with asyncio.TaskGroup() as tg:
            monitor_task = tg.create_task(monitor.run())
            await server.serve()
            monitor_task.cancel()
    finally:
        set_monitor_service(None)


if __name__ == "__main__":
    asyncio.run(serve())
