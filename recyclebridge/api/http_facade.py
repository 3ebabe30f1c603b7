"""
HTTP trigger surface: one GET route per device action plus static files.
"""

from __future__ import annotations
import logging
from pathlib import Path
from typing import Any, Callable, Dict, Optional

from fastapi import FastAPI
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from recyclebridge.core.exceptions import RecycleBridgeError
from recyclebridge.core.patterns.retry import RetryConfig, send_command_with_retry
from recyclebridge.orchestration.commands import CommandSet, DeviceAction

log = logging.getLogger(__name__)


def create_app(device, command_set: CommandSet, retry_cfg: Optional[RetryConfig] = None,
               public_dir: Optional[str] = None,
               status: Optional[Callable[[], Dict[str, Any]]] = None) -> FastAPI:
    app = FastAPI(title="recyclebridge", docs_url=None, redoc_url=None)

    def make_route(action: DeviceAction):
        token = command_set.token_for(action)

        async def trigger():
            try:
                result = await send_command_with_retry(device, token, retry_cfg)
            except RecycleBridgeError as e:
                log.error(f"/{action.value} failed: {e}")
                return JSONResponse(status_code=500, content={"success": False, "message": str(e)})
            return result.as_dict()

        trigger.__name__ = f"trigger_{action.value}"
        return trigger

    for action in DeviceAction:
        app.add_api_route(f"/{action.value}", make_route(action), methods=["GET"])

    @app.get("/status")
    async def get_status():
        return status() if status is not None else device.get_stats()

    # mounted last so the action routes win
    if public_dir and Path(public_dir).is_dir():
        app.mount("/", StaticFiles(directory=public_dir, html=True), name="public")
    elif public_dir:
        log.warning(f"Static directory {public_dir} not found, not serving static files")

    return app
