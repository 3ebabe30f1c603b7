"""Rich-handler logging preset."""
import logging
from typing import Optional
from rich.logging import RichHandler
from .app_config import settings

def configure(level: Optional[str] = None):
    logging.basicConfig(
        level=getattr(logging, level or settings.LOG_LEVEL),
        format="%(name)-28s │ %(message)s",
        datefmt="%H:%M:%S",
        handlers=[RichHandler(rich_tracebacks=True, markup=True)],
    )
    # uvicorn is started with log_config=None, keep its access log terse
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
