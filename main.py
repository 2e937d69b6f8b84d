"""
toolhub server entry point.

    python main.py                      # host/port from toolhub.toml
    uvicorn main:asgi_app --port 7860   # same app under an external runner

Logging is configured before the app is built so startup messages from the
store and scheduler use the configured formatter.
"""

import uvicorn

from toolhub.core.config import get
from toolhub.core.logging_config import configure_logging, get_logger, is_development
from toolhub.gateway.app import create_app

configure_logging(
    log_level=get("app", "log_level", fallback="INFO"),
    service=get("app", "name", fallback="toolhub"),
    enable_file_logging=get("app", "log_to_file", fallback=False),
)
logger = get_logger("main")

asgi_app = create_app()


def serve() -> None:
    host, port = get("app", "host"), get("app", "port")
    logger.info(f"toolhub listening on http://{host}:{port}")
    uvicorn.run("main:asgi_app", host=host, port=port, reload=is_development())


if __name__ == "__main__":
    serve()
