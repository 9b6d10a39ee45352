import uvicorn

from constants import HOST, LOG_FILE, LOG_LEVEL, PING_INTERVAL, PING_TIMEOUT, PORT, RELOAD
from logging_config import setup_logging

# Setup logging before importing app
setup_logging(log_level=LOG_LEVEL, log_file=LOG_FILE)

from logging_config import get_logger  # noqa: E402

logger = get_logger(__name__)


def main():
    logger.info(f"Starting chat relay server on {HOST}:{PORT}")
    # Plain WebSocket clients get the same liveness window as socket.io ones
    uvicorn.run(
        "app:asgi_app",
        host=HOST,
        port=PORT,
        reload=RELOAD,
        ws_ping_interval=PING_INTERVAL,
        ws_ping_timeout=PING_TIMEOUT,
    )


if __name__ == "__main__":
    main()
