"""Run the PostSnap HTTP service."""

import uvicorn

from postsnap.api.app import create_app
from postsnap.utils.config import HOST, LOG_LEVEL, PORT, SERVICE_NAME
from postsnap.utils.logging import get_logger, setup_logging


def main() -> None:
    setup_logging()
    logger = get_logger(__name__)
    logger.info(f"{SERVICE_NAME} listening on port {PORT}")
    logger.info(f"http://localhost:{PORT}")
    uvicorn.run(create_app(), host=HOST, port=PORT, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
