import logging

import uvicorn

from vidnote.config import settings
from vidnote.main import app

logger = logging.getLogger(__name__)


def main() -> None:
    logger.info("Starting VidNote relay on %s:%s", settings.HOST, settings.PORT)
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
