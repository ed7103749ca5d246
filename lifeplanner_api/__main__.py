"""
Run the API server.

PROMPT> python -m lifeplanner_api
"""
import logging
import sys

import uvicorn

from lifeplanner_api.api import create_app
from lifeplanner_api.config import load_settings


def main() -> None:
    settings = load_settings()
    logging.basicConfig(
        stream=sys.stdout,
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger = logging.getLogger(__name__)
    app = create_app(settings)
    logger.info("Backend listening on http://localhost:%d (docs at /api-docs)", settings.port)
    uvicorn.run(app, host="0.0.0.0", port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
