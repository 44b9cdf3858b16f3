from __future__ import annotations

import os

import uvicorn

from laundry_core.config import ensure_directories, load_environment
from laundry_core.logging.logger import get_logger


def main() -> None:
    load_environment()
    ensure_directories()
    logger = get_logger()
    host = os.getenv("LAUNDRY_MOCK_HOST", "127.0.0.1")
    port = int(os.getenv("LAUNDRY_MOCK_PORT", "8100"))
    logger.info("Starting laundry mock API on %s:%s", host, port)
    uvicorn.run("apps.mock_api.main:app", host=host, port=port, reload=False)


if __name__ == "__main__":
    main()
