"""Run the local modcache API."""

import uvicorn

from modcache.config import settings
from modcache.main import app


def main() -> None:
    uvicorn.run(app, host=settings.host, port=settings.port, log_level="info")


if __name__ == "__main__":
    main()
