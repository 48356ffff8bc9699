"""Run the server: `python -m app` from the backend directory."""
import logging

import uvicorn

from app.config import settings


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    uvicorn.run("app.main:app", host=settings.HOST, port=settings.PORT, proxy_headers=True)


if __name__ == "__main__":
    main()
