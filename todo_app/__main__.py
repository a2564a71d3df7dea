"""Todo entrypoint.

Run with:
  python -m todo_app
"""

import logging

import uvicorn

from .config import settings


def main() -> None:
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "todo_app.main:create_app",
        factory=True,
        host=settings.WEB_HOST,
        port=settings.WEB_PORT,
    )


if __name__ == "__main__":
    main()
