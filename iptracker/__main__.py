"""Serve the app with uvicorn: ``python -m iptracker`` or the ``iptracker`` script."""

from __future__ import annotations

import uvicorn

from iptracker.config import get_settings


def main() -> None:
    s = get_settings()
    uvicorn.run(
        "iptracker.main:app",
        host=s.HOST,
        port=s.PORT,
        log_level=s.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
