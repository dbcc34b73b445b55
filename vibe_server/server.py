#!/usr/bin/env python3
"""
VibeShuffle Music API server — entrypoint for `python -m vibe_server.server`.

For uvicorn vibe_server:app use vibe_server/__init__.py (exposes app from vibe_server.app).
"""

import logging

import uvicorn

from .config import get_config


def main() -> None:
    config = get_config()
    logging.basicConfig(
        level=config.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("vibe_server.app:app", host=config.host, port=config.port, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
