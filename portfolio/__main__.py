"""
Run the portfolio backend with uvicorn: ``python -m portfolio``.
"""

from __future__ import annotations

import logging

import uvicorn

from portfolio.app import app


def main() -> None:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    uvicorn.run(
        app,
        host="0.0.0.0",
        port=app.state.settings.port,
        log_level="info",
    )


if __name__ == "__main__":
    main()
