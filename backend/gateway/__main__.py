"""Run the gateway with uvicorn: `python -m gateway`."""

import uvicorn

from .app import create_app
from .config import load_settings
from .logging_config import setup_logging


def main() -> None:
    settings = load_settings()
    setup_logging(settings.log_level)
    uvicorn.run(
        create_app(settings),
        host=settings.host,
        port=settings.port,
        log_config=None,
    )


if __name__ == "__main__":
    main()
