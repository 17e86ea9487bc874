"""Run the bot: ``python -m salewatch [--host HOST] [--port PORT]``."""

import argparse
import sys

import structlog
import uvicorn

from salewatch.core.config import ConfigurationError, get_settings
from salewatch.core.logging import configure_logging
from salewatch.main import create_app

logger = structlog.get_logger(__name__)


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(prog="salewatch", description=__doc__)
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=3000)
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.ENV, settings.DEBUG)
    try:
        settings.ensure_required()
    except ConfigurationError as exc:
        logger.error("app.config_missing", error=str(exc))
        return 1

    uvicorn.run(create_app(settings), host=args.host, port=args.port)
    return 0


if __name__ == "__main__":
    sys.exit(main())
