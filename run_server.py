import argparse
import copy
import logging.config
from pathlib import Path

import uvicorn
from uvicorn.config import LOGGING_CONFIG

custom_logging = copy.deepcopy(LOGGING_CONFIG)
custom_logging["formatters"]["default"]["fmt"] = "%(asctime)s | %(levelprefix)s %(name)s | %(message)s"
custom_logging["formatters"]["access"]["fmt"] = (
    "%(asctime)s | %(levelprefix)s %(client_addr)s - \"%(request_line)s\" %(status_code)s"
)
custom_logging["formatters"]["default"]["datefmt"] = "%Y-%m-%d %H:%M:%S"
custom_logging["formatters"]["access"]["datefmt"] = "%Y-%m-%d %H:%M:%S"
# Route scanner module loggers through uvicorn's default handler.
custom_logging["loggers"].update(
    {
        name: {"handlers": ["default"], "level": "INFO", "propagate": False}
        for name in ("scanner", "models", "brokers", "services")
    }
)

PROJECT_ROOT = Path(__file__).resolve().parent
# Store writes under data/ must not trigger reloads.
reload_excludes = ["data", "data/*", "data/**/*", "*.json", "*.tmp", "*.log"]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the scanner web service.")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload for development.")
    parser.add_argument("--debug", action="store_true", help="Log scanner modules at DEBUG level.")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    if args.debug:
        for name in ("scanner", "models", "brokers", "services"):
            custom_logging["loggers"][name]["level"] = "DEBUG"
    logging.config.dictConfig(custom_logging)
    uvicorn.run(
        "services.webapp.main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        reload_dirs=[str(PROJECT_ROOT)] if args.reload else None,
        reload_excludes=reload_excludes if args.reload else None,
        log_config=None,
    )
