import logging
import sys

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s:%(lineno)d] - %(message)s"


def configure_logging(level: str = "INFO") -> None:
    """Configures root logging to stdout with the analyzer's log format."""
    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        stream=sys.stdout,
        force=True,
    )
    logging.getLogger(__name__).debug(f"Logging configured with level: {level.upper()}")
