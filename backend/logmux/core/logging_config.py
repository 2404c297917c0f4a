import logging
import sys

# Routes whose access lines would echo back into the stream when the viewer tails its own container
STREAMING_ROUTE_MARKERS = (
    "/logs/stream",
    "/logs/mergedStream",
)


class StreamAccessFilter(logging.Filter):
    """Filter out access logs of long-lived streaming requests to avoid feedback loops."""

    def filter(self, record):
        if record.name != "uvicorn.access":
            return True

        message = record.getMessage()
        return not any(marker in message for marker in STREAMING_ROUTE_MARKERS)


def setup_logging(level: str = "INFO"):
    """Configure logging with the streaming access filter."""
    # Root logger configuration
    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Create console handler
    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    # Create formatter
    formatter = logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    console_handler.setFormatter(formatter)
    console_handler.addFilter(StreamAccessFilter())

    # Clear existing handlers and add our configured handler
    root_logger.handlers.clear()
    root_logger.addHandler(console_handler)

    # uvicorn installs its own handlers for the access logger
    uvicorn_access_logger = logging.getLogger("uvicorn.access")
    for handler in uvicorn_access_logger.handlers:
        handler.addFilter(StreamAccessFilter())

    return root_logger
