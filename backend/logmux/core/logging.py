import logging
from logmux.core.config import settings
from logmux.core.logging_config import setup_logging

# Use centralized logging configuration
setup_logging(settings.log_level)

# Create logger for this package
logger = logging.getLogger("logmux")
