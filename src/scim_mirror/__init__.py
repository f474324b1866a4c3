"""scim_mirror."""

from .monitoring.logger import configure_logger

# Configure logger with default settings (just console logging)
configure_logger()
