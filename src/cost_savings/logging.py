"""Re-export logging utilities (see logging_config for implementation)."""

from cost_savings.logging_config import get_logger, setup_logging

__all__ = ["get_logger", "setup_logging"]
