"""Display subpackage - logging configuration."""

from ocireg_mcp.display.logging_config import secret_redaction_filter, setup_logging

__all__ = [
    "secret_redaction_filter",
    "setup_logging",
]
