"""Utility modules for the card population extraction core."""
from cardpop.utils.logger import (
    get_logger,
    log_performance,
)
from cardpop.utils.retry import (
    retry,
    retry_on_network_error,
)
from cardpop.utils.cache import ResultCache
from cardpop.utils.config_validator import (
    validate_config,
)

__all__ = [
    "get_logger",
    "log_performance",
    "retry",
    "retry_on_network_error",
    "ResultCache",
    "validate_config",
]
