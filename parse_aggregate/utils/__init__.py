from .logger import setup_logger
from .regex_safety import validate_pattern, MAX_PATTERN_LENGTH

__all__ = [
    "setup_logger",
    "validate_pattern",
    "MAX_PATTERN_LENGTH",
]
