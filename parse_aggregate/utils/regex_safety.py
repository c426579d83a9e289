"""
Validation of user supplied regular expressions before they reach the `$regex` operator.

MongoDB evaluates `$regex` with PCRE, which backtracks catastrophically on some patterns.
"""
import re
from typing import List, Pattern, Union

MAX_PATTERN_LENGTH = 500

DANGEROUS_PATTERNS: List[Pattern] = [
    re.compile(r"\(\?=|\(\?!|\(\?<[!=]"),                   # lookahead / lookbehind
    re.compile(r"\{(\d{3,}|\d+,\d{3,})\}"),                  # {1000} or {1,1000}
    re.compile(r"(\.\*|\.\+)\s*(\.\*|\.\+)"),                # .*.* and friends
    re.compile(r"\([^)]*(\+|\*)[^)]*\)\s*(\+|\*)"),          # (a+)+
    re.compile(r"\(\?[^)]*\([^)]*(\+|\*)[^)]*\)[^)]*(\+|\*)\)"),
]


def validate_pattern(pattern: Union[str, Pattern], max_length: int = MAX_PATTERN_LENGTH) -> str:
    """Return the pattern source, or raise ValueError if it is too long or may backtrack badly."""
    source = pattern.pattern if isinstance(pattern, re.Pattern) else str(pattern)

    if len(source) > max_length:
        raise ValueError(f"Regex pattern too long ({len(source)} chars, max {max_length})")

    for dangerous in DANGEROUS_PATTERNS:
        if dangerous.search(source):
            raise ValueError(f"Regex pattern contains constructs prone to catastrophic backtracking: {source!r}")

    return source

