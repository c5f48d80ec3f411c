# behaviors/hostmask.py
# Glob matching for nick!user@host style identifiers.

import re
from functools import lru_cache
from typing import Iterable, Optional, Pattern


@lru_cache(maxsize=512)
def _compile(pattern: str) -> Optional[Pattern]:
    # Only * and ? are wildcards. Brackets are legal nick characters, so they
    # stay literal instead of becoming character classes.
    parts = []
    for ch in pattern:
        if ch == "*":
            parts.append(".*")
        elif ch == "?":
            parts.append(".")
        else:
            parts.append(re.escape(ch))
    try:
        return re.compile("".join(parts), re.IGNORECASE | re.DOTALL)
    except re.error:
        return None


def matches(candidate: str, pattern: str) -> bool:
    """True if `candidate` matches the glob `pattern` over the whole string."""
    if not isinstance(candidate, str) or not isinstance(pattern, str):
        return False
    compiled = _compile(pattern)
    if compiled is None:
        return False
    return compiled.fullmatch(candidate) is not None


def match_any(candidate: str, patterns: Iterable[str]) -> bool:
    """True if any of `patterns` matches. Stops at the first hit."""
    if not patterns:
        return False
    for pattern in patterns:
        if matches(candidate, pattern):
            return True
    return False


def first_match(candidate: str, entries, key=lambda entry: entry.hostmask):
    """Return the first entry whose pattern matches `candidate`, or None."""
    for entry in entries or ():
        if matches(candidate, key(entry)):
            return entry
    return None
