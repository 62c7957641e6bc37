"""
Glob Resolver - expands one pattern literal into controller files.
"""

from __future__ import annotations

import glob
import logging
import os
from typing import List

from .faults import PatternNoMatchError
from .program import normalize_path

logger = logging.getLogger("routeweave.globs")


def split_pattern(pattern: str) -> List[str]:
    """Comma separated glob expressions, trimmed, empties dropped."""
    return [segment.strip() for segment in pattern.split(",") if segment.strip()]


def resolve_pattern(pattern: str, directory: str, origin: str) -> List[str]:
    """
    Resolve a pattern relative to the scanning file's directory.

    Args:
        pattern: Pattern literal without quotes
        directory: Directory of the scanning file
        origin: Scanning file, for error reporting

    Returns:
        Absolute, normalized file paths, first-seen order, no duplicates

    Raises:
        PatternNoMatchError: No segment matched any file
    """
    seen = set()
    paths: List[str] = []
    for segment in split_pattern(pattern):
        expression = os.path.join(directory, segment)
        for match in sorted(glob.glob(expression, recursive=True)):
            if not os.path.isfile(match):
                continue
            path = normalize_path(match)
            if path not in seen:
                seen.add(path)
                paths.append(path)

    if not paths:
        raise PatternNoMatchError(pattern, origin)

    logger.info("Pattern %r matched %d file(s)", pattern, len(paths))
    for path in paths:
        logger.debug("  %s", path)
    return paths
