"""
Discovery inspection command.

Lists every discovery pattern of a project and the files it resolves
to, without rewriting anything.
"""

import os
from typing import Dict, Iterable, List, Optional

from ...config import ConfigLoader
from ...globs import resolve_pattern
from ...markers import Markers
from ...models import PatternKey
from ...pipe import source_paths
from ...program import Program
from ...scanner import PatternScanner
from ...walker import SymbolResolver


def scan_project(paths: Iterable[str] = (), config_path: Optional[str] = None) -> Dict[PatternKey, List[str]]:
    """Pattern -> matched files, for every discovery site of the project."""
    config = ConfigLoader.load(config_path)
    files = {}
    for path in source_paths(config, list(paths)):
        with open(path, encoding=config.encoding) as f:
            files[path] = f.read()

    program = Program(files, config)
    scanner = PatternScanner(Markers(config.framework, config.entry_point))
    found: Dict[PatternKey, List[str]] = {}
    for path in program.input_paths:
        resolver = SymbolResolver.for_file(program, path)
        directory = os.path.dirname(path)
        for pattern in sorted(scanner.scan_patterns(resolver)):
            key = PatternKey(directory, pattern)
            if key not in found:
                found[key] = resolve_pattern(pattern, directory, path)
    return found
