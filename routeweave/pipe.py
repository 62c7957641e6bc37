"""
Build pipe - buffers every file of a build, then compiles them as one set.

A discovery file's output depends on controller files that may arrive
later in the stream, so nothing is emitted until ``flush()``::

    pipe = create_pipe("routeweave.yaml")
    for path in sources:
        pipe.collect(path, read(path))
    for path, text in pipe.flush().items():
        write(path, text)
"""

from __future__ import annotations

import fnmatch
import glob
import logging
import os
from typing import Dict, Iterable, List, Optional, Union

from .compiler import Compiler
from .config import CompilerConfig, ConfigLoader
from .program import normalize_path

logger = logging.getLogger("routeweave.pipe")


class BuildPipe:
    """
    Collect-then-flush adapter around the Compiler.

    Args:
        config: Compiler options
        pretty: Blank lines between generated blocks (config default)
    """

    def __init__(
        self,
        config: CompilerConfig,
        pretty: Optional[bool] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.config = config
        self.pretty = config.pretty if pretty is None else pretty
        self.compiler = Compiler(config, logger=logger)
        self.files: Dict[str, str] = {}
        self.changed: List[str] = []

    def __len__(self) -> int:
        return len(self.files)

    def collect(self, path: str, text: str) -> None:
        self.files[path] = text

    def collect_paths(self, paths: Iterable[str]) -> None:
        """Read and collect files from disk."""
        for path in paths:
            with open(path, encoding=self.config.encoding) as f:
                self.collect(path, f.read())

    def flush(self) -> Dict[str, str]:
        """
        Compile everything collected.

        Returns:
            Every collected file plus controller files pulled in from disk,
            with their final text
        """
        logger.debug("Flushing %d collected file(s)", len(self.files))
        self.changed = self.compiler.compile(self.files, self.pretty)
        return dict(self.files)


def create_pipe(config: Union[CompilerConfig, str, None] = None, pretty: Optional[bool] = None) -> BuildPipe:
    """
    Build a pipe from a config object or a config file path.

    With None the config file is auto-detected in the working directory.
    """
    if not isinstance(config, CompilerConfig):
        config = ConfigLoader.load(config)
    return BuildPipe(config, pretty)


def source_paths(config: CompilerConfig, paths: Optional[Iterable[str]] = None) -> List[str]:
    """
    Files a build covers.

    Explicit paths (files or directories) win over the configured include
    globs; exclude globs, relative to the root, always apply.
    """
    candidates: List[str] = []
    if paths:
        for path in paths:
            if os.path.isdir(path):
                candidates.extend(glob.glob(os.path.join(path, "**", "*.py"), recursive=True))
            else:
                candidates.append(path)
    else:
        for pattern in config.include:
            candidates.extend(glob.glob(os.path.join(config.root, pattern), recursive=True))

    seen = set()
    result = []
    for path in sorted(normalize_path(candidate) for candidate in candidates):
        if path in seen or not os.path.isfile(path):
            continue
        relative = os.path.relpath(path, config.root).replace(os.sep, "/")
        if any(fnmatch.fnmatch(relative, pattern) for pattern in config.exclude):
            continue
        seen.add(path)
        result.append(path)
    return result
