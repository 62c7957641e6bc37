"""
Program - the multi-file compilation context.

Holds every source file taking part in one compilation: the input
mapping, plus files the pipeline pulls in from disk (glob matches,
re-export targets). Trees are libcst modules so untouched code prints
back byte-for-byte.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, Iterator, List, Mapping, Optional

import libcst as cst

from .config import CompilerConfig
from .faults import ExtractionError, SourceLocation

logger = logging.getLogger("routeweave.program")


def normalize_path(path: str) -> str:
    """Absolute, normalized path (string equality is path identity)."""
    return os.path.normpath(os.path.abspath(path))


class SourceFile:
    """One file of the program and its current tree."""

    def __init__(self, path: str, text: str, *, from_disk: bool = False):
        self.path = path
        self.text = text
        self.from_disk = from_disk
        self.module = self._parse(text)
        self.original = self.module

    def _parse(self, text: str) -> cst.Module:
        try:
            return cst.parse_module(text)
        except cst.ParserSyntaxError as e:
            raise ExtractionError(
                f"Cannot parse source: {e.message}",
                code="SOURCE_SYNTAX",
                location=SourceLocation(self.path, e.raw_line, e.raw_column),
            ) from e

    @property
    def directory(self) -> str:
        return os.path.dirname(self.path)

    @property
    def changed(self) -> bool:
        return self.module is not self.original

    @property
    def code(self) -> str:
        return self.module.code

    def __repr__(self) -> str:
        return f"SourceFile({self.path!r}, changed={self.changed})"


class Program:
    """
    Path -> SourceFile mapping with module name resolution.

    Args:
        files: Input mapping of path to source text
        config: Compiler options (source root, encoding)
    """

    def __init__(self, files: Mapping[str, str], config: CompilerConfig):
        self.config = config
        self.root = config.root
        self._files: Dict[str, SourceFile] = {}
        self.input_paths: List[str] = []
        # SymbolResolver cache, keyed by path
        self.resolvers: Dict[str, object] = {}
        for path, text in files.items():
            key = normalize_path(path)
            self._files[key] = SourceFile(key, text)
            self.input_paths.append(key)

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._files

    def __iter__(self) -> Iterator[SourceFile]:
        return iter(list(self._files.values()))

    def get(self, path: str) -> SourceFile:
        """Return a file, loading it from disk when it is not an input."""
        key = normalize_path(path)
        source = self._files.get(key)
        if source is None:
            logger.debug("Loading %s from disk", key)
            try:
                with open(key, encoding=self.config.encoding) as f:
                    text = f.read()
            except OSError as e:
                raise ExtractionError(
                    f"Cannot read source file: {e}",
                    code="SOURCE_UNREADABLE",
                    location=SourceLocation(key),
                ) from e
            source = SourceFile(key, text, from_disk=True)
            self._files[key] = source
        return source

    def update(self, path: str, module: cst.Module) -> None:
        self._files[normalize_path(path)].module = module

    # ------------------------------------------------------------------
    # Module names
    # ------------------------------------------------------------------

    def module_name(self, path: str) -> Optional[str]:
        """
        Dotted module name of a file relative to the source root.

        Returns None for files outside the root.
        """
        rel = os.path.relpath(normalize_path(path), self.root)
        if rel.startswith(os.pardir):
            return None
        stem, ext = os.path.splitext(rel)
        if ext != ".py":
            return None
        parts = stem.split(os.sep)
        if parts[-1] == "__init__":
            parts = parts[:-1]
        if not parts or not all(p.isidentifier() for p in parts):
            return None
        return ".".join(parts)

    def is_package(self, path: str) -> bool:
        return os.path.basename(path) == "__init__.py"

    def path_for_module(self, module: str) -> Optional[str]:
        """File implementing a dotted module under the root, if any."""
        base = os.path.join(self.root, *module.split("."))
        for candidate in (base + ".py", os.path.join(base, "__init__.py")):
            candidate = normalize_path(candidate)
            if candidate in self._files or os.path.isfile(candidate):
                return candidate
        return None

    def absolute_module(self, path: str, relative: str) -> Optional[str]:
        """
        Resolve a relative dotted name ("..pkg.mod") against a file.

        Returns None when the file has no module name or the relative
        import climbs above the root.
        """
        dots = len(relative) - len(relative.lstrip("."))
        rest = relative[dots:]
        current = self.module_name(path)
        if current is None:
            return None
        package = current.split(".") if self.is_package(path) else current.split(".")[:-1]
        if dots - 1 > len(package):
            return None
        base = package[: len(package) - (dots - 1)]
        if rest:
            base.append(rest)
        return ".".join(base) if base else None

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def changed_files(self) -> Dict[str, str]:
        """Path -> new text for every file whose tree was rewritten."""
        return {f.path: f.code for f in self._files.values() if f.changed}
