"""
Compiler - two-stage orchestration.

Stage 1 (collect): scan every input file for discovery sites, resolve
each distinct pattern once per scanning directory, extract every matched
controller file once, and aggregate a PatternResult per pattern.

Stage 2 (inject): rewrite every discovery file against the aggregated
table.

The caller's mapping is only written once both stages succeeded; any
fault leaves it exactly as it was.
"""

from __future__ import annotations

import logging
import os
from typing import Dict, List, MutableMapping, Optional, Tuple

from .config import CompilerConfig
from .extractor import extract_file
from .globs import resolve_pattern
from .markers import Markers
from .models import FileExtraction, PatternKey, PatternResult
from .program import Program, normalize_path
from .scanner import PatternScanner
from .synthesizer import RouterSynthesizer
from .templates import InlineTemplateCompiler
from .walker import SymbolResolver


class Compiler:
    """
    Rewrites a set of Python sources so controller discovery happens at
    build time.

    Args:
        config: Compiler options (defaults resolve against the working directory)
        logger: Logger to report progress on
    """

    def __init__(self, config: Optional[CompilerConfig] = None, logger: Optional[logging.Logger] = None):
        self.config = config or CompilerConfig()
        self.logger = logger or logging.getLogger("routeweave.compiler")
        self.markers = Markers(self.config.framework, self.config.entry_point)
        self.scanner = PatternScanner(self.markers)
        self.templates = InlineTemplateCompiler(self.markers, self.config.runtime_module)

    def compile(self, files: MutableMapping[str, str], pretty: Optional[bool] = None) -> List[str]:
        """
        Compile a path -> source mapping in place.

        Args:
            files: Input sources; rewritten entries are replaced, controller
                files loaded from disk and rewritten are added
            pretty: Blank lines between generated blocks (config default)

        Returns:
            Paths of every file whose text changed, sorted

        Raises:
            Fault: Any pattern, extraction or synthesis fault; ``files`` is
                left untouched
        """
        pretty = self.config.pretty if pretty is None else pretty
        program = Program(files, self.config)

        table, discovery_files = self.collect(program, pretty)
        self.inject(program, table, discovery_files, pretty)

        output = program.changed_files()
        keys = {normalize_path(path): path for path in files}
        for path in sorted(output):
            files[keys.get(path, path)] = output[path]

        changed = sorted(keys.get(path, path) for path in output)
        self.logger.info("Compiled %d file(s), %d rewritten", len(program.input_paths), len(changed))
        return changed

    # ------------------------------------------------------------------
    # Stage 1
    # ------------------------------------------------------------------

    def collect(self, program: Program, pretty: bool) -> Tuple[Dict[PatternKey, PatternResult], List[str]]:
        """
        Resolve and extract every pattern declared by the input files.

        Returns:
            (pattern table, discovery files in input order)
        """
        table: Dict[PatternKey, PatternResult] = {}
        extracted: Dict[str, FileExtraction] = {}
        discovery_files: List[str] = []

        for path in program.input_paths:
            resolver = SymbolResolver.for_file(program, path)
            patterns = self.scanner.scan_patterns(resolver)
            if not patterns:
                continue
            discovery_files.append(path)
            directory = os.path.dirname(path)

            for pattern in sorted(patterns):
                key = PatternKey(directory, pattern)
                if key in table:
                    continue
                result = PatternResult()
                for file in resolve_pattern(pattern, directory, path):
                    extraction = extracted.get(file)
                    if extraction is None:
                        extraction = self._extract(program, file, pretty)
                        extracted[file] = extraction
                    result.add_file(extraction)
                table[key] = result
                self.logger.info(
                    "Pattern %s: %d file(s), %d controller(s), %d method(s)",
                    key, len(result.files), len(result.controllers), result.method_count,
                )

        return table, discovery_files

    def _extract(self, program: Program, path: str, pretty: bool) -> FileExtraction:
        extraction, module = extract_file(program, path, self.markers, self.templates, pretty)
        if module is not None:
            program.update(path, module)
        return extraction

    # ------------------------------------------------------------------
    # Stage 2
    # ------------------------------------------------------------------

    def inject(
        self,
        program: Program,
        table: Dict[PatternKey, PatternResult],
        discovery_files: List[str],
        pretty: bool,
    ) -> None:
        synthesizer = RouterSynthesizer(program, self.markers, self.scanner, pretty)
        for path in discovery_files:
            module = synthesizer.synthesize(path, table)
            if module is not None:
                program.update(path, module)


def compile_sources(
    files: MutableMapping[str, str],
    config: Optional[CompilerConfig] = None,
    pretty: Optional[bool] = None,
) -> List[str]:
    """Compile a mapping of sources in place (see ``Compiler.compile``)."""
    return Compiler(config).compile(files, pretty)
