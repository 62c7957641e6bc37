"""
ImportRegistry - per output file import deduplication.

Every external symbol a generated fragment references goes through the
registry of the file it is emitted into, which hands out exactly one
alias per (module, symbol) pair and renders the import statements once
the fragment is complete.
"""

from __future__ import annotations

import re
from collections import defaultdict
from typing import Dict, List, Sequence, Tuple

import libcst as cst

from .faults import SynthesisError
from .program import Program
from .walker import iter_nodes

GENERATED_PREFIX = "_rw_"


def snake_case(name: str) -> str:
    """UsersController -> users_controller."""
    name = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", name)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", name).lower()


class NameAllocator:
    """Unique, deterministic identifiers that never collide with a file's names."""

    def __init__(self, module: cst.Module):
        self.taken = {node.value for node in iter_nodes(module) if isinstance(node, cst.Name)}
        self._counters: Dict[str, int] = defaultdict(int)

    def allocate(self, hint: str) -> str:
        base = GENERATED_PREFIX + re.sub(r"\W", "_", hint)
        while True:
            self._counters[base] += 1
            name = f"{base}_{self._counters[base]}"
            if name not in self.taken:
                self.taken.add(name)
                return name

    def is_free(self, name: str) -> bool:
        return name not in self.taken

    def claim(self, name: str) -> None:
        self.taken.add(name)


class ImportRegistry:
    """
    (module, symbol) -> alias for one output file.

    Args:
        program: Program, for file -> module name resolution
        names: Allocator of the output file
    """

    def __init__(self, program: Program, names: NameAllocator):
        self.program = program
        self.names = names
        self._symbols: Dict[Tuple[str, str], str] = {}
        self._modules: Dict[str, str] = {}
        # module -> symbols, in first-use order
        self._from_order: Dict[str, List[str]] = {}

    def __len__(self) -> int:
        return len(self._symbols) + len(self._modules)

    def module_for_file(self, path: str) -> str:
        module = self.program.module_name(path)
        if module is None:
            raise SynthesisError(
                f"Cannot import {path}: file is outside the source root {self.program.root}",
                code="OUTSIDE_ROOT",
                metadata={"file": path, "root": self.program.root},
            )
        return module

    def symbol(self, module: str, symbol: str, *, verbatim: bool = False) -> str:
        """
        Local name bound to ``module.symbol``, importing it on first use.

        With ``verbatim`` the symbol keeps its own name when that name is
        free in the file.
        """
        key = (module, symbol)
        alias = self._symbols.get(key)
        if alias is None:
            if verbatim and self.names.is_free(symbol):
                alias = symbol
                self.names.claim(symbol)
            else:
                alias = self.names.allocate(symbol)
            self._symbols[key] = alias
            self._from_order.setdefault(module, []).append(symbol)
        return alias

    def adopt(self, module: str, symbol: str, name: str) -> None:
        """Use a binding the file already has for ``module.symbol``; nothing is imported."""
        self._symbols.setdefault((module, symbol), name)

    def file_symbol(self, path: str, symbol: str) -> str:
        """Alias of a symbol exported by a program file."""
        return self.symbol(self.module_for_file(path), symbol)

    def module(self, module: str) -> str:
        """Alias bound to a whole module (``import a.b as alias``)."""
        alias = self._modules.get(module)
        if alias is None:
            alias = self.names.allocate(module.rpartition(".")[2])
            self._modules[module] = alias
        return alias

    def statements(self) -> List[cst.SimpleStatementLine]:
        """One import statement per distinct module."""
        lines = []
        for module, alias in self._modules.items():
            lines.append(f"import {module} as {alias}")
        for module, symbols in self._from_order.items():
            specifiers = []
            for symbol in symbols:
                alias = self._symbols[(module, symbol)]
                specifiers.append(symbol if alias == symbol else f"{symbol} as {alias}")
            lines.append(f"from {module} import {', '.join(specifiers)}")
        return [cst.parse_statement(line) for line in lines]


def _is_docstring(stmt: cst.BaseStatement) -> bool:
    return (
        isinstance(stmt, cst.SimpleStatementLine)
        and len(stmt.body) == 1
        and isinstance(stmt.body[0], cst.Expr)
        and isinstance(stmt.body[0].value, (cst.SimpleString, cst.ConcatenatedString))
    )


def _is_future_import(stmt: cst.BaseStatement) -> bool:
    return (
        isinstance(stmt, cst.SimpleStatementLine)
        and all(
            isinstance(s, cst.ImportFrom)
            and isinstance(s.module, cst.Name)
            and s.module.value == "__future__"
            for s in stmt.body
        )
    )


def preamble_index(module: cst.Module) -> int:
    """Index of the first statement after the docstring and __future__ imports."""
    index = 0
    body = module.body
    if body and _is_docstring(body[0]):
        index = 1
    while index < len(body) and _is_future_import(body[index]):
        index += 1
    return index


def insert_preamble(module: cst.Module, statements: Sequence[cst.BaseStatement]) -> cst.Module:
    """Insert statements ahead of the module's own code."""
    if not statements:
        return module
    index = preamble_index(module)
    body = list(module.body)
    body[index:index] = statements
    return module.with_changes(body=body)
