"""
Shared test fixtures and helpers for the Routeweave test suite.

Every test project lives in its own tmp_path, which is also the source
root; it ships a small ``gridfw`` framework module so compiled output
can be imported and exercised.
"""

import importlib
import os
import sys
import textwrap
from typing import Dict, Optional

import pytest

from routeweave.config import CompilerConfig
from routeweave.compiler import Compiler
from routeweave.markers import Markers
from routeweave.program import Program
from routeweave.walker import SymbolResolver


# ============================================================================
# Framework module written into every test project
# ============================================================================

FRAMEWORK_SOURCE = '''\
"""Minimal web framework targeted by the compiler in tests."""

from typing import Any, Generic, TypeVar

T = TypeVar("T")

PATCH = "PATCH"
DELETE = "DELETE"


class Request:
    def __init__(self, query=None, params=None):
        self.query = query or {}
        self.params = params or {}


class Response:
    pass


class Query(Generic[T]):
    pass


class Path(Generic[T]):
    pass


def route(*routes):
    def decorate(cls):
        return cls
    return decorate


controller = route


def _verb(*args):
    def decorate(fn):
        return fn
    return decorate


def get(*args):
    return _verb(*args)


def head(*args):
    return _verb(*args)


def post(*args):
    return _verb(*args)


def method(*args):
    return _verb(*args)


def ws(*args):
    return _verb(*args)


def template(source):
    return source


class Router:
    def __init__(self, app, prefixes):
        self.app = app
        self.prefixes = list(prefixes)

    def _add(self, verb, args):
        *routes, handler = args
        self.app.routes.append((verb, self.prefixes, [r for group in routes for r in group], handler))
        return self

    def get(self, *args):
        return self._add("GET", args)

    def head(self, *args):
        return self._add("HEAD", args)

    def post(self, *args):
        return self._add("POST", args)

    def ws(self, *args):
        return self._add("WS", args)

    def method(self, verb, *args):
        return self._add(verb, args)


class Gridfw(Router):
    def __init__(self):
        super().__init__(self, [])
        self.routes = []
        self.locales = {}

    def scan(self, pattern):
        raise RuntimeError("scan() must be compiled away")

    def route(self, prefixes):
        return Router(self, prefixes)

    def i18n(self, locale, table):
        self.locales[locale] = table
        return self
'''


class Project:
    """A throwaway source tree rooted at tmp_path."""

    def __init__(self, root: str):
        self.root = root
        self.write("gridfw.py", FRAMEWORK_SOURCE, dedent=False)

    def path(self, relative: str) -> str:
        return os.path.normpath(os.path.join(self.root, relative))

    def write(self, relative: str, text: str, *, dedent: bool = True) -> str:
        path = self.path(relative)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        with open(path, "w", encoding="utf-8") as f:
            f.write(textwrap.dedent(text).lstrip("\n") if dedent else text)
        return path

    def read(self, relative: str) -> str:
        with open(self.path(relative), encoding="utf-8") as f:
            return f.read()

    def config(self, **overrides) -> CompilerConfig:
        return CompilerConfig(root=self.root, **overrides)

    def sources(self, *relatives: str) -> Dict[str, str]:
        return {self.path(r): self.read(r) for r in relatives}

    def compile(self, *relatives: str, pretty: bool = True, config: Optional[CompilerConfig] = None) -> Dict[str, str]:
        """Compile the given input files; returns the updated mapping."""
        files = self.sources(*relatives)
        Compiler(config or self.config()).compile(files, pretty=pretty)
        return files

    def output(self, files: Dict[str, str], relative: str) -> str:
        return files[self.path(relative)]

    def install(self, files: Dict[str, str]) -> None:
        """Write compiled output over the project's sources."""
        for path, text in files.items():
            with open(path, "w", encoding="utf-8") as f:
                f.write(text)

    def resolver(self, relative: str, config: Optional[CompilerConfig] = None) -> SymbolResolver:
        program = Program(self.sources(relative), config or self.config())
        return SymbolResolver.for_file(program, self.path(relative))


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def project(tmp_path, monkeypatch):
    """Empty project with the framework module, cwd set to its root."""
    monkeypatch.chdir(tmp_path)
    for key in list(os.environ):
        if key.startswith("RW_"):
            monkeypatch.delenv(key)
    return Project(str(tmp_path))


@pytest.fixture
def markers():
    return Markers()


@pytest.fixture
def importer(project, monkeypatch):
    """Import modules of the project, forgetting them after the test."""
    monkeypatch.syspath_prepend(project.root)
    before = set(sys.modules)
    importlib.invalidate_caches()

    def load(name: str):
        return importlib.import_module(name)

    yield load

    for name in set(sys.modules) - before:
        del sys.modules[name]
