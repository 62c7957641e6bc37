"""
Generated identifiers and per-file import bookkeeping.
"""

import os

import libcst as cst
import pytest

from routeweave.faults import SynthesisError
from routeweave.imports import ImportRegistry, NameAllocator, insert_preamble, preamble_index, snake_case
from routeweave.program import Program


def code(statements):
    return cst.Module(body=list(statements)).code


# ============================================================================
# Names
# ============================================================================

class TestNameAllocator:

    def test_snake_case(self):
        assert snake_case("UsersController") == "users_controller"
        assert snake_case("HTTPServer") == "http_server"
        assert snake_case("api") == "api"

    def test_sequential(self):
        names = NameAllocator(cst.parse_module(""))
        assert names.allocate("scan") == "_rw_scan_1"
        assert names.allocate("scan") == "_rw_scan_2"
        assert names.allocate("app") == "_rw_app_1"

    def test_skips_taken_names(self):
        names = NameAllocator(cst.parse_module("_rw_scan_1 = 1\ndef _rw_scan_2(): pass\n"))
        assert names.allocate("scan") == "_rw_scan_3"

    def test_hint_sanitized(self):
        names = NameAllocator(cst.parse_module(""))
        assert names.allocate("a.b-c") == "_rw_a_b_c_1"

    def test_claim(self):
        names = NameAllocator(cst.parse_module("x = 1\n"))
        assert not names.is_free("x")
        assert names.is_free("y")
        names.claim("y")
        assert not names.is_free("y")


# ============================================================================
# Import registry
# ============================================================================

class TestImportRegistry:

    def registry(self, project, source=""):
        return ImportRegistry(Program({}, project.config()), NameAllocator(cst.parse_module(source)))

    def test_one_alias_per_symbol(self, project):
        registry = self.registry(project)
        first = registry.symbol("gridfw", "Request")
        assert registry.symbol("gridfw", "Request") == first == "_rw_Request_1"
        assert registry.symbol("other", "Request") == "_rw_Request_2"
        assert len(registry) == 2

    def test_verbatim_when_free(self, project):
        registry = self.registry(project)
        assert registry.symbol("gridfw", "PATCH", verbatim=True) == "PATCH"
        assert code(registry.statements()) == "from gridfw import PATCH\n"

    def test_verbatim_falls_back_when_taken(self, project):
        registry = self.registry(project, "PATCH = 'mine'\n")
        assert registry.symbol("gridfw", "PATCH", verbatim=True) == "_rw_PATCH_1"

    def test_file_symbol(self, project):
        registry = self.registry(project)
        alias = registry.file_symbol(project.path("controllers/users.py"), "UsersController")
        assert alias == "_rw_UsersController_1"
        assert code(registry.statements()) == (
            "from controllers.users import UsersController as _rw_UsersController_1\n"
        )

    def test_file_outside_root(self, project):
        registry = self.registry(project)
        outside = os.path.join(os.path.dirname(project.root), "elsewhere.py")
        with pytest.raises(SynthesisError) as exc:
            registry.file_symbol(outside, "Thing")
        assert exc.value.code == "OUTSIDE_ROOT"

    def test_statements_group_by_module(self, project):
        registry = self.registry(project)
        registry.symbol("gridfw", "Request")
        registry.symbol("app.users", "Users")
        registry.symbol("gridfw", "Response")
        registry.module("routeweave.runtime")
        assert code(registry.statements()) == (
            "import routeweave.runtime as _rw_runtime_1\n"
            "from gridfw import Request as _rw_Request_1, Response as _rw_Response_1\n"
            "from app.users import Users as _rw_Users_1\n"
        )

    def test_module_alias_reused(self, project):
        registry = self.registry(project)
        assert registry.module("routeweave.runtime") == registry.module("routeweave.runtime")
        assert len(registry.statements()) == 1


# ============================================================================
# Preamble placement
# ============================================================================

class TestPreamble:

    IMPORT = cst.parse_statement("import x as _rw_x_1")

    def test_top_of_plain_module(self):
        module = insert_preamble(cst.parse_module("a = 1\n"), [self.IMPORT])
        assert module.code == "import x as _rw_x_1\na = 1\n"

    def test_after_docstring_and_future(self):
        source = '"""Doc."""\nfrom __future__ import annotations\na = 1\n'
        module = cst.parse_module(source)
        assert preamble_index(module) == 2
        assert insert_preamble(module, [self.IMPORT]).code == (
            '"""Doc."""\nfrom __future__ import annotations\nimport x as _rw_x_1\na = 1\n'
        )

    def test_nothing_to_insert(self):
        module = cst.parse_module("a = 1\n")
        assert insert_preamble(module, []) is module
