"""
Controller extraction: controllers, routed methods, parameters, i18n
declarations and decorator stripping.
"""

import pytest

from routeweave.extractor import extract_file, i18n_locale, strip_decorators
from routeweave.faults import ExtractionError
from routeweave.markers import Markers
from routeweave.models import ParamKind, Verb
from routeweave.program import Program
from routeweave.templates import InlineTemplateCompiler

import libcst as cst


def extract(project, relative, pretty=True):
    """(extraction, rewritten code or None) for one project file."""
    markers = Markers()
    program = Program({}, project.config())
    extraction, module = extract_file(
        program, project.path(relative), markers, InlineTemplateCompiler(markers), pretty
    )
    return extraction, (module.code if module is not None else None)


# ============================================================================
# Controllers
# ============================================================================

class TestControllers:

    def test_controller_with_routes(self, project):
        project.write("c.py", """
            from gridfw import Request, Response, route, get

            @route("/users", ["/people", "/members"])
            class UsersController:
                @get("/")
                def index(self, request: Request, response: Response):
                    return "ok"
        """)
        extraction, code = extract(project, "c.py")
        [controller] = extraction.controllers
        assert controller.class_name == "UsersController"
        assert controller.base_routes == ["/users", "/people", "/members"]
        assert controller.file == project.path("c.py")
        [method] = controller.methods
        assert method.verb is Verb.GET
        assert method.route_args == ["/"]
        assert method.controller.method_name == "index"
        assert not method.needs_wrapper

    def test_controller_alias_without_routes(self, project):
        project.write("c.py", """
            from gridfw import controller, get

            @controller
            class Home:
                @get
                def index(self):
                    pass
        """)
        extraction, _ = extract(project, "c.py")
        [home] = extraction.controllers
        assert home.base_routes == []
        assert home.methods[0].route_args == []
        assert home.methods[0].params == []

    def test_controller_without_methods_is_recorded(self, project):
        project.write("c.py", """
            from gridfw import route

            @route("/empty")
            class Empty:
                pass
        """)
        extraction, _ = extract(project, "c.py")
        assert [c.class_name for c in extraction.controllers] == ["Empty"]
        assert extraction.controllers[0].methods == []

    def test_plain_classes_are_ignored(self, project):
        project.write("c.py", """
            class Plain:
                def get(self):
                    pass
        """)
        extraction, code = extract(project, "c.py")
        assert extraction.controllers == []
        assert code is None

    def test_non_literal_route(self, project):
        project.write("c.py", """
            from gridfw import route

            PREFIX = "/users"

            @route(PREFIX)
            class Users:
                pass
        """)
        with pytest.raises(ExtractionError) as exc:
            extract(project, "c.py")
        assert exc.value.code == "NON_LITERAL_ROUTE"
        assert "route" in exc.value.message

    def test_keyword_route_rejected(self, project):
        project.write("c.py", """
            from gridfw import route

            @route(prefix="/users")
            class Users:
                pass
        """)
        with pytest.raises(ExtractionError) as exc:
            extract(project, "c.py")
        assert exc.value.code == "NON_LITERAL_ROUTE"


# ============================================================================
# Methods
# ============================================================================

class TestMethods:

    def test_one_descriptor_per_verb(self, project):
        project.write("c.py", """
            from gridfw import Request, Response, route, get, head

            @route
            class Pages:
                @get("/a")
                @head("/a")
                def page(self, request: Request, response: Response):
                    pass
        """)
        extraction, _ = extract(project, "c.py")
        methods = extraction.controllers[0].methods
        assert [m.verb for m in methods] == [Verb.GET, Verb.HEAD]

    def test_method_verb(self, project):
        project.write("c.py", """
            from gridfw import route, method

            @route
            class Items:
                @method("PATCH", "/items")
                def patch(self):
                    pass
        """)
        extraction, _ = extract(project, "c.py")
        [m] = extraction.controllers[0].methods
        assert m.verb is Verb.METHOD
        assert m.route_args == ["PATCH", "/items"]

    def test_method_verb_needs_identifier(self, project):
        project.write("c.py", """
            from gridfw import route, method

            @route
            class Items:
                @method("/items")
                def patch(self):
                    pass
        """)
        with pytest.raises(ExtractionError, match="HTTP method"):
            extract(project, "c.py")

    def test_async_detection(self, project):
        project.write("c.py", """
            from typing import Awaitable
            from gridfw import route, get

            @route
            class Jobs:
                @get("/a")
                async def native(self):
                    pass

                @get("/b")
                def declared(self) -> Awaitable[str]:
                    pass

                @get("/c")
                def sync(self) -> str:
                    pass
        """)
        extraction, _ = extract(project, "c.py")
        flags = {m.controller.method_name: m.is_async for m in extraction.controllers[0].methods}
        assert flags == {"native": True, "declared": True, "sync": False}
        assert extraction.controllers[0].methods[2].returns == "str"

    def test_classmethod_is_static(self, project):
        project.write("c.py", """
            from gridfw import route, get

            @route
            class Health:
                @get("/health")
                @classmethod
                def check(cls):
                    pass
        """)
        extraction, code = extract(project, "c.py")
        [m] = extraction.controllers[0].methods
        assert m.controller.is_static
        assert "@classmethod" in code

    def test_staticmethod_rejected(self, project):
        project.write("c.py", """
            from gridfw import route, get

            @route
            class Health:
                @get("/health")
                @staticmethod
                def check():
                    pass
        """)
        with pytest.raises(ExtractionError) as exc:
            extract(project, "c.py")
        assert exc.value.code == "STATIC_HANDLER"

    def test_verb_outside_controller(self, project):
        project.write("c.py", """
            from gridfw import get

            class NotAController:
                @get("/x")
                def x(self):
                    pass
        """)
        with pytest.raises(ExtractionError) as exc:
            extract(project, "c.py")
        assert exc.value.code == "VERB_OUTSIDE_CONTROLLER"

    def test_shadowed_verb_is_not_a_route(self, project):
        project.write("c.py", """
            from gridfw import route

            def get(*routes):
                return lambda fn: fn

            @route
            class Items:
                @get("/x")
                def x(self):
                    pass
        """)
        extraction, code = extract(project, "c.py")
        assert extraction.controllers[0].methods == []
        assert '@get("/x")' in code


# ============================================================================
# Parameters
# ============================================================================

class TestParameters:

    def write(self, project, signature, extra_imports=""):
        project.write("c.py", f"""
            from typing import Any, Optional
            from gridfw import Request, Response, Query, Path, route, get
            {extra_imports}

            class User:
                pass

            @route
            class Api:
                @get("/")
                def handler(self, {signature}):
                    pass
        """)

    def params(self, project):
        extraction, _ = extract(project, "c.py")
        return extraction.controllers[0].methods[0].params

    def test_markers_and_wrappers(self, project):
        self.write(project, "req: Request, q: Query[Any], p: Path[object], typed: Query[User], res: Response")
        params = self.params(project)
        assert [p.kind for p in params] == [
            ParamKind.REQUEST, ParamKind.QUERY, ParamKind.PATH, ParamKind.QUERY, ParamKind.RESPONSE,
        ]
        assert params[1].generic and params[2].generic
        assert not params[3].generic
        assert params[3].type_argument == "User"

    def test_other_types(self, project):
        self.write(project, "user: User, maybe: Optional['User'], count: int, union: int | None")
        assert [p.kind for p in self.params(project)] == [ParamKind.OTHER] * 4

    def test_keyword_only(self, project):
        self.write(project, "req: Request, *, res: Response")
        params = self.params(project)
        assert [(p.kind, p.keyword_only) for p in params] == [
            (ParamKind.REQUEST, False), (ParamKind.RESPONSE, True),
        ]
        method = extract(project, "c.py")[0].controllers[0].methods[0]
        assert method.needs_wrapper

    def test_string_annotations(self, project):
        self.write(project, "req: 'Request', res: \"Response\"")
        params = self.params(project)
        assert [p.kind for p in params] == [ParamKind.REQUEST, ParamKind.RESPONSE]
        assert not extract(project, "c.py")[0].controllers[0].methods[0].needs_wrapper

    def test_missing_annotation(self, project):
        self.write(project, "request")
        with pytest.raises(ExtractionError) as exc:
            extract(project, "c.py")
        assert exc.value.code == "MISSING_PARAM_TYPE"
        assert "request" in exc.value.message

    def test_bare_wrapper(self, project):
        self.write(project, "q: Query")
        with pytest.raises(ExtractionError) as exc:
            extract(project, "c.py")
        assert exc.value.code == "INVALID_PARAM_TYPE"

    def test_wrapper_arity(self, project):
        self.write(project, "q: Query[int, str]")
        with pytest.raises(ExtractionError) as exc:
            extract(project, "c.py")
        assert exc.value.code == "INVALID_PARAM_TYPE"

    def test_unresolved_type(self, project):
        self.write(project, "user: Ghost")
        with pytest.raises(ExtractionError, match="unresolved parameter type"):
            extract(project, "c.py")

    def test_unresolved_forward_reference(self, project):
        self.write(project, "user: 'Ghost'")
        with pytest.raises(ExtractionError, match="unresolved parameter type"):
            extract(project, "c.py")

    def test_literal_values_are_not_types(self, project):
        self.write(project, "mode: Literal['fast', 'slow']", extra_imports="from typing import Literal")
        assert self.params(project)[0].kind is ParamKind.OTHER

    def test_variadic_rejected(self, project):
        self.write(project, "*args: int")
        with pytest.raises(ExtractionError) as exc:
            extract(project, "c.py")
        assert exc.value.code == "INVALID_PARAM_TYPE"

    def test_wrapper_classification(self, project):
        self.write(project, "request: Request, response: Response")
        extraction, _ = extract(project, "c.py")
        assert not extraction.controllers[0].methods[0].needs_wrapper

        self.write(project, "response: Response, request: Request")
        extraction, _ = extract(project, "c.py")
        assert extraction.controllers[0].methods[0].needs_wrapper


# ============================================================================
# Decorator stripping
# ============================================================================

class TestStripping:

    def test_framework_decorators_removed(self, project):
        project.write("c.py", """
            import functools
            from gridfw import Request, Response, route, get

            @route("/users")
            class Users:
                @get("/")
                @functools.lru_cache
                def index(self, request: Request, response: Response):
                    return "ok"
        """)
        _, code = extract(project, "c.py")
        assert "@route" not in code
        assert "@get" not in code
        assert "@functools.lru_cache" in code
        assert "class Users:" in code
        assert 'return "ok"' in code

    def test_comments_survive(self, project):
        project.write("c.py", """
            from gridfw import route, get

            # users api
            @route("/users")
            class Users:
                # list users
                @get("/")
                # cached
                @staticmethod_like
                def index(self):
                    pass
        """)
        _, code = extract(project, "c.py")
        assert "# users api" in code
        assert "# list users" in code
        assert "# cached" in code

    def test_untouched_code_is_byte_identical(self, project):
        source = (
            "from gridfw import route, get\n"
            "\n"
            "\n"
            "def helper( a ,b ):   # odd spacing\n"
            "    return a+b\n"
            "\n"
            "\n"
            "@route('/x')\n"
            "class X:\n"
            "    @get('/')\n"
            "    def index(self):\n"
            "        return helper( 1 ,2 )\n"
        )
        project.write("c.py", source, dedent=False)
        _, code = extract(project, "c.py")
        assert code == (
            "from gridfw import route, get\n"
            "\n"
            "\n"
            "def helper( a ,b ):   # odd spacing\n"
            "    return a+b\n"
            "\n"
            "\n"
            "class X:\n"
            "    def index(self):\n"
            "        return helper( 1 ,2 )\n"
        )

    def test_strip_decorators_moves_comments_below(self):
        node = cst.parse_statement("@a\n# keep me\n@b\ndef f():\n    pass\n")
        stripped = strip_decorators(node, {1})
        code = cst.Module(body=[stripped]).code
        assert "@a" in code
        assert "@b" not in code
        assert "# keep me" in code


# ============================================================================
# I18n declarations
# ============================================================================

class TestI18n:

    def test_tag_parsing(self):
        module = cst.parse_module("x = 1\n#: @i18n fr\nfr = {}\nen = {}  #: @i18n en\nplain = {}\n")
        assert i18n_locale(module.body[1]) == (True, "fr")
        assert i18n_locale(module.body[2]) == (True, "en")
        assert i18n_locale(module.body[3]) == (False, None)

    def test_exported_variable(self, project):
        project.write("i18n.py", """
            import os

            #: @i18n fr
            fr = {"hello": "Bonjour"}
        """)
        extraction, _ = extract(project, "i18n.py")
        [entry] = extraction.i18n
        assert (entry.var_name, entry.locale) == ("fr", "fr")
        assert entry.location.line == 4

    def test_first_statement_tag(self, project):
        project.write("i18n.py", """
            #: @i18n de
            de = {"hello": "Hallo"}
        """)
        extraction, _ = extract(project, "i18n.py")
        assert [e.locale for e in extraction.i18n] == ["de"]

    def test_locale_required(self, project):
        project.write("i18n.py", """
            import os

            #: @i18n
            fr = {}
        """)
        with pytest.raises(ExtractionError) as exc:
            extract(project, "i18n.py")
        assert exc.value.code == "I18N_LOCALE_MISSING"

    def test_private_variable_rejected(self, project):
        project.write("i18n.py", """
            import os

            #: @i18n fr
            _fr = {}
        """)
        with pytest.raises(ExtractionError) as exc:
            extract(project, "i18n.py")
        assert exc.value.code == "I18N_NOT_EXPORTED"

    def test_missing_from_all_rejected(self, project):
        project.write("i18n.py", """
            __all__ = ["en"]

            #: @i18n fr
            fr = {}
        """)
        with pytest.raises(ExtractionError) as exc:
            extract(project, "i18n.py")
        assert exc.value.code == "I18N_NOT_EXPORTED"

    def test_nested_declaration_rejected(self, project):
        project.write("i18n.py", """
            def load():
                #: @i18n fr
                fr = {}
                return fr
        """)
        with pytest.raises(ExtractionError) as exc:
            extract(project, "i18n.py")
        assert exc.value.code == "I18N_NOT_EXPORTED"

    def test_untagged_template_left_alone(self, project):
        project.write("i18n.py", """
            from gridfw import template

            greeting = template("Hi {{ name }}")
        """)
        extraction, code = extract(project, "i18n.py")
        assert extraction.i18n == []
        assert code is None
