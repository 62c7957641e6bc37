"""
Inline Template Compiler.

Compiles the literal handed to the framework's ``template(...)`` helper
inside an i18n declaration into a plain render function, using Jinja2's
own code generator, and rewrites the generated code so it can live in
the user's module:

- names Jinja2 imports from ``jinja2.runtime`` (plus ``environment``)
  are qualified through the runtime support module
- unannotated parameters and single-name assignments are widened to
  ``Any`` so strict type checkers accept the generated code
- lookups of the i18n variable itself become direct references

Template inheritance and inclusion are rejected: an inline template has
no loader to resolve them against.
"""

from __future__ import annotations

import logging
import textwrap
from dataclasses import dataclass
from typing import Iterable, List, Optional, Set

import libcst as cst
from jinja2 import Environment, TemplateSyntaxError

from .faults import ExtractionError, SourceLocation
from .imports import ImportRegistry
from .markers import Markers
from .runtime import create_environment
from .walker import SymbolResolver, iter_nodes, string_value

logger = logging.getLogger("routeweave.templates")

ROOT_FUNCTION = "root"
BLOCK_PREFIX = "block_"
# Names Jinja2's generated code binds through the root signature, not imports
IMPLICIT_RUNTIME_NAMES = frozenset({"environment"})
# Attribute calls the generated code makes to load other templates
TEMPLATE_LOADS = frozenset({"get_template", "select_template", "get_or_select_template"})
RESOLVE_CALLS = frozenset({"resolve", "resolve_or_missing"})


@dataclass
class CompiledTemplate:
    """A compiled inline template, ready to be hoisted."""
    name: str
    function: cst.FunctionDef

    @property
    def code(self) -> str:
        return cst.Module(body=[self.function]).code


def runtime_imports(module: cst.Module) -> Set[str]:
    """Names the generated module imports from ``jinja2.runtime``."""
    names: Set[str] = set()
    for stmt in module.body:
        if not isinstance(stmt, cst.SimpleStatementLine):
            continue
        for small in stmt.body:
            if not isinstance(small, cst.ImportFrom) or isinstance(small.names, cst.ImportStar):
                continue
            if small.module is None or module.code_for_node(small.module) != "jinja2.runtime":
                continue
            for alias in small.names:
                names.add(alias.evaluated_alias or alias.evaluated_name)
    return names


class _TemplateRewriter(cst.CSTTransformer):
    """Rewrites the body of Jinja2's ``root`` render function."""

    def __init__(self, alias: str, runtime_names: Set[str], i18n_names: Set[str], root_params: Set[str]):
        super().__init__()
        self.alias = alias
        self.runtime_names = runtime_names
        self.i18n_names = i18n_names
        self.root_params = root_params
        self.declared: Set[str] = set()
        # Names that are declarations or attribute/keyword labels, not loads
        self._labels: Set[int] = set()
        self._depth = 0
        self._lambdas = 0

    def _runtime(self, name: str) -> cst.Attribute:
        return cst.Attribute(value=cst.Name(self.alias), attr=cst.Name(name))

    def _any(self) -> cst.Annotation:
        return cst.Annotation(annotation=self._runtime("Any"))

    # -- declarations ----------------------------------------------------

    def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
        self._labels.add(id(node.name))
        self._depth += 1
        return True

    def leave_FunctionDef(self, original_node, updated_node):
        self._depth -= 1
        return updated_node

    def visit_ClassDef(self, node: cst.ClassDef) -> bool:
        self._labels.add(id(node.name))
        return True

    def visit_Lambda(self, node: cst.Lambda) -> bool:
        self._lambdas += 1
        return True

    def leave_Lambda(self, original_node, updated_node):
        self._lambdas -= 1
        return updated_node

    def visit_Param(self, node: cst.Param) -> bool:
        self._labels.add(id(node.name))
        return True

    def visit_Attribute(self, node: cst.Attribute) -> bool:
        self._labels.add(id(node.attr))
        return True

    def visit_Arg(self, node: cst.Arg) -> bool:
        if node.keyword is not None:
            self._labels.add(id(node.keyword))
        return True

    def visit_Global(self, node: cst.Global) -> bool:
        self.declared.update(item.name.value for item in node.names)
        return False

    def visit_Nonlocal(self, node: cst.Nonlocal) -> bool:
        self.declared.update(item.name.value for item in node.names)
        return False

    # -- rewrites --------------------------------------------------------

    def leave_Name(self, original_node, updated_node):
        if id(original_node) in self._labels:
            return updated_node
        name = updated_node.value
        if name in self.runtime_names and name not in self.root_params:
            return self._runtime(name)
        return updated_node

    def leave_Param(self, original_node, updated_node):
        changes = {}
        # root's defaults are evaluated at module level, outside its own params
        default = updated_node.default
        if self._depth == 1 and isinstance(default, cst.Name) and default.value in self.runtime_names:
            changes["default"] = self._runtime(default.value)
        if updated_node.annotation is None and self._lambdas == 0:
            changes["annotation"] = self._any()
            if updated_node.default is not None:
                changes["equal"] = cst.AssignEqual(
                    whitespace_before=cst.SimpleWhitespace(" "),
                    whitespace_after=cst.SimpleWhitespace(" "),
                )
        return updated_node.with_changes(**changes) if changes else updated_node

    def leave_Assign(self, original_node, updated_node):
        if len(updated_node.targets) != 1:
            return updated_node
        target = updated_node.targets[0].target
        if not isinstance(target, cst.Name) or target.value in self.declared:
            return updated_node
        return cst.AnnAssign(target=target, annotation=self._any(), value=updated_node.value)

    def leave_Call(self, original_node, updated_node):
        func = updated_node.func
        if isinstance(func, cst.Name):
            called = func.value
        elif isinstance(func, cst.Attribute):
            called = func.attr.value
        else:
            return updated_node
        if called not in RESOLVE_CALLS or len(updated_node.args) != 1:
            return updated_node
        name = string_value(updated_node.args[0].value)
        if name in self.i18n_names:
            return cst.Name(name)
        return updated_node


class InlineTemplateCompiler:
    """
    Compiles ``template("...")`` literals to hoistable render functions.

    Args:
        markers: Framework symbols (locates the helper)
        runtime_module: Module generated code imports runtime names from
        environment: Jinja2 environment used for compilation
    """

    def __init__(
        self,
        markers: Markers,
        runtime_module: str = "routeweave.runtime",
        environment: Optional[Environment] = None,
    ):
        self.markers = markers
        self.runtime_module = runtime_module
        self.environment = environment or create_environment()

    def is_helper_call(self, resolver: SymbolResolver, node: cst.CSTNode) -> bool:
        return isinstance(node, cst.Call) and resolver.resolves_to(node.func, self.markers.template_helper)

    # ------------------------------------------------------------------
    # Literal
    # ------------------------------------------------------------------

    def literal(self, resolver: SymbolResolver, call: cst.Call) -> str:
        """
        Template text of a helper call.

        Accepts a plain string literal or an f-string without placeholders.

        Raises:
            ExtractionError: Anything else (placeholders, bytes, extra args)
        """
        location = resolver.location(call)
        if len(call.args) != 1 or call.args[0].keyword is not None or call.args[0].star:
            raise ExtractionError(
                "template() takes exactly one positional string literal",
                code="TEMPLATE_NOT_LITERAL",
                location=location,
            )
        value = call.args[0].value
        text = string_value(value)
        if text is None and isinstance(value, cst.FormattedString):
            text = self._formatted_text(value, resolver, location)
        if text is None:
            raise ExtractionError(
                f"template() argument must be a string literal, got `{resolver.code_for(value)}`",
                code="TEMPLATE_NOT_LITERAL",
                location=location,
            )
        return text

    def _formatted_text(self, node: cst.FormattedString, resolver: SymbolResolver, location: SourceLocation) -> str:
        if any(isinstance(part, cst.FormattedStringExpression) for part in node.parts):
            raise ExtractionError(
                f"template() literal cannot contain placeholders: `{resolver.code_for(node)}`",
                code="TEMPLATE_NOT_LITERAL",
                location=location,
            )
        prefix = node.prefix.lower().replace("f", "")
        raw = "".join(part.value for part in node.parts)
        text = cst.SimpleString(f"{prefix}{node.quote}{raw}{node.quote}").evaluated_value
        return text.replace("{{", "{").replace("}}", "}")

    # ------------------------------------------------------------------
    # Compilation
    # ------------------------------------------------------------------

    def compile(
        self,
        text: str,
        *,
        i18n_names: Iterable[str],
        registry: ImportRegistry,
        location: Optional[SourceLocation] = None,
    ) -> CompiledTemplate:
        """
        Compile template text and rewrite the render function.

        Args:
            text: Template source as written in the literal
            i18n_names: Variables of the enclosing i18n declaration
            registry: Import registry of the file the function is hoisted into
            location: Literal position, for error reporting

        Raises:
            ExtractionError: Syntax error, or inheritance/inclusion used
        """
        location = location or SourceLocation("<template>")
        source = textwrap.dedent(text[1:] if text.startswith("\n") else text)
        first_line = location.line + (1 if text.startswith("\n") else 0)

        try:
            code = self.environment.compile(source, raw=True)
        except TemplateSyntaxError as e:
            raise ExtractionError(
                f"Template syntax error: {e.message}",
                code="TEMPLATE_SYNTAX",
                location=SourceLocation(location.file, first_line + (e.lineno or 1) - 1, 0),
                metadata={"template_line": e.lineno},
            ) from e

        generated = cst.parse_module(code)
        root = self._root_function(generated, location)
        runtime_names = runtime_imports(generated) | IMPLICIT_RUNTIME_NAMES

        alias = registry.module(self.runtime_module)
        root_params = {p.name.value for p in iter_nodes(root.params) if isinstance(p, cst.Param)}
        rewritten = root.visit(_TemplateRewriter(alias, runtime_names, set(i18n_names), root_params))

        name = registry.names.allocate("template")
        function = rewritten.with_changes(
            name=cst.Name(name),
            decorators=[cst.Decorator(decorator=cst.Attribute(value=cst.Name(alias), attr=cst.Name("template")))],
            leading_lines=[],
        )
        logger.debug("Compiled inline template %s at %s", name, location)
        return CompiledTemplate(name, function)

    def _root_function(self, generated: cst.Module, location: SourceLocation) -> cst.FunctionDef:
        root = None
        blocks: List[str] = []
        for stmt in generated.body:
            if not isinstance(stmt, cst.FunctionDef):
                continue
            if stmt.name.value == ROOT_FUNCTION:
                root = stmt
            elif stmt.name.value.startswith(BLOCK_PREFIX):
                blocks.append(stmt.name.value[len(BLOCK_PREFIX):])
        if blocks:
            raise ExtractionError(
                "Inline templates cannot define blocks or extend other templates",
                code="TEMPLATE_UNSUPPORTED",
                location=location,
                metadata={"blocks": blocks},
            )
        if root is None:
            raise ExtractionError(
                "Compiled template has no root render function",
                code="TEMPLATE_SYNTAX",
                location=location,
            )
        for node in iter_nodes(root):
            if isinstance(node, cst.Attribute) and node.attr.value in TEMPLATE_LOADS:
                raise ExtractionError(
                    "Inline templates cannot include, import or extend other templates",
                    code="TEMPLATE_UNSUPPORTED",
                    location=location,
                    metadata={"call": node.attr.value},
                )
        return root
