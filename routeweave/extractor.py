"""
Controller Extractor.

Walks one controller file, records every controller class, routed
method and i18n declaration it finds, and strips the compile-time
decorators from the tree in the same pass. Inline templates inside i18n
declarations are compiled and hoisted to module level.

The transformed tree is returned to the caller, which commits it to the
program only once the whole file extracted cleanly.
"""

from __future__ import annotations

import logging
import re
from typing import Dict, List, Optional, Sequence, Set, Tuple

import libcst as cst

from .faults import ExtractionError
from .imports import ImportRegistry, NameAllocator, insert_preamble
from .markers import AWAITABLE_PREFIXES, AWAITABLE_TYPES, GENERIC_TYPES, Markers
from .models import (
    ControllerDescriptor,
    ControllerRef,
    FileExtraction,
    I18nEntry,
    MethodDescriptor,
    ParamDescriptor,
    ParamKind,
    Verb,
)
from .program import Program
from .templates import InlineTemplateCompiler
from .walker import SymbolResolver, split_attribute, string_value

logger = logging.getLogger("routeweave.extractor")

TAG_PATTERN = re.compile(r"^#:\s*@i18n(?:\s+(?P<locale>\S+))?\s*$")
LITERAL_TYPES = ("typing.Literal", "typing_extensions.Literal")
ANNOTATED_TYPES = ("typing.Annotated", "typing_extensions.Annotated")
CONSTANT_NAMES = ("None", "True", "False")


def _decorator_target(decorator: cst.Decorator) -> cst.BaseExpression:
    expr = decorator.decorator
    return expr.func if isinstance(expr, cst.Call) else expr


def strip_decorators(node, indices: Set[int]):
    """
    Drop decorators by index, keeping their comment lines.

    Comments above a removed decorator move to the next kept decorator, or
    below the decorator list when none is left.
    """
    kept = []
    carry = []
    for index, decorator in enumerate(node.decorators):
        if index in indices:
            carry.extend(decorator.leading_lines)
            continue
        if carry:
            decorator = decorator.with_changes(leading_lines=[*carry, *decorator.leading_lines])
            carry = []
        kept.append(decorator)
    changes = {"decorators": kept}
    if carry:
        changes["lines_after_decorators"] = [*carry, *node.lines_after_decorators]
    return node.with_changes(**changes)


def i18n_locale(
    statement: cst.SimpleStatementLine,
    header: Sequence[cst.EmptyLine] = (),
) -> Tuple[bool, Optional[str]]:
    """
    (tagged, locale) for a statement.

    The tag is a ``#: @i18n <locale>`` comment in the comment block right
    above the statement, or trailing on the same line.
    """
    comments = []
    for line in reversed([*header, *statement.leading_lines]):
        if line.comment is None:
            break
        comments.append(line.comment.value)
    trailing = statement.trailing_whitespace.comment
    if trailing is not None:
        comments.append(trailing.value)
    for comment in comments:
        match = TAG_PATTERN.match(comment.strip())
        if match:
            return True, match.group("locale")
    return False, None


class ControllerExtractor(cst.CSTTransformer):
    """
    Single-file extraction pass.

    Args:
        resolver: Resolved view of the file
        markers: Framework symbols
        templates: Inline template compiler
        registry: Import registry for the runtime import of compiled templates
        pretty: Surround hoisted template functions with blank lines
    """

    def __init__(
        self,
        resolver: SymbolResolver,
        markers: Markers,
        templates: InlineTemplateCompiler,
        registry: ImportRegistry,
        pretty: bool = True,
    ):
        super().__init__()
        self.resolver = resolver
        self.markers = markers
        self.templates = templates
        self.registry = registry
        self.pretty = pretty
        self.extraction = FileExtraction(resolver.path)
        self.modified = False

        # ("class", descriptor or None) / ("function", None)
        self._frames: List[Tuple[str, Optional[ControllerDescriptor]]] = []
        self._strip: Dict[int, Set[int]] = {}
        self._exports = self._static_all(resolver.module)

        self._i18n_statement: Optional[cst.SimpleStatementLine] = None
        self._i18n_names: Set[str] = set()
        self._hoisted: List[cst.FunctionDef] = []

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _error(self, message: str, code: str, node: cst.CSTNode, **metadata) -> ExtractionError:
        return ExtractionError(message, code=code, location=self.resolver.location(node), metadata=metadata or None)

    @staticmethod
    def _static_all(module: cst.Module) -> Optional[Set[str]]:
        """Names of a literal ``__all__``, or None when absent or dynamic."""
        for stmt in module.body:
            if not isinstance(stmt, cst.SimpleStatementLine):
                continue
            for small in stmt.body:
                if isinstance(small, cst.Assign):
                    targets = [t.target for t in small.targets]
                    value = small.value
                elif isinstance(small, cst.AnnAssign) and small.value is not None:
                    targets = [small.target]
                    value = small.value
                else:
                    continue
                if not any(isinstance(t, cst.Name) and t.value == "__all__" for t in targets):
                    continue
                if not isinstance(value, (cst.List, cst.Tuple)):
                    return None
                names = set()
                for element in value.elements:
                    name = string_value(element.value)
                    if name is None:
                        return None
                    names.add(name)
                return names
        return None

    def is_exported(self, name: str) -> bool:
        if name.startswith("_"):
            return False
        return self._exports is None or name in self._exports

    def literal_args(self, call: cst.BaseExpression, what: str) -> List[str]:
        """
        Flatten a decorator's arguments into string literals.

        Positional string literals and (nested) lists or tuples of them are
        accepted; keywords, star arguments and anything computed are not.
        """
        if not isinstance(call, cst.Call):
            return []
        values: List[str] = []
        for arg in call.args:
            if arg.keyword is not None or arg.star:
                raise self._error(
                    f"@{what} accepts positional route literals only",
                    "NON_LITERAL_ROUTE",
                    arg,
                    decorator=what,
                )
            self._flatten(arg.value, values, what)
        return values

    def _flatten(self, expr: cst.BaseExpression, out: List[str], what: str) -> None:
        value = string_value(expr)
        if value is not None:
            out.append(value)
            return
        if isinstance(expr, (cst.List, cst.Tuple)):
            for element in expr.elements:
                if isinstance(element, cst.StarredElement):
                    raise self._error(f"@{what}: starred route arguments are not supported", "NON_LITERAL_ROUTE", element)
                self._flatten(element.value, out, what)
            return
        raise self._error(
            f"@{what}: route argument `{self.resolver.code_for(expr)}` is not a string literal",
            "NON_LITERAL_ROUTE",
            expr,
            decorator=what,
        )

    # ------------------------------------------------------------------
    # Classes
    # ------------------------------------------------------------------

    def visit_ClassDef(self, node: cst.ClassDef) -> bool:
        descriptor = None
        for index, decorator in enumerate(node.decorators):
            target = _decorator_target(decorator)
            if not self.markers.is_controller(self.resolver.origins(target)):
                continue
            name = self.resolver.code_for(target)
            descriptor = ControllerDescriptor(
                file=self.resolver.path,
                class_name=node.name.value,
                base_routes=self.literal_args(decorator.decorator, name),
                location=self.resolver.location(node),
            )
            self.extraction.controllers.append(descriptor)
            self._strip[id(node)] = {index}
            logger.debug("Controller %s routes=%s", descriptor.class_name, descriptor.base_routes)
            break
        self._frames.append(("class", descriptor))
        return True

    def leave_ClassDef(self, original_node, updated_node):
        self._frames.pop()
        indices = self._strip.pop(id(original_node), None)
        if indices:
            self.modified = True
            return strip_decorators(updated_node, indices)
        return updated_node

    # ------------------------------------------------------------------
    # Methods
    # ------------------------------------------------------------------

    def visit_FunctionDef(self, node: cst.FunctionDef) -> bool:
        verbs: List[Tuple[int, Verb, cst.Decorator]] = []
        is_static = is_classmethod = False
        for index, decorator in enumerate(node.decorators):
            origins = self.resolver.origins(_decorator_target(decorator))
            verb = self.markers.verb_for(origins)
            if verb is not None:
                verbs.append((index, verb, decorator))
            elif "builtins.staticmethod" in origins:
                is_static = True
            elif "builtins.classmethod" in origins:
                is_classmethod = True

        if verbs:
            frame_kind, controller = self._frames[-1] if self._frames else ("module", None)
            if frame_kind != "class" or controller is None:
                raise self._error(
                    f"Routed method '{node.name.value}' is not declared in a controller class",
                    "VERB_OUTSIDE_CONTROLLER",
                    node,
                )
            if is_static:
                raise self._error(
                    f"Routed method '{node.name.value}' cannot be a staticmethod",
                    "STATIC_HANDLER",
                    node,
                )
            self._add_methods(node, controller, verbs, is_classmethod)
            self._strip[id(node)] = {index for index, _, _ in verbs}

        self._frames.append(("function", None))
        return True

    def leave_FunctionDef(self, original_node, updated_node):
        self._frames.pop()
        indices = self._strip.pop(id(original_node), None)
        if indices:
            self.modified = True
            return strip_decorators(updated_node, indices)
        return updated_node

    def _add_methods(self, node, controller, verbs, is_classmethod: bool) -> None:
        params = self.handler_params(node)
        returns = None
        if node.returns is not None:
            returns = self.resolver.code_for(node.returns.annotation)
        is_async = node.asynchronous is not None or self._awaitable(node.returns)
        ref = ControllerRef(controller.file, controller.class_name, node.name.value, is_static=is_classmethod)

        for _, verb, decorator in verbs:
            name = self.resolver.code_for(_decorator_target(decorator))
            route_args = self.literal_args(decorator.decorator, name)
            if verb is Verb.METHOD:
                if not route_args or not route_args[0].isidentifier():
                    raise self._error(
                        f"@{name} needs the HTTP method name as its first argument",
                        "NON_LITERAL_ROUTE",
                        decorator,
                        decorator=name,
                    )
            method = MethodDescriptor(
                verb=verb,
                route_args=route_args,
                controller=ref,
                params=params,
                returns=returns,
                is_async=is_async,
                location=self.resolver.location(node),
            )
            controller.methods.append(method)
            logger.debug(
                "  %s %s.%s %s params=%s async=%s",
                verb.value, ref.class_name, ref.method_name, route_args,
                [p.kind.value for p in params], is_async,
            )

    def _awaitable(self, returns: Optional[cst.Annotation]) -> bool:
        if returns is None:
            return False
        annotation = returns.annotation
        root = annotation.value if isinstance(annotation, cst.Subscript) else annotation
        if any(name in AWAITABLE_TYPES for name in self.resolver.origins(root)):
            return True
        return self.resolver.code_for(annotation).startswith(AWAITABLE_PREFIXES)

    # ------------------------------------------------------------------
    # Parameters
    # ------------------------------------------------------------------

    def handler_params(self, node: cst.FunctionDef) -> List[ParamDescriptor]:
        params = node.params
        if isinstance(params.star_arg, cst.Param) or params.star_kwarg is not None:
            raise self._error(
                f"Handler '{node.name.value}' cannot take *args or **kwargs",
                "INVALID_PARAM_TYPE",
                node,
            )
        positional = [*params.posonly_params, *params.params]
        if not positional:
            raise self._error(
                f"Handler '{node.name.value}' must take self or cls as its first parameter",
                "INVALID_PARAM_TYPE",
                node,
            )
        described = [self.describe_param(param) for param in positional[1:]]
        described.extend(self.describe_param(param, keyword_only=True) for param in params.kwonly_params)
        return described

    def describe_param(self, param: cst.Param, keyword_only: bool = False) -> ParamDescriptor:
        name = param.name.value
        if param.annotation is None:
            raise self._error(f"Parameter '{name}' has no type annotation", "MISSING_PARAM_TYPE", param)
        annotation = param.annotation.annotation
        origins = self.resolver.annotation_origins(annotation)

        kind = self.markers.param_kind(origins)
        if kind is not None:
            return ParamDescriptor(name, kind, keyword_only=keyword_only)

        if self.markers.wrapper_kind(origins) is not None:
            raise self._error(
                f"Parameter '{name}': `{self.resolver.code_for(annotation)}` needs a type argument",
                "INVALID_PARAM_TYPE",
                param,
            )

        if isinstance(annotation, cst.Subscript):
            wrapper = self.markers.wrapper_kind(self.resolver.origins(annotation.value))
            if wrapper is not None:
                if len(annotation.slice) != 1 or not isinstance(annotation.slice[0].slice, cst.Index):
                    raise self._error(
                        f"Parameter '{name}': `{self.resolver.code_for(annotation)}` takes exactly one type argument",
                        "INVALID_PARAM_TYPE",
                        param,
                    )
                argument = annotation.slice[0].slice.value
                self.check_annotation(argument, param, name)
                generic = any(origin in GENERIC_TYPES for origin in self.resolver.origins(argument))
                return ParamDescriptor(name, wrapper, self.resolver.code_for(argument), generic, keyword_only)

        self.check_annotation(annotation, param, name)
        return ParamDescriptor(name, ParamKind.OTHER, keyword_only=keyword_only)

    def check_annotation(self, expr: cst.BaseExpression, anchor: cst.CSTNode, name: str) -> None:
        """
        Every name an annotation uses must be bound where the handler is.

        String forward references are parsed and checked the same way.
        """
        if isinstance(expr, cst.Name):
            if expr.value not in CONSTANT_NAMES and not self.resolver.is_bound(expr.value, anchor):
                raise self._error(
                    f"Parameter '{name}': unresolved parameter type `{expr.value}`",
                    "INVALID_PARAM_TYPE",
                    anchor,
                )
        elif isinstance(expr, cst.Attribute):
            split = split_attribute(expr)
            if split is None:
                raise self._unsupported(expr, anchor, name)
            self.check_annotation(split[0], anchor, name)
        elif isinstance(expr, cst.Subscript):
            self.check_annotation(expr.value, anchor, name)
            origins = self.resolver.origins(expr.value)
            if any(origin in LITERAL_TYPES for origin in origins):
                return
            elements = list(expr.slice)
            if any(origin in ANNOTATED_TYPES for origin in origins):
                elements = elements[:1]
            for element in elements:
                if isinstance(element.slice, cst.Index):
                    self.check_annotation(element.slice.value, anchor, name)
        elif isinstance(expr, (cst.SimpleString, cst.ConcatenatedString)):
            text = string_value(expr)
            if text is None:
                raise self._unsupported(expr, anchor, name)
            try:
                parsed = cst.parse_expression(text.strip())
            except cst.ParserSyntaxError:
                raise self._error(
                    f"Parameter '{name}': invalid forward reference {text!r}",
                    "INVALID_PARAM_TYPE",
                    anchor,
                ) from None
            self.check_annotation(parsed, anchor, name)
        elif isinstance(expr, cst.BinaryOperation) and isinstance(expr.operator, cst.BitOr):
            self.check_annotation(expr.left, anchor, name)
            self.check_annotation(expr.right, anchor, name)
        elif isinstance(expr, (cst.List, cst.Tuple)):
            for element in expr.elements:
                self.check_annotation(element.value, anchor, name)
        elif not isinstance(expr, cst.Ellipsis):
            raise self._unsupported(expr, anchor, name)

    def _unsupported(self, expr, anchor, name) -> ExtractionError:
        # expr may come from a parsed forward reference, outside the resolved tree
        code = cst.Module(body=[]).code_for_node(expr)
        return self._error(
            f"Parameter '{name}': unsupported parameter type `{code}`",
            "INVALID_PARAM_TYPE",
            anchor,
        )

    # ------------------------------------------------------------------
    # I18n declarations
    # ------------------------------------------------------------------

    def _is_first_statement(self, node: cst.SimpleStatementLine) -> bool:
        # Comments above a file's first statement belong to the module header
        body = self.resolver.module.body
        return bool(body) and body[0] is node

    def visit_SimpleStatementLine(self, node: cst.SimpleStatementLine) -> bool:
        header = self.resolver.module.header if self._is_first_statement(node) else ()
        tagged, locale = i18n_locale(node, header)
        if not tagged:
            return True
        if not locale:
            raise self._error("@i18n tag needs a locale, e.g. `#: @i18n fr`", "I18N_LOCALE_MISSING", node)

        names = []
        for small in node.body:
            if isinstance(small, cst.Assign):
                names.extend(t.target.value for t in small.targets if isinstance(t.target, cst.Name))
            elif isinstance(small, cst.AnnAssign) and isinstance(small.target, cst.Name):
                names.append(small.target.value)
        if not names:
            raise self._error("@i18n tag must annotate a variable assignment", "I18N_NOT_EXPORTED", node)

        module_level = isinstance(self.resolver.parent(node), cst.Module)
        for name in names:
            if not module_level or not self.is_exported(name):
                raise self._error(
                    f"i18n variable '{name}' must be an exported module-level variable",
                    "I18N_NOT_EXPORTED",
                    node,
                    variable=name,
                )
            self.extraction.i18n.append(
                I18nEntry(self.resolver.path, name, locale, self.resolver.location(node))
            )
            logger.debug("i18n %s -> %s", locale, name)

        self._i18n_statement = node
        self._i18n_names = set(names)
        self._hoisted = []
        return True

    def leave_Call(self, original_node, updated_node):
        if self._i18n_statement is None or not self.templates.is_helper_call(self.resolver, original_node):
            return updated_node
        text = self.templates.literal(self.resolver, original_node)
        compiled = self.templates.compile(
            text,
            i18n_names=self._i18n_names,
            registry=self.registry,
            location=self.resolver.location(original_node.args[0]),
        )
        self._hoisted.append(compiled.function)
        self.modified = True
        return cst.Name(compiled.name)

    def leave_SimpleStatementLine(self, original_node, updated_node):
        if original_node is not self._i18n_statement:
            return updated_node
        hoisted = self._hoisted
        self._i18n_statement = None
        self._i18n_names = set()
        self._hoisted = []
        if not hoisted:
            return updated_node
        if self.pretty:
            spacing = [cst.EmptyLine(), cst.EmptyLine()]
            hoisted = [fn.with_changes(leading_lines=spacing) for fn in hoisted]
        return cst.FlattenSentinel([*hoisted, updated_node])


def extract_file(
    program: Program,
    path: str,
    markers: Markers,
    templates: InlineTemplateCompiler,
    pretty: bool = True,
) -> Tuple[FileExtraction, Optional[cst.Module]]:
    """
    Extract one controller file.

    Returns:
        The extraction, and the rewritten tree (None when nothing changed)
    """
    resolver = SymbolResolver.for_file(program, path)
    registry = ImportRegistry(program, NameAllocator(resolver.module))
    extractor = ControllerExtractor(resolver, markers, templates, registry, pretty)
    module = resolver.visit(extractor)
    extraction = extractor.extraction

    logger.info(
        "Extracted %s: %d controller(s), %d method(s), %d i18n",
        path,
        len(extraction.controllers),
        sum(len(c.methods) for c in extraction.controllers),
        len(extraction.i18n),
    )
    if not extractor.modified:
        return extraction, None
    return extraction, insert_preamble(module, registry.statements())
