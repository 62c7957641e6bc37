"""
Router Synthesizer.

Replaces every discovery call-site of a file with a call to a generated
module-level function that registers the pattern's controllers on the
receiver and returns it::

    app.scan("controllers/*.py")

becomes::

    def _rw_scan_1(_rw_app_1):
        _rw_app_1.get(["/"], _rw_home_controller_1.index)
        return _rw_app_1

    _rw_scan_1(app)

Controller classes are imported and instantiated once per output file,
ahead of the file's own code (after its docstring and __future__ imports).
"""

from __future__ import annotations

import json
import logging
import os
from typing import Dict, List, Optional, Set, Tuple

import libcst as cst

from .faults import SynthesisError
from .imports import ImportRegistry, NameAllocator, insert_preamble, snake_case
from .markers import Markers
from .models import (
    ControllerDescriptor,
    MethodDescriptor,
    ParamDescriptor,
    ParamKind,
    PatternKey,
    PatternResult,
    Verb,
)
from .program import Program
from .scanner import DiscoverySite, PatternScanner
from .walker import SymbolResolver

logger = logging.getLogger("routeweave.synthesizer")

INDENT = "    "


def list_literal(values: List[str]) -> str:
    return "[" + ", ".join(json.dumps(v) for v in values) + "]"


def forwarded_argument(param: ParamDescriptor) -> str:
    """Expression passed for one handler parameter inside a wrapper."""
    if param.kind is ParamKind.REQUEST:
        return "request"
    if param.kind is ParamKind.RESPONSE:
        return "response"
    if param.kind is ParamKind.QUERY:
        return "request.query" if param.generic else "request"
    if param.kind is ParamKind.PATH:
        return "request.params" if param.generic else "request"
    return "None"


class _CallSiteRewriter(cst.CSTTransformer):
    """Swaps discovery calls for generated function calls, hoisting the functions."""

    def __init__(self, plans: Dict[cst.Call, Tuple[str, cst.FunctionDef]], pretty: bool):
        super().__init__()
        self.plans = plans
        self.pretty = pretty
        self._pending: List[Optional[List[cst.FunctionDef]]] = []
        self._elifs: Set[int] = set()

    def on_visit(self, node: cst.CSTNode) -> bool:
        if isinstance(node, cst.BaseStatement):
            # elif branches live in If.orelse and cannot be flattened into
            self._pending.append(None if id(node) in self._elifs else [])
        if isinstance(node, cst.If) and isinstance(node.orelse, cst.If):
            self._elifs.add(id(node.orelse))
        return super().on_visit(node)

    def on_leave(self, original_node, updated_node):
        result = super().on_leave(original_node, updated_node)
        if not isinstance(original_node, cst.BaseStatement):
            return result
        hoisted = self._pending.pop()
        if not hoisted:
            return result
        if self.pretty:
            hoisted = [fn.with_changes(leading_lines=[cst.EmptyLine()]) for fn in hoisted]
            result = result.with_changes(leading_lines=[cst.EmptyLine(), *result.leading_lines])
        return cst.FlattenSentinel([*hoisted, result])

    def _target_frame(self) -> List[cst.FunctionDef]:
        for frame in reversed(self._pending):
            if frame is not None:
                return frame
        raise SynthesisError("Discovery call outside of any statement", code="SYNTHESIS_FAILED")

    def leave_Call(self, original_node, updated_node):
        plan = self.plans.get(original_node)
        if plan is None:
            return updated_node
        name, function = plan
        self._target_frame().append(function)
        return cst.Call(func=cst.Name(name), args=[cst.Arg(value=updated_node.func.value)])


class RouterSynthesizer:
    """
    Generates router code for the discovery files of one compilation.

    Args:
        program: The compilation's program
        markers: Framework symbols
        scanner: Finds the discovery sites of a file's current tree
        pretty: Insert blank lines between generated blocks
    """

    def __init__(self, program: Program, markers: Markers, scanner: PatternScanner, pretty: bool = True):
        self.program = program
        self.markers = markers
        self.scanner = scanner
        self.pretty = pretty

    def synthesize(self, path: str, table: Dict[PatternKey, PatternResult]) -> Optional[cst.Module]:
        """
        Rewrite one discovery file.

        Returns:
            The rewritten tree, or None when the file has no discovery site

        Raises:
            SynthesisError: A site's pattern has no extraction result
        """
        resolver = SymbolResolver.for_file(self.program, path)
        sites = self.scanner.find_sites(resolver)
        if not sites:
            return None

        state = _FileState(self.program, resolver, sites[0].location.line)
        plans: Dict[cst.Call, Tuple[str, cst.FunctionDef]] = {}
        directory = os.path.dirname(resolver.path)
        for site in sites:
            key = PatternKey(directory, site.pattern)
            result = table.get(key)
            if result is None:
                raise SynthesisError(
                    f"No extraction result for pattern {key}",
                    location=site.location,
                    metadata={"pattern": site.pattern, "directory": directory},
                )
            plans[site.call] = self._scan_function(site, result, state)

        module = resolver.visit(_CallSiteRewriter(plans, self.pretty))
        module = insert_preamble(module, state.preamble(self.pretty))
        logger.info("Synthesized %d discovery site(s) in %s", len(sites), path)
        return module

    # ------------------------------------------------------------------
    # Code generation
    # ------------------------------------------------------------------

    def _scan_function(
        self, site: DiscoverySite, result: PatternResult, state: "_FileState"
    ) -> Tuple[str, cst.FunctionDef]:
        names = state.names
        function = names.allocate("scan")
        app = names.allocate("app")

        blocks: List[List[str]] = []
        for controller in result.controllers:
            if not controller.methods:
                continue
            blocks.append(self._controller_block(controller, app, state))
        i18n = [
            f"{app}.i18n({json.dumps(entry.locale)}, {state.registry.file_symbol(entry.file, entry.var_name)})"
            for entry in result.i18n
        ]
        if i18n:
            blocks.append(i18n)

        body: List[str] = []
        for block in blocks:
            if body and self.pretty:
                body.append("")
            body.extend(block)
        if body and self.pretty:
            body.append("")
        body.append(f"return {app}")

        lines = [f"def {function}({app}):"]
        lines.extend(INDENT + line if line else "" for line in body)
        source = "\n".join(lines) + "\n"
        logger.debug("Generated %s for %r:\n%s", function, site.pattern, source)
        return function, cst.parse_statement(source)

    def _controller_block(self, controller: ControllerDescriptor, app: str, state: "_FileState") -> List[str]:
        lines: List[str] = []
        target = app
        if controller.base_routes:
            target = state.names.allocate("router")
            lines.append(f"{target} = {app}.route({list_literal(controller.base_routes)})")

        for method in controller.methods:
            callee = f"{state.owner(method)}.{method.controller.method_name}"
            args = self._route_arguments(method, state)
            if method.needs_wrapper:
                handler = state.names.allocate("handler")
                lines.extend(self._wrapper(handler, callee, method, state))
                args.append(handler)
            else:
                args.append(callee)
            lines.append(f"{target}.{method.verb.value}({', '.join(args)})")
        return lines

    def _route_arguments(self, method: MethodDescriptor, state: "_FileState") -> List[str]:
        route_args = list(method.route_args)
        args: List[str] = []
        if method.verb is Verb.METHOD:
            args.append(state.verb_symbol(self.markers.framework, route_args.pop(0)))
        if route_args:
            args.append(list_literal(route_args))
        return args

    def _wrapper(self, handler: str, callee: str, method: MethodDescriptor, state: "_FileState") -> List[str]:
        request = state.registry.symbol(self.markers.framework, "Request")
        response = state.registry.symbol(self.markers.framework, "Response")
        forwarded = ", ".join(
            f"{p.name}={forwarded_argument(p)}" if p.keyword_only else forwarded_argument(p)
            for p in method.params
        )
        prefix = "async " if method.is_async else ""
        awaited = "await " if method.is_async else ""
        return [
            f"{prefix}def {handler}(request: {request}, response: {response}):",
            f"{INDENT}return {awaited}{callee}({forwarded})",
        ]


class _FileState:
    """Names, imports and controller instances of one output file."""

    def __init__(self, program: Program, resolver: SymbolResolver, first_site_line: int):
        self.resolver = resolver
        self.first_site_line = first_site_line
        self.names = NameAllocator(resolver.module)
        self.registry = ImportRegistry(program, self.names)
        # (file, class) -> (instance name, class alias), first-use order
        self.instances: Dict[Tuple[str, str], Tuple[str, str]] = {}

    def verb_symbol(self, framework: str, verb: str) -> str:
        """
        The HTTP verb constant, by its own name where possible.

        An existing ``from <framework> import <verb>`` ahead of the first
        discovery site is reused as-is.
        """
        bound = self.resolver.global_import(verb)
        if bound is not None:
            origin, node = bound
            if origin == f"{framework}.{verb}" and self.resolver.location(node).line < self.first_site_line:
                self.registry.adopt(framework, verb, verb)
        return self.registry.symbol(framework, verb, verbatim=True)

    def owner(self, method: MethodDescriptor) -> str:
        """Expression the handler is looked up on: class alias or instance."""
        ref = method.controller
        class_alias = self.registry.file_symbol(ref.file, ref.class_name)
        if ref.is_static:
            return class_alias
        key = (ref.file, ref.class_name)
        if key not in self.instances:
            self.instances[key] = (self.names.allocate(snake_case(ref.class_name)), class_alias)
        return self.instances[key][0]

    def preamble(self, pretty: bool) -> List[cst.BaseStatement]:
        statements: List[cst.BaseStatement] = list(self.registry.statements())
        if self.instances:
            targets = [name for name, _ in self.instances.values()]
            values = [f"{alias}()" for _, alias in self.instances.values()]
            line = f"{', '.join(targets)} = {', '.join(values)}"
            instance = cst.parse_statement(line)
            if pretty:
                instance = instance.with_changes(leading_lines=[cst.EmptyLine()])
            statements.append(instance)
        return statements
