"""
Type-Resolved AST Walker.

Shared traversal and symbol resolution used by every extraction phase.
Decorators, markers and receivers are matched by the declaration they
resolve to (following imports, aliases and re-exports across program
modules), never by their spelling: a ``get`` defined in the file itself,
or bound in an inner scope, does not match the framework's ``get``.
"""

from __future__ import annotations

import logging
from typing import Iterator, Optional, Set, Tuple, Type, TypeVar

import libcst as cst
from libcst.helpers import get_full_name_for_node
from libcst.metadata import (
    Assignment,
    BuiltinAssignment,
    GlobalScope,
    MetadataWrapper,
    ParentNodeProvider,
    PositionProvider,
    Scope,
    ScopeProvider,
)

from .faults import SourceLocation
from .program import Program, SourceFile

logger = logging.getLogger("routeweave.walker")

N = TypeVar("N", bound=cst.CSTNode)

# Re-export chains longer than this are treated as unresolvable
MAX_FOLLOW_DEPTH = 8


# ============================================================================
# Traversal
# ============================================================================

def iter_nodes(node: cst.CSTNode) -> Iterator[cst.CSTNode]:
    """Depth-first, pre-order walk over a node and all its descendants."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def find_first(node: cst.CSTNode, kind: Type[N]) -> Optional[N]:
    """First descendant of the given node type, in pre-order."""
    for child in iter_nodes(node):
        if child is not node and isinstance(child, kind):
            return child
    return None


def split_attribute(expr: cst.BaseExpression) -> Optional[Tuple[cst.Name, list]]:
    """Split ``a.b.c`` into (Name a, ["b", "c"]); None for other shapes."""
    attrs = []
    while isinstance(expr, cst.Attribute):
        attrs.append(expr.attr.value)
        expr = expr.value
    if isinstance(expr, cst.Name):
        return expr, list(reversed(attrs))
    return None


def string_value(expr: cst.BaseExpression) -> Optional[str]:
    """Value of a static (non-f, non-bytes) string literal, else None."""
    if isinstance(expr, cst.SimpleString):
        value = expr.evaluated_value
        return value if isinstance(value, str) else None
    if isinstance(expr, cst.ConcatenatedString):
        left = string_value(expr.left)
        right = string_value(expr.right)
        if left is None or right is None:
            return None
        return left + right
    return None


# ============================================================================
# Symbol resolution
# ============================================================================

class SymbolResolver:
    """
    Resolved view of one program file.

    Wraps a MetadataWrapper over the file's current tree. All nodes handed
    to the resolver must come from ``resolver.module`` (the wrapper's copy),
    and transformers must run through ``resolver.visit`` for the same reason.
    """

    def __init__(self, program: Program, source: SourceFile):
        self.program = program
        self.source = source
        self.path = source.path
        self.tree = source.module
        self.wrapper = MetadataWrapper(source.module)
        self.module = self.wrapper.module
        self._scopes = self.wrapper.resolve(ScopeProvider)
        self._parents = self.wrapper.resolve(ParentNodeProvider)
        self._positions = self.wrapper.resolve(PositionProvider)
        self.module_name = program.module_name(source.path)

    @classmethod
    def for_file(cls, program: Program, path: str) -> "SymbolResolver":
        """Cached resolver for a file's current tree."""
        source = program.get(path)
        cached = program.resolvers.get(source.path)
        if cached is None or cached.tree is not source.module:
            cached = cls(program, source)
            program.resolvers[source.path] = cached
        return cached

    def visit(self, visitor):
        return self.wrapper.visit(visitor)

    # -- positions -------------------------------------------------------

    def location(self, node: cst.CSTNode) -> SourceLocation:
        pos = self._positions.get(node)
        if pos is None:
            return SourceLocation(self.path)
        return SourceLocation(self.path, pos.start.line, pos.start.column)

    def code_for(self, node: cst.CSTNode) -> str:
        return self.module.code_for_node(node)

    def parent(self, node: cst.CSTNode) -> Optional[cst.CSTNode]:
        return self._parents.get(node)

    def scope(self, node: cst.CSTNode) -> Optional[Scope]:
        return self._scopes.get(node) or self._scopes.get(self.module)

    @property
    def global_scope(self) -> GlobalScope:
        return self._scopes[self.module]

    # -- names -----------------------------------------------------------

    def is_bound(self, name: str, node: cst.CSTNode) -> bool:
        """Whether ``name`` resolves in the scope chain visible at ``node``."""
        scope = self.scope(node)
        return scope is not None and name in scope

    def qualified_names(self, node: cst.BaseExpression) -> Set[str]:
        """
        Absolute dotted names an expression refers to.

        Only Name/Attribute chains rooted at an import, a builtin or a
        module-level def/class resolve; variables and parameters do not.
        """
        split = split_attribute(node)
        if split is None:
            return set()
        root, attrs = split
        return self._scoped_names(self.scope(root), root.value, attrs)

    def _scoped_names(self, scope: Optional[Scope], name: str, attrs: list) -> Set[str]:
        if scope is None:
            return set()
        names = set()
        for assignment in scope[name]:
            base = self._assignment_name(assignment, name)
            if base:
                names.add(".".join([base, *attrs]))
        return names

    def _assignment_name(self, assignment, name: str) -> Optional[str]:
        if isinstance(assignment, BuiltinAssignment):
            return f"builtins.{name}"
        if not isinstance(assignment, Assignment):
            return None
        node = assignment.node
        if isinstance(node, cst.Import):
            for alias in node.names:
                if alias.evaluated_alias == name:
                    return alias.evaluated_name
                if alias.evaluated_alias is None and alias.evaluated_name.split(".")[0] == name:
                    return name
            return None
        if isinstance(node, cst.ImportFrom):
            module = self._import_from_module(node)
            if module is None or isinstance(node.names, cst.ImportStar):
                return None
            for alias in node.names:
                if (alias.evaluated_alias or alias.evaluated_name) == name:
                    return f"{module}.{alias.evaluated_name}"
            return None
        if isinstance(node, (cst.ClassDef, cst.FunctionDef)) and assignment.scope is self.global_scope:
            if self.module_name:
                return f"{self.module_name}.{name}"
            return name
        return None

    def _import_from_module(self, node: cst.ImportFrom) -> Optional[str]:
        module = get_full_name_for_node(node.module) if node.module is not None else ""
        if node.relative:
            return self.program.absolute_module(self.path, "." * len(node.relative) + (module or ""))
        return module or None

    def origins(self, node: cst.BaseExpression) -> Set[str]:
        """Qualified names after following re-exports through program modules."""
        found = set()
        for name in self.qualified_names(node):
            found.add(self.program_origin(name))
        return found

    def resolves_to(self, node: cst.BaseExpression, target: str) -> bool:
        return target in self.origins(node)

    def program_origin(self, qualified: str, depth: int = 0) -> str:
        """
        Follow ``pkg.mod.symbol`` to its declaration when ``pkg.mod`` is a
        program module that merely re-imports ``symbol``.
        """
        if depth > MAX_FOLLOW_DEPTH:
            return qualified
        parts = qualified.split(".")
        for i in range(len(parts) - 1, 0, -1):
            module = ".".join(parts[:i])
            path = self.program.path_for_module(module)
            if path is None:
                continue
            if i != len(parts) - 1:
                return qualified
            other = SymbolResolver.for_file(self.program, path)
            symbol = parts[-1]
            for assignment in other.global_scope[symbol]:
                if isinstance(assignment, Assignment) and isinstance(
                    assignment.node, (cst.Import, cst.ImportFrom)
                ):
                    target = other._assignment_name(assignment, symbol)
                    if target and target != qualified:
                        return other.program_origin(target, depth + 1)
            return qualified
        return qualified

    # -- types -----------------------------------------------------------

    def annotation_origins(self, annotation: cst.BaseExpression) -> Set[str]:
        """
        Origins of an annotation.

        A string forward reference naming a dotted path is resolved in the
        scope the string appears in.
        """
        if not isinstance(annotation, (cst.SimpleString, cst.ConcatenatedString)):
            return self.origins(annotation)
        text = string_value(annotation)
        if text is None:
            return set()
        try:
            parsed = cst.parse_expression(text.strip())
        except cst.ParserSyntaxError:
            return set()
        split = split_attribute(parsed)
        if split is None:
            return set()
        root, attrs = split
        scoped = self._scoped_names(self.scope(annotation), root.value, attrs)
        return {self.program_origin(name) for name in scoped}

    def definition(self, qualified: str) -> Optional[Tuple["SymbolResolver", cst.CSTNode]]:
        """Module-level class or function a qualified name declares in the program."""
        module, _, name = qualified.rpartition(".")
        if module:
            path = self.program.path_for_module(module)
            if path is None:
                return None
            other = SymbolResolver.for_file(self.program, path)
        elif self.module_name is None:
            other = self
        else:
            return None
        for stmt in other.module.body:
            if isinstance(stmt, (cst.ClassDef, cst.FunctionDef)) and stmt.name.value == name:
                return other, stmt
        return None

    def enclosing(self, node: cst.CSTNode, kind: Type[N]) -> Optional[N]:
        """Nearest ancestor of the given node type."""
        current = self.parent(node)
        while current is not None and not isinstance(current, kind):
            current = self.parent(current)
        return current

    def type_names(self, expr: cst.BaseExpression, depth: int = 0) -> Set[str]:
        """
        Declared or constructed type of an expression.

        Handles ``Entry()`` calls, calls to program functions annotated with
        a return type, names bound by annotated or call assignments,
        annotated parameters, ``self.<attr>`` inside methods, and names
        imported from another program module (resolved there).
        """
        if depth > MAX_FOLLOW_DEPTH:
            return set()
        if isinstance(expr, cst.Call):
            return self._with_bases(self.call_types(expr))
        if isinstance(expr, cst.Attribute):
            return self._with_bases(self.attribute_types(expr))
        if not isinstance(expr, cst.Name):
            return set()
        scope = self.scope(expr)
        if scope is None:
            return set()
        names: Set[str] = set()
        for assignment in scope[expr.value]:
            if not isinstance(assignment, Assignment):
                continue
            names |= self._assignment_types(assignment, expr.value, depth)
        return self._with_bases(names)

    def call_types(self, call: cst.Call) -> Set[str]:
        """Class a call constructs, or the declared return type of a program function."""
        names: Set[str] = set()
        for origin in self.origins(call.func):
            definition = self.definition(origin)
            if definition is None or isinstance(definition[1], cst.ClassDef):
                names.add(origin)
                continue
            other, function = definition
            if function.returns is not None and function.asynchronous is None:
                names |= other.annotation_origins(function.returns.annotation)
        return names

    def attribute_types(self, expr: cst.Attribute) -> Set[str]:
        """Type of ``self.<attr>`` read inside a method of the class."""
        if not isinstance(expr.value, cst.Name):
            return set()
        function = self.enclosing(expr, cst.FunctionDef)
        if function is None:
            return set()
        receiver = _receiver_name(function)
        if receiver != expr.value.value:
            return set()
        owner = self.parent(self.parent(function))
        if not isinstance(owner, cst.ClassDef):
            return set()
        return self.member_types(owner, expr.attr.value)

    def member_types(self, owner: cst.ClassDef, attr: str) -> Set[str]:
        """
        Types of an instance attribute: class-level annotations or
        assignments, and ``self.<attr>`` assignments in the class's methods.
        """
        if not isinstance(owner.body, cst.IndentedBlock):
            return set()
        names: Set[str] = set()
        for stmt in owner.body.body:
            if isinstance(stmt, cst.SimpleStatementLine):
                for small in stmt.body:
                    names |= self._member_assignment_types(small, lambda t: _is_name(t, attr))
            elif isinstance(stmt, cst.FunctionDef):
                receiver = _receiver_name(stmt)
                if receiver is None:
                    continue
                for node in iter_nodes(stmt.body):
                    names |= self._member_assignment_types(node, lambda t: _is_member(t, receiver, attr))
        return names

    def _member_assignment_types(self, node: cst.CSTNode, matches) -> Set[str]:
        if isinstance(node, cst.AnnAssign) and matches(node.target):
            return self.annotation_origins(node.annotation.annotation)
        if isinstance(node, cst.Assign) and isinstance(node.value, cst.Call):
            if any(matches(target.target) for target in node.targets):
                return self.call_types(node.value)
        return set()

    def _assignment_types(self, assignment: Assignment, name: str, depth: int) -> Set[str]:
        node = assignment.node
        if isinstance(node, cst.Param):
            if node.annotation is not None:
                return self.annotation_origins(node.annotation.annotation)
            return set()
        if isinstance(node, cst.ImportFrom):
            target = self._assignment_name(assignment, name)
            if not target:
                return set()
            module, _, symbol = target.rpartition(".")
            path = self.program.path_for_module(module)
            if path is None:
                return set()
            other = SymbolResolver.for_file(self.program, path)
            return other.global_types(symbol, depth + 1)
        if isinstance(node, cst.Name):
            parent = self.parent(node)
            if isinstance(parent, cst.AnnAssign):
                return self.annotation_origins(parent.annotation.annotation)
            if isinstance(parent, cst.AssignTarget):
                assign = self.parent(parent)
                if isinstance(assign, cst.Assign) and isinstance(assign.value, cst.Call):
                    return self.call_types(assign.value)
        return set()

    def global_types(self, name: str, depth: int = 0) -> Set[str]:
        """Types of a module-level name of this file."""
        names: Set[str] = set()
        for assignment in self.global_scope[name]:
            if isinstance(assignment, Assignment):
                names |= self._assignment_types(assignment, name, depth)
        return self._with_bases(names)

    def global_import(self, name: str) -> Optional[Tuple[str, cst.CSTNode]]:
        """
        Origin of a module-level name bound only by a ``from ... import``,
        with the import statement; None when the name is bound otherwise.
        """
        assignments = list(self.global_scope[name])
        if len(assignments) != 1:
            return None
        assignment = assignments[0]
        if not isinstance(assignment, Assignment) or not isinstance(assignment.node, cst.ImportFrom):
            return None
        target = self._assignment_name(assignment, name)
        if not target:
            return None
        return self.program_origin(target), assignment.node

    def _with_bases(self, names: Set[str], depth: int = 0) -> Set[str]:
        """Add the base classes of program-defined classes."""
        result = set(names)
        if depth > MAX_FOLLOW_DEPTH:
            return result
        for name in names:
            definition = self.definition(name)
            if definition is None or not isinstance(definition[1], cst.ClassDef):
                continue
            other, node = definition
            for base in node.bases:
                if base.keyword is None:
                    result |= other._with_bases(other.origins(base.value), depth + 1)
        return result


def _receiver_name(function: cst.FunctionDef) -> Optional[str]:
    positional = [*function.params.posonly_params, *function.params.params]
    return positional[0].name.value if positional else None


def _is_name(target: cst.BaseExpression, name: str) -> bool:
    return isinstance(target, cst.Name) and target.value == name


def _is_member(target: cst.BaseExpression, receiver: str, attr: str) -> bool:
    return (
        isinstance(target, cst.Attribute)
        and _is_name(target.value, receiver)
        and target.attr.value == attr
    )
