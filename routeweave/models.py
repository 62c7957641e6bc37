"""
Compile-time metadata extracted from controller files.

These are plain value objects: the extractor produces them, the
synthesizer consumes them. Cross-file references (ControllerRef) are
keys into the synthesizer's import registry, never live pointers.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from .faults import DuplicateLocaleError, SourceLocation


class Verb(str, Enum):
    """Method-level routing decorators."""
    GET = "get"
    HEAD = "head"
    POST = "post"
    WS = "ws"
    METHOD = "method"  # first route arg is the HTTP verb itself


class ParamKind(str, Enum):
    """Where a handler argument comes from."""
    REQUEST = "request"
    RESPONSE = "response"
    QUERY = "query"
    PATH = "path"
    OTHER = "other"


@dataclass(frozen=True)
class PatternKey:
    """
    Identity of one discovery pattern.

    The same literal in two directories names different files, so the
    scanning directory is part of the key.
    """
    directory: str
    pattern: str

    def __str__(self) -> str:
        return f"{self.pattern!r} in {self.directory}"


@dataclass(frozen=True)
class ControllerRef:
    """Symbol reference to a handler: (file, class, method)."""
    file: str
    class_name: str
    method_name: str
    is_static: bool = False


@dataclass(frozen=True)
class ParamDescriptor:
    """
    One handler parameter.

    Attributes:
        name: Parameter name in the handler signature
        kind: Argument source
        type_argument: Source text of the Query[...]/Path[...] argument
        generic: The type argument resolves to Any/object
        keyword_only: Declared after `*`, so it must be passed by name
    """
    name: str
    kind: ParamKind
    type_argument: Optional[str] = None
    generic: bool = False
    keyword_only: bool = False


@dataclass
class MethodDescriptor:
    """One routed handler method (one per verb decorator)."""
    verb: Verb
    route_args: List[str]
    controller: ControllerRef
    params: List[ParamDescriptor] = field(default_factory=list)
    returns: Optional[str] = None
    is_async: bool = False
    location: Optional[SourceLocation] = None

    @property
    def needs_wrapper(self) -> bool:
        """Handlers taking exactly (request, response) positionally are passed as-is."""
        if any(p.keyword_only for p in self.params):
            return True
        return [p.kind for p in self.params] != [ParamKind.REQUEST, ParamKind.RESPONSE]


@dataclass
class ControllerDescriptor:
    """A class carrying a route/controller decorator."""
    file: str
    class_name: str
    base_routes: List[str] = field(default_factory=list)
    methods: List[MethodDescriptor] = field(default_factory=list)
    location: Optional[SourceLocation] = None


@dataclass(frozen=True)
class I18nEntry:
    """An exported, @i18n tagged module variable."""
    file: str
    var_name: str
    locale: str
    location: Optional[SourceLocation] = None


@dataclass
class FileExtraction:
    """Everything extracted from one controller file."""
    path: str
    controllers: List[ControllerDescriptor] = field(default_factory=list)
    i18n: List[I18nEntry] = field(default_factory=list)


@dataclass
class PatternResult:
    """Aggregated extraction for every file one pattern matched."""
    controllers: List[ControllerDescriptor] = field(default_factory=list)
    i18n: List[I18nEntry] = field(default_factory=list)
    files: List[str] = field(default_factory=list)

    def add_file(self, extraction: FileExtraction) -> None:
        """
        Merge one file's extraction.

        Raises:
            DuplicateLocaleError: A locale is already declared by another entry
        """
        for entry in extraction.i18n:
            for existing in self.i18n:
                if existing.locale == entry.locale:
                    raise DuplicateLocaleError(
                        entry.locale,
                        existing.location or SourceLocation(existing.file),
                        entry.location or SourceLocation(entry.file),
                    )
            self.i18n.append(entry)
        self.controllers.extend(extraction.controllers)
        self.files.append(extraction.path)

    @property
    def method_count(self) -> int:
        return sum(len(c.methods) for c in self.controllers)
