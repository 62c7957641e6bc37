"""
The closed set of framework symbols the compiler recognizes.

Names are matched by resolved origin (``<framework>.<name>``), never by
their local spelling.
"""

from typing import Dict, Optional

from .models import ParamKind, Verb


DISCOVERY_NAME = "scan"
CONTROLLER_DECORATORS = ("route", "controller")
VERB_DECORATORS: Dict[str, Verb] = {
    "get": Verb.GET,
    "head": Verb.HEAD,
    "post": Verb.POST,
    "method": Verb.METHOD,
    "ws": Verb.WS,
}
PARAM_MARKERS: Dict[str, ParamKind] = {
    "Request": ParamKind.REQUEST,
    "Response": ParamKind.RESPONSE,
}
PARAM_WRAPPERS: Dict[str, ParamKind] = {
    "Query": ParamKind.QUERY,
    "Path": ParamKind.PATH,
}
TEMPLATE_HELPER = "template"
I18N_TAG = "@i18n"

# Annotations whose presence on a return type marks a handler async
AWAITABLE_TYPES = (
    "typing.Awaitable",
    "typing.Coroutine",
    "collections.abc.Awaitable",
    "collections.abc.Coroutine",
)
AWAITABLE_PREFIXES = ("Awaitable", "Coroutine")

# Type arguments that make Query[...]/Path[...] fully generic
GENERIC_TYPES = ("typing.Any", "typing_extensions.Any", "builtins.object")


class Markers:
    """Framework symbols qualified against one framework module."""

    def __init__(self, framework: str = "gridfw", entry_point: str = "Gridfw"):
        self.framework = framework
        self.entry_point = f"{framework}.{entry_point}"
        self.template_helper = f"{framework}.{TEMPLATE_HELPER}"
        self.controllers = frozenset(f"{framework}.{n}" for n in CONTROLLER_DECORATORS)
        self.verbs = {f"{framework}.{n}": v for n, v in VERB_DECORATORS.items()}
        self.params = {f"{framework}.{n}": k for n, k in PARAM_MARKERS.items()}
        self.wrappers = {f"{framework}.{n}": k for n, k in PARAM_WRAPPERS.items()}

    def verb_for(self, names) -> Optional[Verb]:
        for name in names:
            if name in self.verbs:
                return self.verbs[name]
        return None

    def is_controller(self, names) -> bool:
        return any(name in self.controllers for name in names)

    def param_kind(self, names) -> Optional[ParamKind]:
        for name in names:
            if name in self.params:
                return self.params[name]
        return None

    def wrapper_kind(self, names) -> Optional[ParamKind]:
        for name in names:
            if name in self.wrappers:
                return self.wrappers[name]
        return None
