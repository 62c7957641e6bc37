"""
Runtime support for compiled inline templates.

Generated modules import this module once (under a private alias) and
reach every template runtime name through it: the shared Jinja2
environment, ``Any`` for widened annotations, the ``template`` decorator
that turns a compiled render function into a callable, and every name
Jinja2's generated code imports from ``jinja2.runtime``.
"""

from typing import Any, Callable, Iterator, Optional

from jinja2 import Environment
from jinja2 import runtime as jinja_runtime
from jinja2.runtime import Context, Undefined, escape, markup_join, missing, str_join

__all__ = [
    "Any",
    "InlineTemplate",
    "Undefined",
    "create_environment",
    "environment",
    "escape",
    "markup_join",
    "missing",
    "str_join",
    "template",
]


def create_environment() -> Environment:
    """
    Environment used both to compile inline templates and to render them.

    Compile-time and run-time settings must agree (autoescaping changes
    the generated code), so both sides build it here.
    """
    return Environment(autoescape=True)


environment = create_environment()


class InlineTemplate:
    """
    A compiled inline template.

    Calling it renders the template with the given variables::

        page = fr["greeting"](user=user)
    """

    def __init__(self, root: Callable[[Context], Iterator[str]], name: Optional[str] = None):
        self.root = root
        self.name = name or root.__name__
        namespace = {
            "name": self.name,
            "__file__": None,
            "blocks": {},
            "root": root,
            "debug_info": "",
        }
        self._template = environment.template_class._from_namespace(
            environment, namespace, environment.globals
        )

    def render(self, *args: Any, **kwargs: Any) -> str:
        return self._template.render(*args, **kwargs)

    __call__ = render

    def __repr__(self) -> str:
        return f"<InlineTemplate {self.name}>"


def template(root: Callable[[Context], Iterator[str]]) -> InlineTemplate:
    """Decorator applied to every compiled render function."""
    return InlineTemplate(root)


def __getattr__(name: str) -> Any:
    # Everything else Jinja2's generated code may reference
    if name in jinja_runtime.exported or name in jinja_runtime.async_exported:
        return getattr(jinja_runtime, name)
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
