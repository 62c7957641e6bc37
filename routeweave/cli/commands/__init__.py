"""Command implementations package."""

from . import (
    compile,
    scan,
)
