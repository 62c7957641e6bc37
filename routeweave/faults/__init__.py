"""
Routeweave faults - typed compile errors.

Every failure of the pipeline is a Fault carrying a stable code, a domain
and, where one exists, the source location that caused it. All compile
faults are fatal to the unit being compiled.
"""

from .core import (
    Fault,
    FaultDomain,
    Severity,
    SourceLocation,
)

from .domains import (
    CompileFault,
    ConfigError,
    PatternError,
    PatternNotLiteralError,
    PatternNoMatchError,
    ExtractionError,
    DuplicateLocaleError,
    SynthesisError,
)

__all__ = [
    # Core types
    "Fault",
    "FaultDomain",
    "Severity",
    "SourceLocation",
    # Compile faults
    "CompileFault",
    "ConfigError",
    "PatternError",
    "PatternNotLiteralError",
    "PatternNoMatchError",
    "ExtractionError",
    "DuplicateLocaleError",
    "SynthesisError",
]
