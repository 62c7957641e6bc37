"""
Routeweave faults - Domain-specific fault types.

One concrete class per pipeline stage:
- ConfigError: malformed compiler configuration
- PatternError: discovery call-site and glob resolution
- ExtractionError: controller, parameter, i18n and template extraction
- SynthesisError: internal inconsistency while generating router code
"""

from typing import Any, Optional

from .core import Fault, FaultDomain, Severity, SourceLocation


class CompileFault(Fault):
    """Base class for every fault raised by the compiler pipeline."""

    domain_default: FaultDomain = FaultDomain.EXTRACTION

    def __init__(
        self,
        code: str,
        message: str,
        *,
        location: Optional[SourceLocation] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            domain=self.domain_default,
            severity=Severity.FATAL,
            location=location,
            metadata=metadata,
        )


# ============================================================================
# CONFIG
# ============================================================================

class ConfigError(CompileFault):
    """Compiler configuration could not be read or validated."""

    domain_default = FaultDomain.CONFIG

    def __init__(self, message: str, *, code: str = "CONFIG_INVALID", path: Optional[str] = None, **kwargs):
        super().__init__(
            code,
            message,
            location=SourceLocation(path) if path else None,
            metadata={"path": path, **kwargs.get("metadata", {})},
        )


# ============================================================================
# DISCOVERY
# ============================================================================

class PatternError(CompileFault):
    """A discovery call-site or its glob pattern is unusable."""

    domain_default = FaultDomain.DISCOVERY


class PatternNotLiteralError(PatternError):
    """The discovery call argument is not a static string literal."""

    def __init__(self, node_text: str, location: SourceLocation):
        super().__init__(
            "PATTERN_NOT_LITERAL",
            f"Discovery pattern must be a static string literal, got `{node_text}`",
            location=location,
            metadata={"node": node_text},
        )


class PatternNoMatchError(PatternError):
    """A glob pattern resolved to zero files."""

    def __init__(self, pattern: str, origin: str):
        super().__init__(
            "PATTERN_NO_MATCH",
            f"Pattern '{pattern}' declared in {origin} matched no files",
            location=SourceLocation(origin),
            metadata={"pattern": pattern, "origin": origin},
        )


# ============================================================================
# EXTRACTION
# ============================================================================

class ExtractionError(CompileFault):
    """Controller, parameter, i18n or template metadata is malformed."""

    domain_default = FaultDomain.EXTRACTION

    def __init__(
        self,
        message: str,
        *,
        code: str = "EXTRACTION_FAILED",
        location: Optional[SourceLocation] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(code, message, location=location, metadata=metadata)


class DuplicateLocaleError(ExtractionError):
    """Two i18n entries of one pattern carry the same locale."""

    def __init__(self, locale: str, first: SourceLocation, second: SourceLocation):
        super().__init__(
            f"Locale '{locale}' is declared twice: in {first.file} and in {second.file}",
            code="DUPLICATE_LOCALE",
            location=second,
            metadata={"locale": locale, "files": [first.file, second.file]},
        )


# ============================================================================
# SYNTHESIS
# ============================================================================

class SynthesisError(CompileFault):
    """Router synthesis found the pipeline state inconsistent."""

    domain_default = FaultDomain.SYNTHESIS

    def __init__(
        self,
        message: str,
        *,
        code: str = "PATTERN_RESULT_MISSING",
        location: Optional[SourceLocation] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        super().__init__(code, message, location=location, metadata=metadata)
