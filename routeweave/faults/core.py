"""
Routeweave faults - Core types and fault taxonomy.

Defines:
- Fault base class (structured fault objects)
- FaultDomain (explicit fault domains)
- Severity levels
- SourceLocation (where in the compiled sources a fault points)
"""

from __future__ import annotations

from enum import Enum
from dataclasses import dataclass
from typing import Any, Optional


# ============================================================================
# Severity & Domain
# ============================================================================

class Severity(str, Enum):
    """
    Fault severity levels.

    Compile faults are always FATAL: a unit either compiles completely
    or not at all.
    """
    INFO = "info"
    WARN = "warn"
    ERROR = "error"
    FATAL = "fatal"


class FaultDomain:
    """
    Fault domains (taxonomy).

    Identifies the pipeline stage where a fault occurred.
    """

    def __init__(self, name: str, description: str = ""):
        self.name = name
        self.value = name
        self.description = description

    def __str__(self) -> str:
        return self.name

    def __repr__(self) -> str:
        return f"FaultDomain(name='{self.name}')"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, FaultDomain):
            return self.name == other.name
        return str(self) == str(other)

    def __hash__(self) -> int:
        return hash(self.name)


# Standard Domains
FaultDomain.CONFIG = FaultDomain("config", "Compiler configuration errors")
FaultDomain.DISCOVERY = FaultDomain("discovery", "Discovery call-site and glob errors")
FaultDomain.EXTRACTION = FaultDomain("extraction", "Controller and template extraction errors")
FaultDomain.SYNTHESIS = FaultDomain("synthesis", "Router code generation errors")


# ============================================================================
# Source location
# ============================================================================

@dataclass(frozen=True)
class SourceLocation:
    """
    A point in a source file.

    Attributes:
        file: Absolute path of the file
        line: 1-based line
        column: 0-based column
    """
    file: str
    line: int = 0
    column: int = 0

    def __str__(self) -> str:
        if self.line:
            return f"{self.file}:{self.line}:{self.column}"
        return self.file


# ============================================================================
# Fault - Base Class
# ============================================================================

class Fault(Exception):
    """
    Base fault class - structured, typed fault object.

    Attributes:
        code: Stable machine-readable identifier (e.g., "PATTERN_NO_MATCH")
        message: Human-readable summary
        severity: Fault severity
        domain: Fault domain
        location: Offending source position, when one exists
        metadata: Additional context data

    Example:
        ```python
        raise Fault(
            code="PATTERN_NO_MATCH",
            message="Pattern 'controllers/*.py' matched no files",
            domain=FaultDomain.DISCOVERY,
        )
        ```
    """

    def __init__(
        self,
        code: str | None = None,
        message: str | None = None,
        *,
        domain: FaultDomain | None = None,
        severity: Optional[Severity] = None,
        location: Optional[SourceLocation] = None,
        metadata: Optional[dict[str, Any]] = None,
    ):
        self.code = code if code is not None else getattr(self, "code", None)
        self.message = message if message is not None else getattr(self, "message", None)
        self.domain = domain if domain is not None else getattr(self, "domain", None)

        if self.code is None or self.message is None or self.domain is None:
            raise TypeError(f"{self.__class__.__name__} missing required code, message, or domain")

        super().__init__(self.message)

        self.severity = severity or Severity.FATAL
        self.location = location
        self.metadata = metadata or {}

    def __str__(self) -> str:
        if self.location is not None:
            return f"[{self.code}] {self.message} ({self.location})"
        return f"[{self.code}] {self.message}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}(code={self.code!r}, domain={self.domain.value}, "
            f"severity={self.severity.value})"
        )

    def format(self) -> str:
        """Format fault for display, rustc style."""
        parts = [f"{self.__class__.__name__}: {self.message}"]
        if self.location is not None:
            parts.append(f"  --> {self.location}")
        return "\n".join(parts)

    def to_dict(self) -> dict[str, Any]:
        """
        Serialize fault to dictionary.

        Returns:
            Dictionary representation suitable for logging/serialization
        """
        return {
            "code": self.code,
            "message": self.message,
            "domain": self.domain.value,
            "severity": self.severity.value,
            "location": str(self.location) if self.location else None,
            "metadata": self.metadata,
        }
