"""
Routeweave - build-time controller discovery for Python web apps.

Rewrites ``app.scan("controllers/**/*.py")`` call-sites into explicit
route registrations, strips the framework's compile-time decorators
from controller files, and compiles inline i18n templates to plain
render functions:
- Scanner: finds discovery call-sites by the receiver's resolved type
- Extractor: controller, handler, parameter and i18n metadata
- Templates: Jinja2-backed inline template compilation
- Synthesizer: generated registration code, imports and instances
- Faults: typed compile errors with source locations
"""

__version__ = "0.1.0"

# ============================================================================
# Compiler
# ============================================================================

from .config import CompilerConfig, ConfigLoader, load_config
from .compiler import Compiler, compile_sources
from .pipe import BuildPipe, create_pipe, source_paths

# ============================================================================
# Metadata
# ============================================================================

from .models import (
    Verb,
    ParamKind,
    PatternKey,
    ControllerRef,
    ParamDescriptor,
    MethodDescriptor,
    ControllerDescriptor,
    I18nEntry,
    FileExtraction,
    PatternResult,
)

# ============================================================================
# Faults
# ============================================================================

from .faults import (
    Fault,
    FaultDomain,
    Severity,
    SourceLocation,
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
    "__version__",
    # Compiler
    "CompilerConfig",
    "ConfigLoader",
    "load_config",
    "Compiler",
    "compile_sources",
    "BuildPipe",
    "create_pipe",
    "source_paths",
    # Metadata
    "Verb",
    "ParamKind",
    "PatternKey",
    "ControllerRef",
    "ParamDescriptor",
    "MethodDescriptor",
    "ControllerDescriptor",
    "I18nEntry",
    "FileExtraction",
    "PatternResult",
    # Faults
    "Fault",
    "FaultDomain",
    "Severity",
    "SourceLocation",
    "CompileFault",
    "ConfigError",
    "PatternError",
    "PatternNotLiteralError",
    "PatternNoMatchError",
    "ExtractionError",
    "DuplicateLocaleError",
    "SynthesisError",
]
