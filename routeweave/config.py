"""
Config system - Typed compiler configuration with layered loading.

Merge order (later overrides earlier):
1. Dataclass defaults
2. Config file (routeweave.yaml / .yml / .json)
3. Environment variables (RW_* prefix)
4. Manual overrides
"""

from typing import Any, Dict, List, Optional, get_type_hints
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
import os
import json

import yaml

from .faults import ConfigError


DEFAULT_CONFIG_FILES = ("routeweave.yaml", "routeweave.yml", "routeweave.json")


@dataclass
class CompilerConfig:
    """
    Normalized compiler options.

    Attributes:
        root: Source root; module names and relative dirs derive from it
        framework: Module whose decorators and markers are recognized
        entry_point: Class name of the framework entry point
        runtime_module: Module compiled templates import at run time
        include: File globs collected by the CLI
        exclude: File globs the CLI skips
        out_dir: CLI output directory (None writes in place)
        pretty: Whitespace-only formatting flag for generated code
        encoding: Encoding of source files read from disk
    """
    root: str = field(default_factory=os.getcwd)
    framework: str = "gridfw"
    entry_point: str = "Gridfw"
    runtime_module: str = "routeweave.runtime"
    include: List[str] = field(default_factory=lambda: ["**/*.py"])
    exclude: List[str] = field(default_factory=list)
    out_dir: Optional[str] = None
    pretty: bool = True
    encoding: str = "utf-8"

    def __post_init__(self):
        self.root = os.path.normpath(os.path.abspath(self.root))

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class ConfigLoader:
    """
    Loads and merges compiler configuration from multiple sources with precedence:
    overrides > environment variables > config file > defaults
    """

    def __init__(self, env_prefix: str = "RW_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}
        self.source: Optional[str] = None

    @classmethod
    def load(
        cls,
        path: Optional[str] = None,
        env_prefix: str = "RW_",
        overrides: Optional[Dict[str, Any]] = None,
    ) -> CompilerConfig:
        """
        Load and validate the compiler configuration.

        Args:
            path: Config file path; auto-detects routeweave.yaml/.json when None
            env_prefix: Prefix for environment variables
            overrides: Manual overrides (highest precedence)

        Returns:
            Validated CompilerConfig

        Raises:
            ConfigError: File unreadable, malformed, or with invalid keys/values
        """
        loader = cls(env_prefix=env_prefix)

        if path is None:
            for candidate in DEFAULT_CONFIG_FILES:
                if Path(candidate).exists():
                    path = candidate
                    break
        elif not Path(path).exists():
            raise ConfigError(
                f"Config file '{path}' does not exist",
                code="CONFIG_UNREADABLE",
                path=path,
            )

        if path:
            loader.source = str(path)
            loader._load_file(Path(path))

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader.build()

    def _load_file(self, path: Path):
        """Load config from a YAML or JSON file."""
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigError(
                f"Cannot read config file: {e}",
                code="CONFIG_UNREADABLE",
                path=str(path),
            ) from e

        try:
            if path.suffix == ".json":
                data = json.loads(text) if text.strip() else {}
            else:
                data = yaml.safe_load(text)
        except (yaml.YAMLError, json.JSONDecodeError) as e:
            raise ConfigError(f"Config file parse fails: {e}", path=str(path)) from e

        if data is None:
            return
        if not isinstance(data, dict):
            raise ConfigError("Config file must contain a mapping at top level", path=str(path))

        # Accept either a bare mapping or one nested under "compiler"
        if isinstance(data.get("compiler"), dict):
            data = data["compiler"]
        self._merge_dict(self.config_data, data)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                name = key[len(self.env_prefix):].lower()
                self.config_data[name] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def build(self) -> CompilerConfig:
        """Validate collected data against CompilerConfig."""
        known = {f.name for f in fields(CompilerConfig)}
        unknown = sorted(set(self.config_data) - known)
        if unknown:
            raise ConfigError(
                f"Unknown configuration keys: {', '.join(unknown)}",
                path=self.source,
            )

        hints = get_type_hints(CompilerConfig)
        values: Dict[str, Any] = {}
        for name, value in self.config_data.items():
            values[name] = self._coerce(name, value, hints[name])

        # Relative roots are relative to the config file, not the cwd
        if self.source and "root" in values and not os.path.isabs(values["root"]):
            values["root"] = str(Path(self.source).resolve().parent / values["root"])

        return CompilerConfig(**values)

    def _coerce(self, name: str, value: Any, hint: Any) -> Any:
        """Check one value against its declared type."""
        if hint is bool:
            if isinstance(value, bool):
                return value
        elif hint is str:
            if isinstance(value, str):
                return value
        elif hint == Optional[str]:
            if value is None or isinstance(value, str):
                return value
        elif hint == List[str]:
            if isinstance(value, str):
                return [value]
            if isinstance(value, list) and all(isinstance(v, str) for v in value):
                return list(value)

        raise ConfigError(
            f"Configuration key '{name}' is invalid: got {type(value).__name__} {value!r}",
            path=self.source,
        )


def load_config(path: Optional[str] = None, **overrides: Any) -> CompilerConfig:
    """Shortcut for ConfigLoader.load()."""
    return ConfigLoader.load(path, overrides=overrides or None)
