"""
Compiler configuration: defaults, file formats, environment layering and
validation.
"""

import json
import os

import pytest

from routeweave.config import CompilerConfig, ConfigLoader, load_config
from routeweave.faults import ConfigError


# ============================================================================
# Defaults
# ============================================================================

class TestCompilerConfig:

    def test_defaults(self, project):
        config = CompilerConfig()
        assert config.root == os.path.normpath(project.root)
        assert config.framework == "gridfw"
        assert config.entry_point == "Gridfw"
        assert config.runtime_module == "routeweave.runtime"
        assert config.include == ["**/*.py"]
        assert config.exclude == []
        assert config.out_dir is None
        assert config.pretty is True

    def test_root_is_normalized(self, project):
        config = CompilerConfig(root="src/../src")
        assert config.root == os.path.join(os.path.normpath(project.root), "src")

    def test_to_dict(self):
        data = CompilerConfig(root="/tmp").to_dict()
        assert data["framework"] == "gridfw"
        assert set(data) >= {"root", "include", "exclude", "pretty"}


# ============================================================================
# Loading
# ============================================================================

class TestConfigLoader:

    def test_no_file_gives_defaults(self, project):
        config = ConfigLoader.load()
        assert config.framework == "gridfw"

    def test_autodetect_yaml(self, project):
        project.write("routeweave.yaml", """
            framework: webkit
            entry_point: App
            pretty: false
        """)
        config = ConfigLoader.load()
        assert config.framework == "webkit"
        assert config.entry_point == "App"
        assert config.pretty is False

    def test_json_file(self, project):
        path = project.write("build.json", json.dumps({"exclude": ["tests/**"]}))
        config = ConfigLoader.load(path)
        assert config.exclude == ["tests/**"]

    def test_nested_compiler_section(self, project):
        path = project.write("rw.yaml", """
            compiler:
              framework: nested
        """)
        assert ConfigLoader.load(path).framework == "nested"

    def test_relative_root_resolves_against_config_file(self, project):
        path = project.write("conf/routeweave.yml", "root: ../src\n")
        config = ConfigLoader.load(path)
        assert config.root == project.path("src")

    def test_string_include_becomes_list(self, project):
        path = project.write("rw.yaml", "include: 'app/**/*.py'\n")
        assert ConfigLoader.load(path).include == ["app/**/*.py"]

    def test_env_overrides_file(self, project, monkeypatch):
        path = project.write("rw.yaml", "framework: fromfile\npretty: true\n")
        monkeypatch.setenv("RW_FRAMEWORK", "fromenv")
        monkeypatch.setenv("RW_PRETTY", "no")
        config = ConfigLoader.load(path)
        assert config.framework == "fromenv"
        assert config.pretty is False

    def test_env_json_list(self, project, monkeypatch):
        monkeypatch.setenv("RW_EXCLUDE", '["build/**", "dist/**"]')
        assert ConfigLoader.load().exclude == ["build/**", "dist/**"]

    def test_overrides_win(self, project, monkeypatch):
        monkeypatch.setenv("RW_FRAMEWORK", "fromenv")
        config = load_config(framework="manual")
        assert config.framework == "manual"


# ============================================================================
# Validation
# ============================================================================

class TestConfigValidation:

    def test_missing_explicit_file(self, project):
        with pytest.raises(ConfigError) as exc:
            ConfigLoader.load("nope.yaml")
        assert exc.value.code == "CONFIG_UNREADABLE"

    def test_malformed_yaml(self, project):
        path = project.write("rw.yaml", "framework: [unclosed\n")
        with pytest.raises(ConfigError) as exc:
            ConfigLoader.load(path)
        assert exc.value.code == "CONFIG_INVALID"

    def test_top_level_must_be_mapping(self, project):
        path = project.write("rw.yaml", "- a\n- b\n")
        with pytest.raises(ConfigError, match="mapping"):
            ConfigLoader.load(path)

    def test_unknown_key(self, project):
        path = project.write("rw.yaml", "framwork: typo\n")
        with pytest.raises(ConfigError, match="framwork"):
            ConfigLoader.load(path)

    def test_wrong_type(self, project):
        path = project.write("rw.yaml", "pretty: 3\n")
        with pytest.raises(ConfigError, match="pretty"):
            ConfigLoader.load(path)

    def test_list_of_non_strings(self, project):
        path = project.write("rw.yaml", "exclude: [1, 2]\n")
        with pytest.raises(ConfigError, match="exclude"):
            ConfigLoader.load(path)

    def test_error_carries_path(self, project):
        path = project.write("rw.yaml", "pretty: 3\n")
        with pytest.raises(ConfigError) as exc:
            ConfigLoader.load(path)
        assert exc.value.metadata["path"] == path
