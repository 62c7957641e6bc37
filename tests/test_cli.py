"""
The ``rwc`` command line: compile in place or into a build directory,
scan listings, fault reporting and exit codes.
"""

import os

import pytest
from click.testing import CliRunner

from routeweave import __version__
from routeweave.cli.__main__ import cli
from routeweave.cli.commands.compile import compile_project
from routeweave.cli.commands.scan import scan_project
from routeweave.faults import ConfigError
from routeweave.models import PatternKey


APP = """
    from gridfw import Gridfw

    app = Gridfw()
    app.scan("controllers/*.py")
"""

USERS = """
    from gridfw import Request, Response, route, get

    @route("/users")
    class Users:
        @get("/")
        def index(self, request: Request, response: Response):
            return "users"
"""


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def app_project(project):
    project.write("app.py", APP)
    project.write("controllers/users.py", USERS)
    return project


# ════════════════════════════════════════════════════════════════════════════
# Group
# ════════════════════════════════════════════════════════════════════════════


class TestGroup:

    def test_version(self, runner):
        result = runner.invoke(cli, ["--version"])
        assert result.exit_code == 0
        assert __version__ in result.output
        assert "rwc" in result.output

    def test_help_lists_commands(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "Routeweave" in result.output
        assert "compile" in result.output
        assert "scan" in result.output


# ════════════════════════════════════════════════════════════════════════════
# compile
# ════════════════════════════════════════════════════════════════════════════


class TestCompileCommand:

    def test_in_place(self, runner, app_project):
        result = runner.invoke(cli, ["compile"])
        assert result.exit_code == 0, result.output
        assert "Compilation complete" in result.output
        assert "_rw_scan_1(app)" in app_project.read("app.py")
        assert "@route" not in app_project.read("controllers/users.py")
        # untouched files are not rewritten
        assert "app.py" in result.output
        assert "gridfw.py" not in result.output

    def test_explicit_path(self, runner, app_project):
        result = runner.invoke(cli, ["compile", "app.py"])
        assert result.exit_code == 0, result.output
        assert "_rw_scan_1(app)" in app_project.read("app.py")
        assert "@route" not in app_project.read("controllers/users.py")

    def test_out_dir(self, runner, app_project):
        result = runner.invoke(cli, ["compile", "--out-dir", "build"])
        assert result.exit_code == 0, result.output
        assert 'app.scan("controllers/*.py")' in app_project.read("app.py")
        assert "_rw_scan_1(app)" in app_project.read("build/app.py")
        assert os.path.isfile(app_project.path("build/gridfw.py"))
        assert os.path.isfile(app_project.path("build/controllers/users.py"))

    def test_compact(self, runner, app_project):
        result = runner.invoke(cli, ["compile", "--compact"])
        assert result.exit_code == 0, result.output
        assert "\n\n    return _rw_app_1" not in app_project.read("app.py")

    def test_config_file(self, runner, project):
        project.write("webkit.py", "class App:\n    def scan(self, pattern):\n        pass\n")
        project.write("app.py", """
            from webkit import App

            app = App()
            app.scan("controllers/*.py")
        """)
        project.write("controllers/users.py", USERS.replace("gridfw", "webkit"))
        project.write("rw.yaml", "framework: webkit\nentry_point: App\npretty: false\n")
        result = runner.invoke(cli, ["compile", "-c", "rw.yaml"])
        assert result.exit_code == 0, result.output
        assert "_rw_users_1 = _rw_Users_1()\nfrom webkit import App\n" in project.read("app.py")
        assert "_rw_scan_1(app)" in project.read("app.py")

    def test_quiet(self, runner, app_project):
        result = runner.invoke(cli, ["-q", "compile"])
        assert result.exit_code == 0
        assert "Compilation complete" not in result.output

    def test_fault_exits_1(self, runner, project):
        project.write("app.py", APP)
        result = runner.invoke(cli, ["compile"])
        assert result.exit_code == 1
        assert "Compilation failed" in result.output
        assert "matched no files" in result.output
        assert 'app.scan("controllers/*.py")' in project.read("app.py")

    def test_invalid_config_exits_1(self, runner, app_project):
        app_project.write("routeweave.yaml", "pretty: maybe\n")
        result = runner.invoke(cli, ["compile"])
        assert result.exit_code == 1
        assert "pretty" in result.output


class TestCompileProject:

    def test_returns_written_paths(self, app_project):
        written = compile_project()
        assert written == [app_project.path("app.py"), app_project.path("controllers/users.py")]

    def test_nothing_to_do(self, project):
        project.write("app.py", "print('hello')\n")
        assert compile_project() == []

    def test_out_dir_rejects_files_outside_root(self, app_project, tmp_path_factory):
        outside = tmp_path_factory.mktemp("outside")
        stray = outside / "stray.py"
        stray.write_text("x = 1\n")
        with pytest.raises(ConfigError):
            compile_project([str(stray)], out_dir="build")


# ════════════════════════════════════════════════════════════════════════════
# scan
# ════════════════════════════════════════════════════════════════════════════


class TestScanCommand:

    def test_lists_patterns(self, runner, app_project):
        result = runner.invoke(cli, ["scan"])
        assert result.exit_code == 0, result.output
        assert "controllers/*.py" in result.output
        assert os.path.join("controllers", "users.py") in result.output
        assert "1 pattern(s)" in result.output
        # scanning never rewrites
        assert 'app.scan("controllers/*.py")' in app_project.read("app.py")

    def test_no_patterns(self, runner, project):
        project.write("app.py", "x = 1\n")
        result = runner.invoke(cli, ["scan"])
        assert result.exit_code == 0
        assert "No discovery patterns found" in result.output

    def test_fault_exits_1(self, runner, project):
        project.write("app.py", """
            from gridfw import Gridfw

            PATTERN = "controllers/*.py"
            app = Gridfw()
            app.scan(PATTERN)
        """)
        result = runner.invoke(cli, ["scan"])
        assert result.exit_code == 1
        assert "Scan failed" in result.output
        assert "PATTERN" in result.output

    def test_scan_project(self, app_project):
        found = scan_project()
        assert found == {
            PatternKey(app_project.root, "controllers/*.py"): [app_project.path("controllers/users.py")],
        }
