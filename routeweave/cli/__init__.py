"""
Routeweave CLI.

The `rwc` command-line interface for build-time controller discovery.

Usage:
    rwc compile [PATHS]... [-c CONFIG] [-o OUT_DIR] [--pretty/--compact]
    rwc scan [PATHS]... [-c CONFIG]
"""

from .. import __version__

__cli_name__ = "rwc"


def main():
    """Wrapper to avoid eager import of __main__ which causes warnings with -m."""
    from .__main__ import main as _main
    return _main()
