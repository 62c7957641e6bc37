"""Routeweave CLI - Main Entry Point.

The `rwc` command rewrites Python sources so controller discovery
happens at build time.

Commands:
    compile  - Rewrite discovery sites and controller files
    scan     - List discovery patterns and the files they match
"""

import logging
import os
import sys
from typing import Optional, Tuple

import click

from . import __version__, __cli_name__
from ..faults import Fault
from .utils.colors import (
    success, error, info, dim, bold,
    banner, section, kv, bullet, file_written,
    _CHECK, _CROSS,
)


# ═══════════════════════════════════════════════════════════════════════════
# Custom Click help formatter
# ═══════════════════════════════════════════════════════════════════════════


class RouteweaveGroup(click.Group):
    """Click group subclass with branded help output."""

    def format_help(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        # Only show the banner for the root group
        if ctx.parent is None:
            banner("Routeweave", subtitle=f"v{__version__}  {_CHECK}  build-time controller discovery")
            click.echo()
        super().format_help(ctx, formatter)

    def format_commands(self, ctx: click.Context, formatter: click.HelpFormatter) -> None:
        """Format command listing with aligned columns."""
        commands = []
        for subcommand in self.list_commands(ctx):
            cmd = self.get_command(ctx, subcommand)
            if cmd is None or cmd.hidden:
                continue
            commands.append((subcommand, cmd.get_short_help_str(limit=48)))

        if commands:
            with formatter.section(click.style("Commands", fg="cyan", bold=True)):
                max_len = max(len(c[0]) for c in commands) + 2
                for name, help_text in commands:
                    formatter.write(f"  {click.style(name.ljust(max_len), fg='green')} {help_text}\n")


def configure_logging(verbose: bool, quiet: bool) -> None:
    level = logging.DEBUG if verbose else logging.ERROR if quiet else logging.WARNING
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


def report_fault(fault: Fault, title: str) -> None:
    error(f"  {_CROSS} {title}")
    for line in fault.format().splitlines():
        error(f"    {line}")


@click.group(cls=RouteweaveGroup)
@click.version_option(version=__version__, prog_name=__cli_name__)
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
@click.option('--quiet', '-q', is_flag=True, help='Minimal output')
@click.pass_context
def cli(ctx, verbose: bool, quiet: bool):
    """Build-time controller discovery for Python web apps.

    \b
    Quick start:
      rwc scan
      rwc compile
      rwc compile src/ --out-dir build/
    """
    ctx.ensure_object(dict)
    ctx.obj['verbose'] = verbose
    ctx.obj['quiet'] = quiet
    configure_logging(verbose, quiet)


# ============================================================================
# Commands
# ============================================================================

@cli.command('compile')
@click.argument('paths', nargs=-1, type=click.Path(exists=True))
@click.option('--config', '-c', 'config_path', type=click.Path(), help='Config file (routeweave.yaml)')
@click.option('--out-dir', '-o', type=click.Path(), help='Output directory (default: rewrite in place)')
@click.option('--pretty/--compact', default=None, help='Blank lines between generated blocks')
@click.pass_context
def compile(ctx, paths: Tuple[str, ...], config_path: Optional[str], out_dir: Optional[str], pretty: Optional[bool]):
    """
    Rewrite discovery sites and controller files.

    Examples:
      rwc compile
      rwc compile app/ --out-dir=build/
      rwc compile -c routeweave.yaml --compact
    """
    from .commands.compile import compile_project

    try:
        written = compile_project(paths, config_path=config_path, out_dir=out_dir, pretty=pretty)
    except Fault as fault:
        report_fault(fault, "Compilation failed")
        sys.exit(1)

    if not ctx.obj['quiet']:
        click.echo()
        success(f"  {_CHECK} Compilation complete")
        kv("Written", str(len(written)))
        for path in written:
            file_written(os.path.relpath(path), verbose=ctx.obj['verbose'], path=path)


@cli.command('scan')
@click.argument('paths', nargs=-1, type=click.Path(exists=True))
@click.option('--config', '-c', 'config_path', type=click.Path(), help='Config file (routeweave.yaml)')
@click.pass_context
def scan(ctx, paths: Tuple[str, ...], config_path: Optional[str]):
    """
    List discovery patterns and the files they match.

    Examples:
      rwc scan
      rwc scan app/main.py
    """
    from .commands.scan import scan_project

    try:
        found = scan_project(paths, config_path=config_path)
    except Fault as fault:
        report_fault(fault, "Scan failed")
        sys.exit(1)

    if not found:
        info("No discovery patterns found")
        return

    for key, files in found.items():
        section(key.pattern)
        dim(f"  in {os.path.relpath(key.directory)}")
        for path in files:
            bullet(os.path.relpath(path))
        click.echo()

    if not ctx.obj['quiet']:
        click.echo(bold(f"{len(found)} pattern(s)"))


def main():
    """Entry point for `rwc` command."""
    cli(obj={})


if __name__ == '__main__':
    main()
