"""Source compilation command."""

import os
from typing import Iterable, List, Optional

from ...config import ConfigLoader
from ...faults import ConfigError
from ...pipe import BuildPipe, source_paths


def compile_project(
    paths: Iterable[str] = (),
    config_path: Optional[str] = None,
    out_dir: Optional[str] = None,
    pretty: Optional[bool] = None,
) -> List[str]:
    """
    Compile a project's sources.

    Args:
        paths: Files or directories to compile (configured include globs when empty)
        config_path: Config file (auto-detected when None)
        out_dir: Output directory; rewritten files are written in place when None
        pretty: Blank lines between generated blocks (config default)

    Returns:
        Paths of the files written
    """
    overrides = {"out_dir": out_dir} if out_dir else None
    config = ConfigLoader.load(config_path, overrides=overrides)

    pipe = BuildPipe(config, pretty)
    pipe.collect_paths(source_paths(config, list(paths)))
    output = pipe.flush()

    if config.out_dir:
        # Build directory: mirror every file of the build
        selected = sorted(output)
        target_root = os.path.abspath(config.out_dir)
    else:
        selected = pipe.changed
        target_root = None

    written = []
    for path in selected:
        destination = path
        if target_root is not None:
            relative = os.path.relpath(path, config.root)
            if relative.startswith(os.pardir):
                raise ConfigError(
                    f"Cannot place {path} under {target_root}: file is outside the source root {config.root}",
                    path=config_path,
                )
            destination = os.path.join(target_root, relative)
            os.makedirs(os.path.dirname(destination), exist_ok=True)
        with open(destination, "w", encoding=config.encoding) as f:
            f.write(output[path])
        written.append(destination)
    return written
