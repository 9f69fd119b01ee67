"""Data directory layout and logging setup.

The core takes paths as arguments; only this module and the CLI read the
environment.
"""

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

ENV_HOME = "TODOGRAPH_HOME"
DEFAULT_DIR_NAME = ".todo-graph"


def get_data_dir() -> Path:
    """Find the data directory from TODOGRAPH_HOME, else ~/.todo-graph."""
    if env_path := os.environ.get(ENV_HOME):
        return Path(env_path)
    return Path.home() / DEFAULT_DIR_NAME


@dataclass(frozen=True)
class DataPaths:
    """Files and directories under one data directory."""

    data_dir: Path

    @property
    def ops_dir(self) -> Path:
        return self.data_dir / "ops"

    @property
    def db_path(self) -> Path:
        return self.data_dir / "graph.db"

    @property
    def log_file(self) -> Path:
        return self.data_dir / "todograph.log"


def setup_logging(paths: DataPaths, verbose: bool = False) -> None:
    """Log to a file in the data directory and to stderr.

    Does nothing if the root logger is already configured.
    """
    if logging.getLogger().handlers:
        return
    paths.data_dir.mkdir(parents=True, exist_ok=True)
    stderr = logging.StreamHandler(sys.stderr)
    stderr.setLevel(logging.INFO if verbose else logging.WARNING)
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[
            logging.FileHandler(paths.log_file),
            stderr,
        ],
    )
