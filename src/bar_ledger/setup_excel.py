"""Utility for initializing the offline cache workbook.

The module doubles as a script (``bar-ledger-setup``) and as a library used
by tests. The cache location is read from ``[System] CacheFile`` so the
script and the ledger session always agree on where the workbook lives.
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Sequence

from . import data_manager

CONFIG_FILE = data_manager.CONFIG_FILE_NAME


def resolve_cache_path(config_path: Path) -> Path:
    """Return the cache workbook path configured in ``config_path``.

    Raises:
        FileNotFoundError: If the configuration file does not exist.
        KeyError: If ``StoreName`` or ``CacheFile`` is missing.
    """

    config_path = Path(config_path).expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    if settings.cache_file is None:
        raise KeyError("Missing required configuration entry: [System] CacheFile")
    return settings.cache_file


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the cache workbook named by ``config_path``."""

    return data_manager.create_cache_workbook(resolve_cache_path(config_path), overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize the bar ledger offline cache")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite the cache workbook if it already exists.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the setup script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Bar Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        output_path = run_from_config(config_path, overwrite=args.force)
    except FileNotFoundError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except KeyError as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to discard the existing cache.")
        return 1
    except OSError as exc:
        print(f"\n[ERROR] Unable to write workbook: {exc}")
        return 1

    print(f"\n[SUCCESS] Created offline cache at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
