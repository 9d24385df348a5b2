"""Command line entry point.

Usage:
    obsidian-docusaurus --config mirror.yml
    obsidian-docusaurus --config mirror.yml --dry-run
    obsidian-docusaurus --vault ./vault --site ./website --main-language en
"""

import argparse
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import List, Optional

from obsidian_docusaurus.core.config import MirrorConfig, load_config
from obsidian_docusaurus.core.models import ConfigurationError, MirrorError
from obsidian_docusaurus.core.reconciler import create_reconciler_from_config

log = logging.getLogger(__name__)


def _setup_logging(*, verbose: bool, log_file: Optional[Path]) -> None:
    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    root_level = logging.DEBUG if verbose else logging.INFO
    root_logger.setLevel(root_level)

    console_fmt = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    detailed_fmt = (
        "%(asctime)s | %(levelname)-8s | %(name)s | "
        "%(threadName)s | %(filename)s:%(lineno)d | %(message)s"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(root_level)
    console_handler.setFormatter(logging.Formatter(console_fmt, "%Y-%m-%d %H:%M:%S"))
    root_logger.addHandler(console_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(detailed_fmt, "%Y-%m-%d %H:%M:%S"))
        root_logger.addHandler(file_handler)

    logging.getLogger("PIL").setLevel(logging.WARNING)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command-line arguments."""
    parser = argparse.ArgumentParser(
        prog="obsidian-docusaurus",
        description="Mirror an Obsidian vault into a Docusaurus site.",
    )
    parser.add_argument("--config", type=Path, help="YAML configuration file")
    parser.add_argument("--vault", type=Path, help="Obsidian vault root (overrides config)")
    parser.add_argument("--site", type=Path, help="Docusaurus site root (overrides config)")
    parser.add_argument("--main-language", help="Language of files without a __xx suffix")
    parser.add_argument("--workers", type=int, help="Number of conversion threads")
    parser.add_argument("--dry-run", action="store_true", help="Only show what would change")
    parser.add_argument("--verbose", "-v", action="store_true", help="Enable debug logging")
    parser.add_argument("--log-file", type=Path, help="Also write detailed logs to this file")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> MirrorConfig:
    """Combine the config file (if any) with command-line overrides."""
    overrides = {
        "vault_path": args.vault,
        "site_path": args.site,
        "main_language": args.main_language,
        "max_workers": args.workers,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}

    if args.config is not None:
        config = load_config(args.config)
        if not overrides:
            return config
        data = {k: getattr(config, k) for k in config.__dataclass_fields__}
        if "vault_path" in overrides:
            # state_dir defaults to a folder inside the vault
            data["state_dir"] = None
        data.update(overrides)
        return MirrorConfig.from_dict(data)

    if "vault_path" not in overrides or "site_path" not in overrides:
        raise ConfigurationError("Either --config or both --vault and --site are required")
    return MirrorConfig.from_dict(overrides)


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    _setup_logging(verbose=args.verbose, log_file=args.log_file)

    try:
        config = build_config(args)
        reconciler = create_reconciler_from_config(config)
        result = reconciler.run(dry_run=args.dry_run)
    except MirrorError as e:
        log.error("%s", e)
        return 1
    except FileNotFoundError as e:
        log.error("%s", e)
        return 1

    if args.dry_run:
        for identity in result.deleted:
            print(f"delete  {identity}")
        for identity in result.converted:
            print(f"convert {identity}")

    for failure in result.failures:
        log.error("Could not delete %s: %s", failure.path, failure.error)

    return 0


if __name__ == "__main__":
    sys.exit(main())
