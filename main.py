#!/usr/bin/env python3
"""Hytale Mod Manager - Entry Point"""

import argparse
import faulthandler
import logging
import sys
import tempfile
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path

from catalog_models import Provider
from settings_store import config_dir


def setup_logging() -> tuple[logging.Logger, Path]:
    log_dir = config_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "hytalemodmanager.log"

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"))

    # Module loggers (catalog_clients, mod_manager, ...) propagate to root.
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return logging.getLogger("hytalemodmanager"), log_dir


def install_crash_handler(logger: logging.Logger, log_dir: Path):
    # Python-level unhandled exceptions
    def handle_exception(exc_type, exc_value, exc_tb):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_tb)
            return
        logger.critical(
            "Unhandled exception:\n%s",
            "".join(traceback.format_exception(exc_type, exc_value, exc_tb)),
        )

    sys.excepthook = handle_exception

    # faulthandler can't use logging after a native crash, so it gets its own file
    crash_file = log_dir / "crash.log"
    faulthandler.enable(open(crash_file, "w"), all_threads=True)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Hytale Mod Manager")
    parser.add_argument("--game-folder")
    parser.add_argument("--settings-file")
    parser.add_argument("--provider", choices=[p.value for p in Provider])
    parser.add_argument("--no-persist-settings", action="store_true")
    parser.add_argument("--window-title-suffix")
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()

    logger, log_dir = setup_logging()
    install_crash_handler(logger, log_dir)
    logger.info("Starting Hytale Mod Manager")

    settings_file = args.settings_file
    if args.no_persist_settings:
        settings_file = Path(tempfile.mkdtemp(prefix="hytalemm-")) / "settings.json"
        logger.info("Settings will not persist (using %s)", settings_file)

    from gui import main
    main(
        logger,
        settings_file=settings_file,
        game_folder_override=args.game_folder,
        provider_override=Provider(args.provider) if args.provider else None,
        window_title_suffix=args.window_title_suffix,
    )
