#!/usr/bin/env python3
"""Helldivers 2 Mod Manager - command line entry point"""

from __future__ import annotations

import argparse
import faulthandler
import logging
import sys
import traceback
from logging.handlers import RotatingFileHandler
from pathlib import Path
from uuid import UUID

from pydantic import ValidationError

from app_settings import Settings, app_data_dir, load_settings
from mod_manager import LEVEL_ERROR, LEVEL_PROGRESS, LEVEL_WARNING, ModManager, StatusEvent
from mod_registry import Package
from problems import ModManagerError

_crash_file = None


def setup_logging(log_dir: Path | None = None) -> tuple[logging.Logger, Path]:
    log_dir = log_dir or app_data_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / "hd2modmanager.log"

    # module loggers propagate to the root
    root = logging.getLogger()
    root.setLevel(logging.DEBUG)
    if any(isinstance(h, RotatingFileHandler) for h in root.handlers):
        return logging.getLogger("hd2modmanager"), log_dir

    handler = RotatingFileHandler(
        log_file,
        maxBytes=1 * 1024 * 1024,  # 1 MB
        backupCount=2,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter("%(asctime)s  %(levelname)-8s  %(name)s  %(message)s"))
    root.addHandler(handler)
    return logging.getLogger("hd2modmanager"), log_dir


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

    # faulthandler can't use logging after a hard crash, so it gets its own file
    global _crash_file
    if _crash_file is None:
        _crash_file = open(log_dir / "crash.log", "w")
        faulthandler.enable(_crash_file, all_threads=True)


# ── Arguments ─────────────────────────────────────────────────────────


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="hd2modmanager", description="Helldivers 2 Mod Manager")
    parser.add_argument("--settings", help="path to settings.json")
    parser.add_argument("--game-dir")
    parser.add_argument("--storage-dir")
    parser.add_argument("--temp-dir")
    parser.add_argument("--log-dir")
    parser.add_argument("-v", "--verbose", action="store_true", help="show progress messages")

    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="show staged mods in deployment order")
    sub.add_parser("check", help="check the configured directories")

    p = sub.add_parser("add", help="stage one or more archives")
    p.add_argument("archives", nargs="+")

    p = sub.add_parser("update", help="replace a staged mod with a new archive")
    p.add_argument("mod")
    p.add_argument("archive")

    p = sub.add_parser("remove", help="delete a staged mod")
    p.add_argument("mod")
    p.add_argument("-y", "--yes", action="store_true")

    for name in ("enable", "disable"):
        p = sub.add_parser(name, help=f"{name} a mod")
        p.add_argument("mod")

    p = sub.add_parser("option", help="turn one of a mod's options on or off")
    p.add_argument("mod")
    p.add_argument("option", type=int, help="option number, starting at 1")
    p.add_argument("state", choices=("on", "off"))

    p = sub.add_parser("select", help="pick the sub-option of an option")
    p.add_argument("mod")
    p.add_argument("option", type=int, help="option number, starting at 1")
    p.add_argument("sub_option", type=int, help="sub-option number, starting at 1")

    p = sub.add_parser("move", help="move a mod in the deployment order")
    p.add_argument("mod")
    p.add_argument("direction", choices=("up", "down"))

    p = sub.add_parser("alias", help="set or clear a mod's display name")
    p.add_argument("mod")
    p.add_argument("alias", nargs="?", default="")

    p = sub.add_parser("search", help="find mods by name")
    p.add_argument("text")

    sub.add_parser("plan", help="show which files a deploy would write")
    sub.add_parser("deploy", help="write enabled mods into the game")
    sub.add_parser("purge", help="remove the files of the last deploy")

    p = sub.add_parser("hard-purge", help="remove every patch file from the game data folder")
    p.add_argument("-y", "--yes", action="store_true")

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def settings_from_args(args: argparse.Namespace) -> Settings:
    settings = load_settings(args.settings)
    overrides = {}
    if args.game_dir:
        overrides["game_directory"] = Path(args.game_dir)
    if args.storage_dir:
        overrides["storage_directory"] = Path(args.storage_dir)
    if args.temp_dir:
        overrides["temp_directory"] = Path(args.temp_dir)
    return settings.model_copy(update=overrides) if overrides else settings


# ── Commands ──────────────────────────────────────────────────────────


def print_event(event: StatusEvent, verbose: bool = False):
    if event.level == LEVEL_PROGRESS and not verbose:
        return
    stream = sys.stderr if event.level in (LEVEL_WARNING, LEVEL_ERROR) else sys.stdout
    print(event.message, file=stream)


def ask(question: str) -> bool:
    try:
        return input(f"{question} [y/N] ").strip().lower() in ("y", "yes")
    except EOFError:
        return False


def resolve_mod(manager: ModManager, ref: str) -> Package:
    """Find a mod by list number, GUID (or GUID prefix) or name."""
    mods = manager.mods
    if ref.isdigit():
        index = int(ref) - 1
        if 0 <= index < len(mods):
            return mods[index]
        raise ModManagerError(f"No mod #{ref}")

    try:
        package = manager.find(UUID(ref))
    except ValueError:
        package = None
    if package is not None:
        return package

    needle = ref.casefold()
    matches = [p for p in mods if str(p.guid).startswith(needle)]
    if not matches:
        matches = [p for p in mods if needle in (p.display_name.casefold(), p.name.casefold())]
    if len(matches) == 1:
        return matches[0]
    if not matches:
        raise ModManagerError(f"No mod matches '{ref}'")
    raise ModManagerError(f"'{ref}' matches {len(matches)} mods, be more specific")


def format_mod(position: int, package: Package) -> list[str]:
    mark = "x" if package.enabled else " "
    lines = [f"{position:>3}. [{mark}] {package.display_name}  ({package.guid})"]
    if package.alias:
        lines[0] += f"  [{package.name}]"
    for number, option in enumerate(package.options, start=1):
        mark = "x" if option.enabled else " "
        line = f"       {number}. [{mark}] {option.definition.name}"
        sub = option.selected_sub_option
        if sub is not None:
            line += f" -> {sub.name}"
        lines.append(line)
    return lines


def dispatch(manager: ModManager, args: argparse.Namespace) -> int:
    command = args.command

    if command == "list":
        for position, package in enumerate(manager.mods, start=1):
            print("\n".join(format_mod(position, package)))
        return 0

    if command == "check":
        issues = manager.settings.validate_paths()
        for issue in issues:
            print(issue)
        return 1 if issues else 0

    if command == "add":
        results = [manager.add_archive(archive) for archive in args.archives]
        manager.save_profile()
        return 0 if all(r.success for r in results) else 1

    if command == "search":
        for package in manager.search(args.text):
            print("\n".join(format_mod(manager.mods.index(package) + 1, package)))
        return 0

    if command == "plan":
        for entry in manager.plan().entries:
            print(f"{entry.target_name}  <-  {entry.source}")
        return 0

    if command == "deploy":
        manager.deploy()
        return 0

    if command == "purge":
        manager.purge()
        return 0

    if command == "hard-purge":
        if not args.yes and not ask("Delete every patch file in the game data folder?"):
            return 1
        manager.hard_purge()
        return 0

    package = resolve_mod(manager, args.mod)

    if command == "update":
        return 0 if manager.update_archive(package, args.archive).success else 1
    if command == "remove":
        return 0 if manager.remove(package, confirm=None if args.yes else ask) else 1
    if command == "alias":
        manager.set_alias(package, args.alias)
        return 0

    if command in ("enable", "disable"):
        manager.set_enabled(package, command == "enable")
    elif command == "option":
        manager.set_option_enabled(package, args.option - 1, args.state == "on")
    elif command == "select":
        manager.select_sub_option(package, args.option - 1, args.sub_option - 1)
    elif command == "move":
        if args.direction == "up":
            manager.move_up(package)
        else:
            manager.move_down(package)
    manager.save_profile()
    return 0


def run(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    logger, log_dir = setup_logging(Path(args.log_dir) if args.log_dir else None)
    install_crash_handler(logger, log_dir)
    logger.info("Starting Helldivers 2 Mod Manager (%s)", args.command)

    try:
        settings = settings_from_args(args)
    except ValidationError as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        return 1
    logging.getLogger().setLevel(settings.log_level)

    manager = ModManager(settings, event_callback=lambda event: print_event(event, args.verbose))
    try:
        manager.initialize()
        return dispatch(manager, args)
    except (ModManagerError, IndexError, OSError) as e:
        logger.error("%s failed: %s", args.command, e)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(run())
