"""Command-line entry point for inspecting and editing category layouts."""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, TextIO, get_type_hints

from .core.category import Category
from .services.persistence import PersistenceStore, PresentationMode, Scope, WindowStateStore
from .services.preferences import PreferencesStore
from .services.scheduler import DeferredQueue, Scheduler
from .services.settings import Settings, SettingsStore
from .services.watcher import PollingSharedStoreWatcher
from .ui.collaborators import FileSystemItemResolver, InMemorySelectionBridge, SelectionBridge
from .ui.events import EventBus, SessionsReloaded, SharedStoreChanged
from .ui.notifier import ChangeNotifier
from .ui.session import CategorySession
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}


@dataclass(slots=True)
class Runtime:
    """Objects shared by every session of one process."""

    settings: Settings
    scheduler: Scheduler
    preferences: PreferencesStore
    store: PersistenceStore
    window_state: WindowStateStore
    notifier: ChangeNotifier
    event_bus: EventBus[Any]
    selection: SelectionBridge = field(default_factory=InMemorySelectionBridge)

    def open_session(self, mode: PresentationMode = PresentationMode.DOCKED) -> CategorySession:
        return CategorySession(
            self.store,
            self.window_state,
            self.notifier,
            mode=mode,
            event_bus=self.event_bus,
            resolver=FileSystemItemResolver(self.settings.root_path),
            settings=self.settings,
            selection=self.selection,
        )


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure logging for the application."""

    level = logging_utils.resolve_level(debug)
    logging_utils.setup_logging(level, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def build_runtime(
    settings: Settings,
    scheduler: Scheduler,
    *,
    preferences: PreferencesStore | None = None,
    event_bus: EventBus[Any] | None = None,
) -> Runtime:
    prefs = preferences or PreferencesStore()
    bus = event_bus or EventBus()
    return Runtime(
        settings=settings,
        scheduler=scheduler,
        preferences=prefs,
        store=PersistenceStore.from_settings(settings, prefs, scheduler=scheduler),
        window_state=WindowStateStore(prefs, settings.project_key),
        notifier=ChangeNotifier(scheduler, event_bus=bus),
        event_bus=bus,
    )


def main(argv: Sequence[str] | None = None, *, stream: TextIO | None = None) -> int:
    """Entry point invoked by the `quickselect` console script."""

    out = stream or sys.stdout
    args = _parse_cli_args(argv)

    debug = _env_flag("QUICKSELECT_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("QUICKSELECT_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(resolved_path, store=settings_store, overrides=cli_overrides or None)

    if settings.debug_logging and not debug:
        configure_logging(True, force=True)

    if args.command == "dump-settings":
        _dump_settings(settings, settings_store, overrides=cli_overrides, stream=out)
        return 0

    if args.command == "watch":
        return _run_watch(settings, args, out)

    queue = DeferredQueue()
    runtime = build_runtime(settings, queue)
    if args.scope:
        runtime.window_state.set_scope_for(PresentationMode.DOCKED, Scope(args.scope))
    session = runtime.open_session()
    session.start()
    try:
        handler = _COMMANDS[args.command]
        ok = handler(session, args, out)
        queue.drain()
    finally:
        session.close()
        queue.drain()
    return 0 if ok else 1


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


# ----------------------------------------------------------------------
# Commands
# ----------------------------------------------------------------------


def _cmd_show(session: CategorySession, args: argparse.Namespace, out: TextIO) -> bool:
    out.write(f"# {session.scope.value} layout\n")
    for line in format_tree(session.roots, label=session.category_label, sub_label=session.subcategory_label):
        out.write(line + "\n")
    return True


def _cmd_add(session: CategorySession, args: argparse.Namespace, out: TextIO) -> bool:
    category = session.add_category(args.name, args.parent)
    if category is None:
        print("Could not add category", file=sys.stderr)
        return False
    out.write(f"{category.id}\n")
    return True


def _cmd_add_sub(session: CategorySession, args: argparse.Namespace, out: TextIO) -> bool:
    sub = session.add_subcategory(args.name, args.category)
    if sub is None:
        print(f"Unknown category: {args.category}", file=sys.stderr)
        return False
    out.write(f"{sub.id}\n")
    return True


def _cmd_rename(session: CategorySession, args: argparse.Namespace, out: TextIO) -> bool:
    if session.find_subcategory(args.id) is not None:
        return session.rename_subcategory(args.id, args.name)
    return session.rename_category(args.id, args.name)


def _cmd_delete(session: CategorySession, args: argparse.Namespace, out: TextIO) -> bool:
    if session.find_subcategory(args.id) is not None:
        return session.delete_subcategory(args.id)
    return session.delete_category(args.id)


def _cmd_move(session: CategorySession, args: argparse.Namespace, out: TextIO) -> bool:
    moved = session.move_category(args.id, args.parent)
    if not moved:
        print("Move rejected", file=sys.stderr)
    return moved


def _cmd_add_items(session: CategorySession, args: argparse.Namespace, out: TextIO) -> bool:
    if not session.select_category(args.category):
        print(f"Unknown category: {args.category}", file=sys.stderr)
        return False
    added = session.add_items(args.refs)
    out.write(f"added {added}\n")
    return True


def _cmd_move_item(session: CategorySession, args: argparse.Namespace, out: TextIO) -> bool:
    return session.move_item(args.ref, args.from_id, args.to_id)


def _cmd_groups(session: CategorySession, args: argparse.Namespace, out: TextIO) -> bool:
    found = session.find_subcategory(args.id)
    category = found[1] if found is not None else session.find_category(args.id)
    if category is None:
        print(f"Unknown category: {args.id}", file=sys.stderr)
        return False
    result = session.grouped_items(category)
    for group in result.groups:
        out.write(f"{group.key}\n")
        for entry in group.items:
            out.write(f"  {entry.item.display_name}\n")
    if result.pruned:
        session.save()
        out.write(f"pruned {len(result.pruned)}\n")
    return True


def _cmd_destinations(session: CategorySession, args: argparse.Namespace, out: TextIO) -> bool:
    if session.find_category(args.id) is not None:
        entries = session.category_destinations(args.id)
    else:
        entries = session.item_destinations(args.id)
    for entry in entries:
        marker = " " if entry.enabled else "x"
        out.write(f"[{marker}] {entry.label}\n")
    return True


_COMMANDS: Dict[str, Callable[[CategorySession, argparse.Namespace, TextIO], bool]] = {
    "show": _cmd_show,
    "add": _cmd_add,
    "add-sub": _cmd_add_sub,
    "rename": _cmd_rename,
    "delete": _cmd_delete,
    "move": _cmd_move,
    "add-items": _cmd_add_items,
    "move-item": _cmd_move_item,
    "groups": _cmd_groups,
    "destinations": _cmd_destinations,
}


def format_tree(
    roots: Sequence[Category],
    *,
    label: Callable[[Category], str] = lambda category: category.name,
    sub_label: Callable[[Category], str] = lambda sub: sub.name,
    depth: int = 0,
) -> list[str]:
    lines: list[str] = []
    indent = "  " * depth
    for category in roots:
        lines.append(f"{indent}{label(category)} [{category.id}]")
        for sub in category.sub_categories:
            lines.append(f"{indent}  - {sub_label(sub)} [{sub.id}] items={len(sub.item_refs)}")
        lines.extend(format_tree(category.children, label=label, sub_label=sub_label, depth=depth + 1))
    return lines


def _run_watch(settings: Settings, args: argparse.Namespace, out: TextIO) -> int:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)
    runtime = build_runtime(settings, loop)
    if args.scope:
        runtime.window_state.set_scope_for(PresentationMode.DOCKED, Scope(args.scope))
    watcher = PollingSharedStoreWatcher(settings.shared_layout_path, interval=settings.watch_interval)
    runtime.notifier.attach(watcher)

    def _on_changed(event: SharedStoreChanged) -> None:
        out.write(f"changed: {event.path}\n")
        out.flush()

    def _on_reloaded(event: SessionsReloaded) -> None:
        out.write(f"reloaded: {', '.join(event.session_ids)}\n")
        out.flush()

    runtime.event_bus.subscribe(SharedStoreChanged, _on_changed)
    runtime.event_bus.subscribe(SessionsReloaded, _on_reloaded)
    session = runtime.open_session()
    session.start()
    _LOGGER.info("Watching %s (Ctrl+C to stop)", settings.shared_layout_path)
    try:
        loop.run_forever()
    except KeyboardInterrupt:  # pragma: no cover - manual shutdown path
        _LOGGER.info("Shutdown requested by user.")
    finally:
        session.close()
        runtime.notifier.detach()
        _drain_event_loop(loop)
        loop.close()
    return 0


def _drain_event_loop(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel outstanding tasks and shutdown async machinery before closing."""

    if loop.is_closed():
        return

    async def _cleanup() -> None:
        current_task = None
        with contextlib.suppress(RuntimeError):
            current_task = asyncio.current_task(loop=loop)

        tasks = [
            task
            for task in asyncio.all_tasks(loop)
            if not task.done() and task is not current_task
        ]
        if tasks:
            _LOGGER.debug("Canceling %s pending asyncio task(s) before shutdown.", len(tasks))
            for task in tasks:
                task.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        with contextlib.suppress(RuntimeError, NotImplementedError):
            await loop.shutdown_asyncgens()

    try:
        loop.run_until_complete(_cleanup())
    except RuntimeError as exc:  # pragma: no cover - loop already running
        _LOGGER.debug("Unable to drain asyncio loop: %s", exc)


# ----------------------------------------------------------------------
# Argument parsing
# ----------------------------------------------------------------------


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="quickselect",
        description="Inspect and edit QuickSelect category layouts.",
    )
    parser.add_argument(
        "--settings",
        dest="settings_path",
        metavar="PATH",
        help="Override the default ~/.quickselect/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override persisted settings for this run (repeatable).",
    )
    parser.add_argument(
        "--scope",
        choices=[scope.value for scope in Scope],
        help="Layout to operate on (remembered for later runs).",
    )
    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("show", help="Print the category tree.")

    add = commands.add_parser("add", help="Add a category.")
    add.add_argument("name")
    add.add_argument("--parent", metavar="ID")

    add_sub = commands.add_parser("add-sub", help="Add a subcategory tab.")
    add_sub.add_argument("name")
    add_sub.add_argument("--category", metavar="ID", required=True)

    rename = commands.add_parser("rename", help="Rename a category or subcategory.")
    rename.add_argument("id")
    rename.add_argument("name")

    delete = commands.add_parser("delete", help="Delete a category or subcategory.")
    delete.add_argument("id")

    move = commands.add_parser("move", help="Move a category under another (or to the root).")
    move.add_argument("id")
    move.add_argument("--parent", metavar="ID")

    add_items = commands.add_parser("add-items", help="Add item refs to a category.")
    add_items.add_argument("category", metavar="CATEGORY_ID")
    add_items.add_argument("refs", nargs="+", metavar="REF")

    move_item = commands.add_parser("move-item", help="Move an item ref between categories.")
    move_item.add_argument("ref")
    move_item.add_argument("from_id", metavar="FROM_ID")
    move_item.add_argument("to_id", metavar="TO_ID")

    groups = commands.add_parser("groups", help="Show the grouped items of a category.")
    groups.add_argument("id")

    destinations = commands.add_parser("destinations", help="List move targets for a node.")
    destinations.add_argument("id")

    commands.add_parser("watch", help="Watch the shared layout and report reloads.")
    commands.add_parser("dump-settings", help="Print the effective settings and exit.")
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    fields = Settings.__dataclass_fields__  # type: ignore[attr-defined]
    type_hints = get_type_hints(Settings)
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(type_hints.get(key, str), raw_value.strip())
    return overrides


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    if annotation is bool:
        return _parse_bool(raw_value)
    if annotation is int:
        return int(raw_value, 10)
    if annotation is float:
        return float(raw_value)
    return raw_value


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    metadata = {
        "path": str(store.path),
        "shared_layout": str(settings.shared_layout_path),
        "project_key": settings.project_key,
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": payload, "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("QUICKSELECT_"))
