"""
CLI (Command Line Interface).

This module provides the terminal commands, e.g.:

    timeschedule setup
    timeschedule crawl --once
    timeschedule status
    timeschedule depts
    timeschedule classes <dept>
    timeschedule sections <class>
    timeschedule search <text>

Note:
- crawl writes only to the inactive slot and flips it when done
- the read commands only look at the active slot
"""

from __future__ import annotations

import argparse
import json
import logging

from rich import box
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from timeschedule.config import Settings, load_settings
from timeschedule.errors import ScheduleError
from timeschedule.model import Class, Department, Section
from timeschedule.scheduler import run_scheduler
from timeschedule.search import list_classes, list_departments, list_sections, search
from timeschedule.switch import Slot, StoreSwitch


console = Console()


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True, show_path=False)],
        force=True,
    )
    # requests/urllib3 are chatty at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def _settings(args: argparse.Namespace) -> Settings:
    settings = load_settings(args.config)
    return settings.override(
        data_dir=args.data_dir,
        root_url=getattr(args, "root_url", None),
        fetch_limit=getattr(args, "fetch_limit", None),
        insert_limit=getattr(args, "insert_limit", None),
        interval_minutes=getattr(args, "interval", None),
        loop=getattr(args, "loop", None),
    )


def _cmd_setup(args: argparse.Namespace, switch: StoreSwitch) -> int:
    """
    Create (or with --teardown remove) the control store and both slots.
    """
    if args.teardown:
        switch.teardown()
        console.print(f"Removed stores in {switch.data_dir}")
        return 0
    switch.setup()
    console.print(f"Stores ready in {switch.data_dir} (active slot: {switch.get_active_slot().name})")
    return 0


def _cmd_crawl(args: argparse.Namespace, settings: Settings, switch: StoreSwitch) -> int:
    if not switch.control_path.exists():
        switch.setup()
    flips = run_scheduler(settings, switch)
    console.print(f"Crawl done ({flips} pass(es)). Active slot: {switch.get_active_slot().name}")
    return 0


def _cmd_status(args: argparse.Namespace, switch: StoreSwitch) -> int:
    """
    Show which slot is active and how many rows each slot holds.
    """
    active = switch.get_active_slot()
    table = Table(title=f"Active slot: {active.name}", box=box.SIMPLE)
    table.add_column("Slot")
    table.add_column("Departments", justify="right")
    table.add_column("Classes", justify="right")
    table.add_column("Sections", justify="right")
    for slot in Slot:
        store = switch.store(slot)
        label = f"[bold green]{slot.name}[/] (active)" if slot is active else slot.name
        if not store.path.exists():
            table.add_row(label, "-", "-", "-")
            continue
        table.add_row(
            label,
            str(store.count(Department)),
            str(store.count(Class)),
            str(store.count(Section)),
        )
    console.print(table)
    return 0


def _cmd_depts(args: argparse.Namespace, switch: StoreSwitch) -> int:
    depts = list_departments(switch)
    if not depts:
        console.print("No departments.")
        return 0
    table = Table(box=box.SIMPLE)
    table.add_column("Dept")
    table.add_column("Name")
    for d in depts:
        table.add_row(d.abbreviation, d.name)
    console.print(table)
    return 0


def _cmd_classes(args: argparse.Namespace, switch: StoreSwitch) -> int:
    dept = (args.dept or "").strip()
    if not dept:
        console.print("Please provide a department abbreviation.")
        return 1
    classes = list_classes(switch, dept)
    if not classes:
        console.print(f"No classes for {dept.upper()}.")
        return 0
    table = Table(title=dept.upper(), box=box.SIMPLE)
    table.add_column("Class")
    table.add_column("Title")
    for c in classes:
        table.add_row(f"{c.abbreviation.upper()} {c.code}", c.title)
    console.print(table)
    return 0


def _cmd_sections(args: argparse.Namespace, switch: StoreSwitch) -> int:
    class_key = (args.class_key or "").strip()
    if not class_key:
        console.print("Please provide a class (e.g. math124).")
        return 1
    sects = list_sections(switch, class_key, open_only=args.open, skip_quiz=args.no_quiz, day=args.day)
    if not sects:
        console.print(f"No sections for {class_key}.")
        return 0

    if args.json:
        payload = [
            {
                "sln": s.sln,
                "section": s.section,
                "credit": s.credit,
                "instructor": s.instructor,
                "status": s.status,
                "taken": s.taken_spots,
                "total": s.total_spots,
                "quiz": s.is_quiz(),
                "meeting_times": json.loads(s.meeting_times_json or "[]"),
            }
            for s in sects
        ]
        print(json.dumps(payload, indent=2, ensure_ascii=False))
        return 0

    table = Table(title=class_key, box=box.SIMPLE)
    table.add_column("SLN")
    table.add_column("Sect")
    table.add_column("Credit")
    table.add_column("Meets")
    table.add_column("Instructor")
    table.add_column("Seats", justify="right")
    table.add_column("Status")
    for s in sects:
        meets = "\n".join(f"{mt.days} {mt.time} {mt.building} {mt.room}".strip() for mt in s.meeting_times())
        seats = f"{s.taken_spots}/{s.total_spots}"
        status = s.status if s.is_open() else f"[red]{s.status or 'full'}[/]"
        sect = f"{s.section} [dim](quiz)[/]" if s.is_quiz() else s.section
        table.add_row(s.sln, sect, s.credit, meets, s.instructor, seats, status)
    console.print(table)
    return 0


def _cmd_search(args: argparse.Namespace, switch: StoreSwitch) -> int:
    """
    Search departments and classes by word prefixes.
    """
    query = (args.text or "").strip()
    if not query:
        console.print("Please provide a search text.")
        return 1

    hits = search(switch, query, limit=args.limit)
    if not hits:
        console.print("No results.")
        return 0
    for h in hits:
        console.print(f"{h.kind:5} | {h.key:12} | {h.label}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """
    Build the argparse CLI parser with sub-commands.
    """
    parser = argparse.ArgumentParser(prog="timeschedule", description="Time schedule crawler and reader")
    parser.add_argument("--config", type=str, default=None, help="Path to a JSON config file")
    parser.add_argument("--data-dir", type=str, default=None, help="Directory holding switch.db and the slot files")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    p_setup = sub.add_parser("setup", help="Create the control store and both slots")
    p_setup.add_argument("--teardown", action="store_true", help="Remove the stores instead")

    p_crawl = sub.add_parser("crawl", help="Rebuild the inactive slot and flip to it")
    p_crawl.add_argument("--root-url", type=str, default=None, help="Department index URL")
    p_crawl.add_argument("--fetch-limit", type=int, default=None, help="Max concurrent page fetches")
    p_crawl.add_argument("--insert-limit", type=int, default=None, help="Max concurrent inserts")
    p_crawl.add_argument("--interval", type=float, default=None, help="Minutes between passes when looping")
    mode = p_crawl.add_mutually_exclusive_group()
    mode.add_argument("--once", dest="loop", action="store_false", default=None, help="Run a single pass")
    mode.add_argument("--loop", dest="loop", action="store_true", default=None, help="Repeat passes forever")

    sub.add_parser("status", help="Show the active slot and row counts")
    sub.add_parser("depts", help="List departments")

    p_classes = sub.add_parser("classes", help="List classes of a department")
    p_classes.add_argument("dept", type=str, help="Department abbreviation (e.g. MATH)")

    p_sections = sub.add_parser("sections", help="List sections of a class")
    p_sections.add_argument("class_key", type=str, help="Class key (e.g. math124)")
    p_sections.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    p_sections.add_argument("--open", action="store_true", help="Only sections with a free seat")
    p_sections.add_argument("--no-quiz", action="store_true", help="Hide quiz sections")
    p_sections.add_argument("--day", type=str, default=None, help="Only sections meeting on a day (m, t, w, th, f, s)")

    p_search = sub.add_parser("search", help="Search departments and classes")
    p_search.add_argument("text", type=str, help="Search text")
    p_search.add_argument("--limit", type=int, default=20, help="Max results")

    return parser


def main(argv: list[str] | None = None) -> None:
    """
    CLI entry point. Parses args, dispatches to command handlers,
    and exits via SystemExit with a return code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        settings = _settings(args)
        switch = StoreSwitch(settings.data_dir)

        if args.command == "setup":
            raise SystemExit(_cmd_setup(args, switch))
        if args.command == "crawl":
            raise SystemExit(_cmd_crawl(args, settings, switch))
        if args.command == "status":
            raise SystemExit(_cmd_status(args, switch))
        if args.command == "depts":
            raise SystemExit(_cmd_depts(args, switch))
        if args.command == "classes":
            raise SystemExit(_cmd_classes(args, switch))
        if args.command == "sections":
            raise SystemExit(_cmd_sections(args, switch))
        if args.command == "search":
            raise SystemExit(_cmd_search(args, switch))
    except ScheduleError as exc:
        console.print(f"[red]Error:[/] {exc}")
        raise SystemExit(1)

    raise SystemExit(2)
