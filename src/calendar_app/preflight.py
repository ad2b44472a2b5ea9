"""
Preflight checks that catch common misconfigurations before a session starts.
"""

import logging
import sqlite3
from contextlib import closing

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

from calendar_app.models import AppConfig
from calendar_app.models import StoreError
from calendar_app.xml_store import XMLStore

logger = logging.getLogger(__name__)


def run_preflight_checks(cfg: AppConfig) -> list[tuple[str, str, str]]:
    """Return a list of (label, detail, hint) issues; empty when all is well."""
    issues: list[tuple[str, str, str]] = []

    # 1. Data directories writable
    for label, path in (("Data file", cfg.data_file), ("Database", cfg.database)):
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error("Cannot create directory %s: %s", path.parent, e)
            issues.append((label, f"{path.parent}: {e}", f"Check permissions on {path.parent}"))

    # 2. Snapshot file parseable if it exists
    try:
        XMLStore(cfg.data_file).load()
    except StoreError as e:
        logger.error("Snapshot file unreadable (%s): %s", cfg.data_file, e)
        issues.append(
            (
                "Data file",
                str(e),
                "Fix or move the file away; it is rebuilt from the database on the next sync",
            )
        )

    # 3. Database readable + writable if it exists
    db_path = cfg.database
    if db_path.exists():
        try:
            with closing(sqlite3.connect(db_path)) as conn:
                conn.execute("SELECT 1")
                # BEGIN IMMEDIATE takes the write lock, which needs a journal file
                # next to the database.
                conn.execute("BEGIN IMMEDIATE")
                conn.execute("ROLLBACK")
        except sqlite3.Error as e:
            logger.error("Database not readable/writable (%s): %s", db_path, e)
            issues.append(
                (
                    "Database",
                    f"{db_path}: {e}",
                    f"Check permissions on {db_path.parent} "
                    f"(journal files must be creatable alongside the database); "
                    f"until then changes are kept in the data file only",
                )
            )

    return issues


def print_issues(issues: list[tuple[str, str, str]], console: Console) -> None:
    body = Text()
    for i, (label, detail, hint) in enumerate(issues):
        if i:
            body.append("\n")
        body.append(f"  ✗  {label}: ", style="bold red")
        body.append(detail, style="bold red")
        body.append(f"\n       → {hint}", style="yellow")

    console.print(Panel(body, title="[bold red]Preflight checks failed[/bold red]"))
