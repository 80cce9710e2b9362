#!/usr/bin/env python3
"""
Filter sessions by tag expressions from the command line.

Takes filter text (``#feature AND NOT #wip``) or a YAML/JSON expression
tree and prints the ids of matching sessions from the tag database.

Usage:
    python filter_sessions.py "(#feature OR #bugfix) AND NOT #wip" [--db PATH]
    python filter_sessions.py --expr-file filter.yaml --validate --show-sql
"""

from __future__ import annotations

import argparse
import json
import logging
import sqlite3
import sys
from pathlib import Path
from typing import Any

import yaml

import tags_db
from tag_filters import (
    CompileError,
    FilterExecutor,
    TagFilterError,
    build_tag_filter_query,
    expression_from_dict,
    parse_filter,
    resolve_tag_names,
    stringify_expression,
    validate_expression,
    validate_tag_ids,
)

logger = logging.getLogger("session-tags.cli")

EXIT_OK = 0
EXIT_ERROR = 1
EXIT_INVALID = 2


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Filter sessions by boolean tag expressions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Sessions tagged feature or bugfix, but not wip
  python filter_sessions.py "(#feature OR #bugfix) AND NOT #wip"

  # Expression tree from a file, checked against the catalog first
  python filter_sessions.py --expr-file filter.yaml --validate

  # Show the generated SQL
  python filter_sessions.py "#feature AND #3" --show-sql
        """
    )

    parser.add_argument(
        "filter",
        nargs="?",
        help="Filter text, e.g. '#feature AND NOT #wip'",
    )

    parser.add_argument(
        "--expr-file",
        type=Path,
        help="YAML or JSON file holding an expression tree ({type, tagId, children})",
    )

    parser.add_argument(
        "--db",
        type=Path,
        default=None,
        help=f"SQLite database (default: {tags_db.DB_PATH})",
    )

    parser.add_argument(
        "--show-sql",
        action="store_true",
        help="Print the generated statement and parameters to stderr",
    )

    parser.add_argument(
        "--validate",
        action="store_true",
        help="Fail if the expression is malformed or references unknown tags",
    )

    parser.add_argument(
        "--strict",
        action="store_true",
        help="Reject malformed nodes instead of dropping them",
    )

    parser.add_argument(
        "--format",
        choices=("text", "json", "yaml"),
        default="text",
        help="Output format (default: text)",
    )

    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    args = parser.parse_args(argv)
    if bool(args.filter) == bool(args.expr_file):
        parser.error("give either filter text or --expr-file")
    return args


def load_expression_file(path: Path) -> Any:
    """Load a wire-form expression tree. JSON is valid YAML, so one loader serves both."""
    with path.open("r", encoding="utf-8") as f:
        return yaml.safe_load(f)


def _validate(store, raw: Any, expression) -> bool:
    """Print structural and catalog problems. Returns True if there are none."""
    ok = True
    if raw is not None:
        report = validate_expression(raw)
        for error in report.errors:
            print(f"Invalid expression: {error}", file=sys.stderr)
        ok = report.valid

    result = validate_tag_ids(store, expression)
    if not result.valid:
        missing = ", ".join(str(i) for i in result.missing_ids)
        print(f"Unknown tag ids: {missing}", file=sys.stderr)
        ok = False
    return ok


def _write_output(session_ids: list[str], filter_text: str, fmt: str) -> None:
    if fmt == "json":
        print(json.dumps({"filter": filter_text, "sessionIds": session_ids}, indent=2))
    elif fmt == "yaml":
        yaml.dump(
            {"filter": filter_text, "session_ids": session_ids},
            sys.stdout,
            default_flow_style=False,
            sort_keys=False,
            allow_unicode=True,
        )
    else:
        for session_id in session_ids:
            print(session_id)


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    db_path = args.db or tags_db.DB_PATH
    if not db_path.exists():
        print(f"Error: Database does not exist: {db_path}", file=sys.stderr)
        return EXIT_ERROR

    conn = tags_db.get_connection(db_path)
    try:
        store = tags_db.SqliteStore(conn)
        raw = None
        try:
            if args.expr_file:
                raw = load_expression_file(args.expr_file)
                expression = expression_from_dict(raw)
            else:
                expression = resolve_tag_names(
                    parse_filter(args.filter), lambda name: tags_db.lookup_tag(conn, name)
                )
        except (TagFilterError, OSError, sqlite3.Error, yaml.YAMLError) as e:
            print(f"Error: {e}", file=sys.stderr)
            return EXIT_ERROR

        if args.validate and not _validate(store, raw, expression):
            return EXIT_INVALID

        if args.strict:
            try:
                build_tag_filter_query(expression, strict=True, dialect=store.dialect)
            except CompileError as e:
                print(f"Error: {e}", file=sys.stderr)
                return EXIT_ERROR

        executor = FilterExecutor(store)
        if args.show_sql:
            query, params = executor.build_query(expression)
            print(f"SQL:    {query}\nParams: {params}", file=sys.stderr)

        try:
            session_ids = executor.execute(expression)
        except sqlite3.Error as e:
            print(f"Error: Query failed: {e}", file=sys.stderr)
            return EXIT_ERROR
        logger.debug("Filter matched %d sessions", len(session_ids))

        filter_text = stringify_expression(
            expression, lambda tag_id: tags_db.get_tag(conn, tag_id)
        )
        _write_output(session_ids, filter_text, args.format)
    finally:
        conn.close()

    return EXIT_OK


if __name__ == "__main__":
    sys.exit(main())
