"""Command-line interface for bibdb."""

import argparse
import logging
import sys
from pathlib import Path

from .config import DatabaseConfig, load_config
from .database import Database
from .exceptions import BibdbError
from .filter import parse_filter
from .interop import verify_serialization
from .parser import LoadSummary
from .storage import export_entries, load_database, merge_file, save_database
from .types import DuplicatePolicy, Severity


def setup_logging(verbosity: int = 0) -> None:
    """Configure logging for the CLI application.

    Args:
        verbosity: Logging verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
    """
    level = {0: logging.WARNING, 1: logging.INFO}.get(verbosity, logging.DEBUG)
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s:%(lineno)d – %(message)s",
    )


def _config(args: argparse.Namespace) -> DatabaseConfig:
    if args.config:
        return load_config(Path(args.config))
    return DatabaseConfig()


def _load(args: argparse.Namespace, config: DatabaseConfig) -> tuple[Database, LoadSummary]:
    bib_path = Path(args.file)
    if not bib_path.exists():
        raise BibdbError(f"Bibliography file not found: {bib_path}")
    return load_database(bib_path, config)


def _print_summary(summary: LoadSummary) -> None:
    print(f"entries:  {summary.entries}")
    print(f"strings:  {summary.strings}")
    print(f"preamble: {'yes' if summary.preamble else 'no'}")
    if summary.issues:
        print(f"problems: {len(summary.issues)} (worst: {summary.worst_severity.name.lower()})")


def cmd_info(args: argparse.Namespace) -> None:
    """Report what a file contains and how cleanly it was read."""
    logger = logging.getLogger(__name__)

    try:
        _database, summary = _load(args, _config(args))
    except BibdbError as e:
        logger.error(f"Info error: {e}")
        sys.exit(1)

    _print_summary(summary)
    if args.verbose:
        for issue in summary.issues:
            print(f"  {issue}")
    sys.exit(1 if summary.worst_severity >= Severity.ERROR else 0)


def cmd_list(args: argparse.Namespace) -> None:
    """Print the keys of the (filtered) entries."""
    logger = logging.getLogger(__name__)

    try:
        database, _summary = _load(args, _config(args))
        if args.filter:
            database.set_filter(parse_filter(args.filter))
    except BibdbError as e:
        logger.error(f"List error: {e}")
        sys.exit(1)

    for key in database.list_keys():
        print(key)
    sys.exit(0)


def cmd_show(args: argparse.Namespace) -> None:
    """Print one entry, including fields inherited through crossref."""
    logger = logging.getLogger(__name__)

    try:
        database, _summary = _load(args, _config(args))
    except BibdbError as e:
        logger.error(f"Show error: {e}")
        sys.exit(1)

    entry = database.get_entry(args.key)
    if entry is None:
        logger.error(f"No entry {args.key} in {args.file}")
        sys.exit(1)

    print(f"@{entry.entry_type}{{{entry.key}}}")
    names = database.all_fields(entry.key) if args.all_fields else list(entry.fields)
    parent = database.crossref_target(entry.key)
    if parent is not None:
        names.extend(name for name in database.entries[parent].fields if name not in names)

    for name in names:
        resolved = database.get_field(entry.key, name, expand_strings=args.expand)
        if resolved is None:
            if args.all_fields:
                print(f"  {name:<14}")
            continue
        marker = f"  [from {resolved.inherited_from}]" if resolved.inherited_from else ""
        print(f"  {name:<14} {resolved.text}{marker}")
    sys.exit(0)


def cmd_format(args: argparse.Namespace) -> None:
    """Rewrite a file in canonical form."""
    logger = logging.getLogger(__name__)

    try:
        config = _config(args)
        if args.crossref_first:
            config.crossref_first = True
        if args.sort_key:
            config.sort_keys = [
                [name.strip().lower() for name in level.split(",") if name.strip()]
                for level in args.sort_key
            ]
        if args.no_backup:
            config.create_backups = False
        database, summary = _load(args, config)
    except BibdbError as e:
        logger.error(f"Format error: {e}")
        sys.exit(1)

    if summary.worst_severity >= Severity.WARNING and not args.force:
        logger.error("✗ Problems found while reading; use --force to write anyway")
        sys.exit(1)

    output = Path(args.output) if args.output else None
    if not save_database(database, output):
        sys.exit(1)
    logger.info(f"✓ Wrote {len(database)} entries")
    sys.exit(0)


def cmd_merge(args: argparse.Namespace) -> None:
    """Merge another file into a file."""
    logger = logging.getLogger(__name__)
    policy = DuplicatePolicy(args.policy)

    try:
        config = _config(args)
        if args.timestamp:
            config.use_timestamp = True
        database, _summary = _load(args, config)
        summary = merge_file(database, Path(args.other), policy)
    except BibdbError as e:
        logger.error(f"Merge error: {e}")
        sys.exit(1)

    _print_summary(summary)
    if args.dry_run:
        logger.info("Dry run: nothing written")
        sys.exit(0)
    sys.exit(0 if save_database(database) else 1)


def cmd_export(args: argparse.Namespace) -> None:
    """Append selected entries to another file."""
    logger = logging.getLogger(__name__)

    try:
        database, _summary = _load(args, _config(args))
        if args.filter:
            database.set_filter(parse_filter(args.filter))
        keys = args.keys or database.list_keys()
        count = export_entries(database, keys, Path(args.output))
    except BibdbError as e:
        logger.error(f"Export error: {e}")
        sys.exit(1)

    logger.info(f"✓ Exported {count} entries to {args.output}")
    sys.exit(0 if count else 1)


def cmd_verify(args: argparse.Namespace) -> None:
    """Check that canonical output is read back identically by bibtexparser."""
    logger = logging.getLogger(__name__)

    try:
        database, _summary = _load(args, _config(args))
    except BibdbError as e:
        logger.error(f"Verify error: {e}")
        sys.exit(1)

    problems = verify_serialization(database)
    if problems:
        logger.error(f"✗ {len(problems)} problems found")
        sys.exit(1)
    logger.info("✓ Serialized output verified")
    sys.exit(0)


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="bibdb",
        description="Manage BibTeX databases: inspect, filter, sort, merge and export.",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (use -v for INFO, -vv for DEBUG)",
    )

    parser.add_argument(
        "--config",
        type=str,
        help="Path to a JSON configuration file (entry types, sort keys, timestamps)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # info subcommand
    info_parser = subparsers.add_parser("info", help="Summarize the contents of a .bib file")
    info_parser.add_argument("file", help="BibTeX file")
    info_parser.set_defaults(func=cmd_info)

    # list subcommand
    list_parser = subparsers.add_parser("list", help="List entry keys")
    list_parser.add_argument("file", help="BibTeX file")
    list_parser.add_argument(
        "--filter", type=str, help="Filter query, e.g. 'title:learning and not year:2020'"
    )
    list_parser.set_defaults(func=cmd_list)

    # show subcommand
    show_parser = subparsers.add_parser("show", help="Show the fields of one entry")
    show_parser.add_argument("file", help="BibTeX file")
    show_parser.add_argument("key", help="Entry key")
    show_parser.add_argument(
        "--expand", action="store_true", help="Expand @string abbreviations in values"
    )
    show_parser.add_argument(
        "--all-fields",
        action="store_true",
        help="Also list empty required and optional fields of the entry type",
    )
    show_parser.set_defaults(func=cmd_show)

    # format subcommand
    format_parser = subparsers.add_parser("format", help="Rewrite a file in canonical form")
    format_parser.add_argument("file", help="BibTeX file")
    format_parser.add_argument("-o", "--output", type=str, help="Write here instead of in place")
    format_parser.add_argument(
        "--crossref-first",
        action="store_true",
        help="Place entries with a crossref field before all others",
    )
    format_parser.add_argument(
        "--sort-key",
        action="append",
        metavar="FIELDS",
        help="Sort level as comma-separated candidate fields; repeat for more levels",
    )
    format_parser.add_argument(
        "--no-backup", action="store_true", help="Do not keep a backup of the old file"
    )
    format_parser.add_argument(
        "--force", action="store_true", help="Write even if problems were found while reading"
    )
    format_parser.set_defaults(func=cmd_format)

    # merge subcommand
    merge_parser = subparsers.add_parser("merge", help="Merge another .bib file into a file")
    merge_parser.add_argument("file", help="BibTeX file to merge into")
    merge_parser.add_argument("other", help="BibTeX file to read entries from")
    merge_parser.add_argument(
        "--policy",
        choices=[policy.value for policy in DuplicatePolicy],
        default=DuplicatePolicy.UNIQUIFY.value,
        help="What to do with duplicate keys (default: uniquify)",
    )
    merge_parser.add_argument(
        "--timestamp", action="store_true", help="Add a timestamp field to merged entries"
    )
    merge_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Show what would be merged without writing",
    )
    merge_parser.set_defaults(func=cmd_merge)

    # export subcommand
    export_parser = subparsers.add_parser("export", help="Append entries to another .bib file")
    export_parser.add_argument("file", help="BibTeX file to export from")
    export_parser.add_argument("keys", nargs="*", help="Keys to export (default: all listed)")
    export_parser.add_argument("-o", "--output", required=True, help="Target .bib file")
    export_parser.add_argument("--filter", type=str, help="Filter query selecting entries")
    export_parser.set_defaults(func=cmd_export)

    # verify subcommand
    verify_parser = subparsers.add_parser(
        "verify", help="Check canonical output against bibtexparser"
    )
    verify_parser.add_argument("file", help="BibTeX file")
    verify_parser.set_defaults(func=cmd_verify)

    return parser


def main() -> None:
    """Main entry point for the bibdb CLI."""
    parser = create_parser()
    args = parser.parse_args()

    # Setup logging based on verbosity
    setup_logging(args.verbose)

    # Handle case where no subcommand is provided
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    # Execute the subcommand
    args.func(args)


if __name__ == "__main__":
    main()
