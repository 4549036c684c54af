#!/usr/bin/env python
"""Command line entry point for inspecting and maintaining a Notura store."""
import argparse
import atexit
import json
import logging
import os
import sys
from pathlib import Path

from notura import __version__
from notura.config import config
from notura.exceptions import NoturaError
from notura.models.db_models import init_db
from notura.models.schema import ExportFormat
from notura.observability import configure_logging, metrics
from notura.services.notura_service import NoturaService


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subcommand per maintenance task."""
    parser = argparse.ArgumentParser(prog="notura", description="Notura note store")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--database-path",
        help="SQLite database file path",
        type=str,
        default=os.environ.get("NOTURA_DATABASE_PATH")
    )
    parser.add_argument(
        "--images-dir",
        help="Directory for stored image files",
        type=str,
        default=os.environ.get("NOTURA_IMAGES_DIR")
    )
    parser.add_argument(
        "--metrics-file",
        help="JSON file that operation metrics are written to on exit",
        type=str,
        default=None
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=config.log_level.upper()
    )

    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("info", help="Show note/collection counts and database size")

    search = commands.add_parser("search", help="Full-text search")
    search.add_argument("query")

    export = commands.add_parser("export", help="Export notes to stdout or a file")
    export.add_argument(
        "--format",
        choices=[f.value for f in ExportFormat],
        default=ExportFormat.MARKDOWN.value
    )
    export.add_argument("--output", "-o", help="Output file (default: stdout)")
    export.add_argument("ids", nargs="*", help="Note ids (default: all notes)")

    imp = commands.add_parser("import", help="Import notes from a JSON or Markdown file")
    imp.add_argument("path")

    commands.add_parser("reindex", help="Rebuild the full-text search index")
    return parser


def update_config(args) -> None:
    """Update the global config with command line arguments."""
    if args.database_path:
        config.database_path = Path(args.database_path)
    if args.images_dir:
        config.images_dir = Path(args.images_dir)
    if args.metrics_file:
        config.metrics_file = Path(args.metrics_file)


def _save_metrics_on_exit():
    """Save operation metrics to the configured metrics file."""
    if metrics.save_metrics():
        logging.getLogger(__name__).info(f"Metrics saved to {metrics.metrics_file}")


def run_command(service: NoturaService, args) -> None:
    """Execute one subcommand and print its result."""
    if args.command == "info":
        print(json.dumps(service.get_storage_info().model_dump(mode="json"), indent=2))

    elif args.command == "search":
        for result in service.search(args.query):
            print(f"{result.relevance_score:8.3f}  {result.note_id}  {result.title}")
            if result.excerpt:
                print(f"          {result.excerpt}")

    elif args.command == "export":
        ids = args.ids or [note.id for note in service.list_notes()]
        output = service.export_notes(args.format, ids)
        if args.output:
            Path(args.output).write_text(output, encoding="utf-8")
        else:
            sys.stdout.write(output)

    elif args.command == "import":
        notes = service.import_file(args.path)
        print(f"Imported {len(notes)} notes")

    elif args.command == "reindex":
        count = service.rebuild_search_index()
        print(f"Reindexed {count} notes")


def main(argv=None):
    """Run the Notura command line tool."""
    args = build_parser().parse_args(argv)
    update_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.INFO)
    try:
        configure_logging(level=log_level, console=False)
    except OSError as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")

    logger = logging.getLogger(__name__)
    metrics.set_metrics_file(config.metrics_file)
    atexit.register(_save_metrics_on_exit)

    # Single engine shared by all repositories
    try:
        logger.info(f"Using SQLite database: {config.get_db_url()}")
        engine = init_db()
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        print(f"Failed to open datastore: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        run_command(NoturaService(engine), args)
    except NoturaError as e:
        logger.error(f"{args.command} failed: {e}")
        print(f"Error: {e.message}", file=sys.stderr)
        sys.exit(2)
    finally:
        engine.dispose()


if __name__ == "__main__":
    main()
