"""CLI entry point for rendering external sources.

Usage:
    python -m chsources sources.yaml
    python -m chsources sources.yaml --config appsettings.yaml --env-file .env
    python -m chsources sources.yaml --dictionary country_lookup --drop
    python -m chsources sources.yaml --table Customer --insert
    python -m chsources sources.yaml --check

Rendered statements are printed to stdout, one per block, each terminated
with ``;``. Logs go to stderr.
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from pydantic import ValidationError

from chsources.lib.config_loader import Catalog, load_catalog, validate_catalog
from chsources.lib.config_store import ConfigStore
from chsources.lib.dictionaries import DictionaryRenderer
from chsources.lib.env import load_env_file
from chsources.lib.errors import SourceError
from chsources.lib.logging import setup_logging
from chsources.lib.resolver import ConnectionResolver
from chsources.lib.table_functions import TableFunctionRenderer
from chsources.lib.validate import CompilerSettings

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chsources",
        description="Render ClickHouse table functions and dictionary DDL for external sources",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Render every table function and CREATE DICTIONARY in a catalog
    python -m chsources sources.yaml

    # Resolve connection profiles from a configuration file
    python -m chsources sources.yaml --config appsettings.yaml

    # Drop and reload statements for one dictionary
    python -m chsources sources.yaml --dictionary country_lookup --drop --reload

    # Validate the catalog without resolving credentials
    python -m chsources sources.yaml --check

Defaults can be set with CHSOURCES_CONFIG_FILE, CHSOURCES_ENV_FILE,
CHSOURCES_CONFIG_ENV_PREFIX, CHSOURCES_LOG_LEVEL and CHSOURCES_LOG_FORMAT.
        """,
    )

    parser.add_argument("catalog", help="YAML catalog of tables and dictionaries")
    parser.add_argument(
        "--config",
        dest="config_file",
        help="Configuration store file (YAML/JSON) holding ExternalConnections profiles",
    )
    parser.add_argument(
        "--env-file",
        help="Load environment variables from this .env file first",
    )
    parser.add_argument(
        "--config-env-prefix",
        help="Also read <PREFIX>A__B environment variables into the store as A:B",
    )
    parser.add_argument(
        "--table",
        action="append",
        dest="tables",
        metavar="ENTITY",
        help="Only render this table entity (repeatable)",
    )
    parser.add_argument(
        "--dictionary",
        action="append",
        dest="dictionaries",
        metavar="NAME",
        help="Only render this dictionary (repeatable)",
    )
    parser.add_argument(
        "--drop",
        action="store_true",
        help="Render DROP DICTIONARY instead of CREATE DICTIONARY",
    )
    parser.add_argument(
        "--reload",
        action="store_true",
        help="Also render SYSTEM RELOAD DICTIONARY",
    )
    parser.add_argument(
        "--status",
        action="store_true",
        help="Also render the system.dictionaries status query",
    )
    parser.add_argument(
        "--insert",
        action="store_true",
        help="Render INSERT INTO FUNCTION targets for writable tables",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Validate the catalog without rendering",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--json-log",
        action="store_true",
        help="Output logs in JSON format (for log aggregation systems)",
    )
    parser.add_argument(
        "--log-file",
        help="Write logs to a file in addition to stderr",
    )
    return parser


def build_resolver(
    config_file: Optional[str],
    config_env_prefix: Optional[str],
) -> ConnectionResolver:
    """Assemble the configuration store and resolver for a run."""
    stores = []
    if config_file:
        stores.append(ConfigStore.from_file(config_file))
    if config_env_prefix:
        stores.append(ConfigStore.from_environ(prefix=config_env_prefix))

    config = ConfigStore.merged(*stores) if stores else None
    return ConnectionResolver(config)


def render_catalog(
    catalog: Catalog,
    resolver: ConnectionResolver,
    *,
    tables: Optional[List[str]] = None,
    dictionaries: Optional[List[str]] = None,
    drop: bool = False,
    reload: bool = False,
    status: bool = False,
    insert: bool = False,
) -> List[str]:
    """Render the selected specs of ``catalog`` into statements."""
    table_renderer = TableFunctionRenderer(resolver)
    dictionary_renderer = DictionaryRenderer(resolver)

    # Selecting only one kind skips the other
    only_dictionaries = dictionaries is not None and tables is None
    only_tables = tables is not None and dictionaries is None

    statements: List[str] = []

    if not only_dictionaries:
        specs = [catalog.table(name) for name in tables] if tables else catalog.tables
        for spec in specs:
            if insert:
                if table_renderer.inserts_enabled(spec):
                    statements.append(table_renderer.render_insert_target(spec))
                else:
                    logger.info("Skipping %s: inserts not enabled", spec.entity)
                continue
            statements.append(f"SELECT * FROM {table_renderer.render(spec)}")

    if not only_tables and not insert:
        specs = [catalog.dictionary(name) for name in dictionaries] if dictionaries else catalog.dictionaries
        for spec in specs:
            if drop:
                statements.append(dictionary_renderer.render_drop(spec))
            else:
                statements.append(dictionary_renderer.render_create(spec))
            if reload:
                statements.append(dictionary_renderer.render_reload(spec))
            if status:
                statements.append(dictionary_renderer.render_status_query(spec))

    return statements


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # An explicit env file may carry CHSOURCES_* settings, so it loads first
    env_loaded = load_env_file(args.env_file) if args.env_file else True

    try:
        settings = CompilerSettings()
    except ValidationError as e:
        print(f"Error: invalid CHSOURCES_* settings\n{e}", file=sys.stderr)
        return 1

    setup_logging(
        verbose=args.verbose or settings.log_level == "DEBUG",
        json_format=args.json_log or settings.log_format == "json",
        log_file=args.log_file or settings.log_file,
    )

    if not env_loaded:
        logger.warning("No variables loaded from %s", args.env_file)
    elif not args.env_file and settings.env_file:
        if not load_env_file(settings.env_file):
            logger.warning("No variables loaded from %s", settings.env_file)

    if args.check:
        errors = validate_catalog(args.catalog)
        for error in errors:
            print(error, file=sys.stderr)
        if errors:
            return 1
        print(f"{args.catalog}: OK")
        return 0

    try:
        catalog = load_catalog(args.catalog)
        resolver = build_resolver(
            args.config_file or settings.config_file,
            args.config_env_prefix or settings.config_env_prefix,
        )
        statements = render_catalog(
            catalog,
            resolver,
            tables=args.tables,
            dictionaries=args.dictionaries,
            drop=args.drop,
            reload=args.reload,
            status=args.status,
            insert=args.insert,
        )
    except SourceError as e:
        logger.error("Rendering failed: %s", e.message, extra={"error": e.to_dict()})
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except FileNotFoundError as e:
        logger.error("%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for statement in statements:
        print(f"{statement};\n")

    logger.info("Rendered %d statement(s)", len(statements), extra={"statement_count": len(statements)})
    return 0


if __name__ == "__main__":
    sys.exit(main())
