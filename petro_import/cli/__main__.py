from __future__ import annotations

import argparse
import sys
from pathlib import Path

from dotenv import load_dotenv

from petro_import.config.loader import ConfigError, ImportConfig, load_config
from petro_import.db.store import StoreUnavailableError, connect_store
from petro_import.excel.reader import WorkbookError
from petro_import.logging.init import enable_debug, log_summary, setup_logging
from petro_import.services.duplicates import find_duplicate_names
from petro_import.services.entities import SCHEMAS, get_schema
from petro_import.services.orchestrator import (
    ImportSettings,
    ProcessingError,
    load_sheets,
    run_import,
)
from petro_import.services.summary import render_summary_line

"""CLI entrypoint.

    python -m petro_import.cli rocks [--file PATH] [--batch-size N] [--debug]
    python -m petro_import.cli minerals --inspect-data
    python -m petro_import.cli rocks --duplicates

Exit codes: 0 every record written, 2 some batches failed, 1 fatal (bad config,
unreadable workbook, nothing to import, store unreachable, every batch failed).
"""

EXIT_SUCCESS_ALL = 0
EXIT_PARTIAL_FAILURE = 2
EXIT_FATAL = 1

INSPECT_SAMPLE_ROWS = 3


def _load_env_file(path: Path, override: bool = True) -> None:
    """Load .env with python-dotenv; its values win over the process environment."""
    if path.exists():
        load_dotenv(dotenv_path=path, override=override)


def _parse_args(argv: list[str]) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Excel -> Petro-Core catalog importer")
    p.add_argument("entity", choices=sorted(SCHEMAS), help="What the workbook holds")
    p.add_argument("--file", type=Path, help="Workbook to import (default: configured default_file)")
    p.add_argument("--batch-size", type=int, help="Records per upsert batch")
    p.add_argument("--debug", action="store_true", help="Enable debug logging")
    p.add_argument("--inspect-data", action="store_true", help="Print sheet headers & first rows then exit")
    p.add_argument("--duplicates", action="store_true", help="Report stored specimens sharing a name then exit")
    return p.parse_args(argv)


def _workbook_path(cfg: ImportConfig, entity: str, override: Path | None) -> Path:
    if override is not None:
        return override
    default_file = cfg.entity(entity).default_file
    if not default_file:
        raise ConfigError(f"no --file given and entities.{entity}.default_file not set")
    return Path(default_file)


def _inspect_data(path: Path, skip_sheets: frozenset[str]) -> int:
    print(f"FILE: {path.name}")
    for sheet in load_sheets(path, skip_sheets):
        print(f"  SHEET: {sheet.sheet_name} cols={sheet.columns} rows={len(sheet.rows)}")
        sample = [
            {k: (v.isoformat() if hasattr(v, "isoformat") else v) for k, v in r.values.items()}
            for r in sheet.rows[:INSPECT_SAMPLE_ROWS]
        ]
        print("    sample_rows=", sample)
    return EXIT_SUCCESS_ALL


def _report_duplicates(cfg: ImportConfig, entity: str) -> int:
    schema = get_schema(entity)
    with connect_store(cfg.database) as store:
        groups = find_duplicate_names(store, schema)
    if not groups:
        print(f"no duplicate {schema.label} found")
        return EXIT_SUCCESS_ALL
    print(f"found {len(groups)} duplicate {schema.label} groups:")
    for group in groups:
        print(f'  "{group.key}":')
        for member in group.members:
            print(f"    - code={member['code']} category={member['category']} name={member['name']}")
    return EXIT_SUCCESS_ALL


def main(argv: list[str] | None = None) -> int:
    logger = setup_logging()

    # only read sys.argv when argv is None; an explicit [] must stay empty
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    _load_env_file(Path(".env"), override=True)
    if args.debug:
        enable_debug(logger)

    try:
        cfg = load_config()
        entity_cfg = cfg.entity(args.entity)
        if args.batch_size is not None and args.batch_size < 1:
            raise ConfigError(f"--batch-size must be >= 1, got {args.batch_size}")
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL

    try:
        if args.duplicates:
            return _report_duplicates(cfg, args.entity)

        path = _workbook_path(cfg, args.entity, args.file)
        if not path.exists():
            logger.error(f"workbook not found: {path}")
            return EXIT_FATAL
        if args.inspect_data:
            return _inspect_data(path, entity_cfg.skip_sheets)

        schema = get_schema(args.entity)
        settings = ImportSettings.from_config(cfg, args.entity, batch_size=args.batch_size)
        with connect_store(cfg.database) as store:
            run = run_import(schema, path, store, settings, source_name=path.name)
    except ConfigError as e:
        logger.error(f"config: {e}")
        return EXIT_FATAL
    except WorkbookError as e:
        logger.error(f"workbook: {e}")
        return EXIT_FATAL
    except ProcessingError as e:
        logger.error(f"processing: {e}")
        return EXIT_FATAL
    except StoreUnavailableError as e:
        logger.error(f"store: {e}")
        return EXIT_FATAL
    except Exception as e:
        logger.exception(f"unexpected: {e}")
        return EXIT_FATAL

    # log_summary adds the "SUMMARY " label itself
    summary_line = render_summary_line(run.report, run.timing)
    log_summary(summary_line[len("SUMMARY "):])

    if run.report.success_count == 0:
        return EXIT_FATAL
    if run.report.error_count > 0:
        return EXIT_PARTIAL_FAILURE
    return EXIT_SUCCESS_ALL


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
