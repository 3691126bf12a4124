"""
Command-line interface for the EMIR trade data quality engine.

Usage:
    emir-quality validate --input <file_path> --report-date <YYYY-MM-DD> [options]
    emir-quality schema --version v1
"""

import argparse
import sys
from collections import Counter
from datetime import date
from pathlib import Path

from emir_quality.batch.readers import DelimitedRecordSource
from emir_quality.config.settings import PipelineSettings, load_settings
from emir_quality.core.errors import EmirQualityError
from emir_quality.core.models import RunStatus
from emir_quality.core.schema import SchemaRegistry
from emir_quality.observability.logger import get_logger, setup_logger
from emir_quality.observability.metrics import start_metrics_server
from emir_quality.pipeline import PipelineOrchestrator
from emir_quality.warehouse.sinks import InMemoryResultSink, ResultSink, RetryingResultSink

logger = get_logger(__name__)


def build_sink(kind: str, settings: PipelineSettings) -> ResultSink:
    """
    Create the result sink selected on the command line.

    Args:
        kind: "memory" or "postgres"
        settings: Loaded settings (database connection, retention)

    Returns:
        Result sink; the PostgreSQL sink is wrapped with retries
    """
    if kind == "memory":
        return InMemoryResultSink()

    # Lazy import: psycopg is only needed for the PostgreSQL sink
    from emir_quality.warehouse.connection import DatabaseConnectionPool
    from emir_quality.warehouse.postgres_sink import PostgresResultSink

    db = settings.database
    pool = DatabaseConnectionPool(
        host=db.host,
        port=db.port,
        database=db.name,
        user=db.user,
        password=db.password,
        max_size=settings.shard_count * 2 + 1,
    )
    pool.open()
    return RetryingResultSink(
        PostgresResultSink(pool, retention_days=settings.effective_retention_days),
        max_retries=settings.max_retries,
        base_delay=settings.retry_base_delay,
        max_delay=settings.retry_max_delay,
    )


def apply_overrides(settings: PipelineSettings, args) -> PipelineSettings:
    overrides = {}
    if getattr(args, "schema_version", None):
        overrides["schema_version"] = args.schema_version
    if getattr(args, "rules", None):
        overrides["rules_path"] = Path(args.rules)
    if getattr(args, "shards", None):
        overrides["shard_count"] = args.shards
    if getattr(args, "batch_size", None):
        overrides["batch_size"] = args.batch_size
    if not overrides:
        return settings
    return settings.model_copy(update=overrides)


def print_run_summary(run, sink: ResultSink) -> None:
    print("=" * 60)
    print(f"Report run {run.report_execution_id}: {run.status.value}")
    print("=" * 60)

    if run.overall_score is not None:
        overall = run.overall_score
        print(f"Overall accuracy score: {overall.overall_accuracy_score:.4f} ({overall.traffic_light.value})")
        print(f"Total records:          {overall.total_records}")
        print(f"Records with errors:    {overall.records_with_errors}")
        print(f"Unparseable records:    {overall.unparseable_records}")
        print(f"Findings: CRITICAL={overall.critical_count} MAJOR={overall.major_count} MINOR={overall.minor_count}")

    if isinstance(sink, InMemoryResultSink):
        categories = sink.category_scores.get(run.execution_id, {})
        if categories:
            print("-" * 60)
            print("Category scores:")
            for name, score in categories.items():
                print(f"  {name:<16} {score.score:>9.4f}")

    if run.failure is not None:
        failure = run.failure
        where = failure.phase.value
        if failure.branch is not None:
            where = f"{where} ({failure.branch.value})"
        print(f"Failed in {where} after {failure.retry_count} retries")
        print(f"  {failure.error_type}: {failure.error_message}")


def validate_command(args) -> int:
    """
    Execute the validate command.

    Returns:
        Exit code: 0 when the run completed, 1 otherwise
    """
    settings = apply_overrides(load_settings(env_file=args.env_file), args)
    setup_logger(level=settings.effective_log_level, format_type=settings.log_format)

    input_path = Path(args.input)
    if not input_path.exists():
        logger.error(f"Input file not found: {args.input}")
        return 1

    try:
        report_date = date.fromisoformat(args.report_date)
    except ValueError:
        logger.error(f"Invalid report date: {args.report_date}")
        return 1

    if settings.metrics_port:
        start_metrics_server(settings.metrics_port)

    try:
        sink = build_sink(args.sink, settings)
    except Exception as e:
        logger.error(f"Cannot open result sink: {e}", exc_info=True)
        return 1

    try:
        orchestrator = PipelineOrchestrator.from_settings(settings, sink=sink)
        source = DelimitedRecordSource(input_path, orchestrator.schema, report_date, delimiter=args.delimiter)
        run = orchestrator.run(source, report_date)
    except EmirQualityError as e:
        logger.error(f"Cannot start validation: {e}", exc_info=True)
        sink.close()
        return 1

    print_run_summary(run, sink)
    sink.close()
    return 0 if run.status is RunStatus.COMPLETED else 1


def schema_command(args) -> int:
    """Print a summary of a schema version."""
    settings = load_settings(env_file=args.env_file)
    registry = SchemaRegistry(settings.schema_dir)
    try:
        schema = registry.load(args.version)
    except EmirQualityError as e:
        logger.error(str(e))
        return 1

    per_category = Counter(f.category for f in schema.definitions)
    print(f"Schema {schema.version}: {len(schema)} fields, {len(schema.mandatory_fields)} mandatory")
    for category in schema.categories:
        mandatory = sum(1 for f in schema.fields_in_category(category) if f.mandatory)
        print(f"  {category:<16} {per_category[category]:>4} fields  {mandatory:>3} mandatory")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="emir-quality",
        description="EMIR REFIT trade data quality engine",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Validate a report file with the in-memory sink
  emir-quality validate --input data/report.csv --report-date 2025-09-25

  # Persist findings and scores to PostgreSQL (DB_* environment variables)
  emir-quality validate --input data/report.csv --report-date 2025-09-25 --sink postgres

  # Show the field layout of a schema version
  emir-quality schema --version v1
        """
    )
    parser.add_argument("--env-file", default=None, help="Path to a .env file")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    validate_parser = subparsers.add_parser("validate", help="Validate and score a report file")
    validate_parser.add_argument("--input", required=True, help="Path to the delimited report file")
    validate_parser.add_argument("--report-date", required=True, help="Report date (YYYY-MM-DD)")
    validate_parser.add_argument("--schema-version", default=None, help="Schema version (default: EMIR_SCHEMA_VERSION or v1)")
    validate_parser.add_argument("--rules", default=None, help="Rule catalog YAML file")
    validate_parser.add_argument(
        "--sink",
        default="memory",
        choices=["memory", "postgres"],
        help="Where results are written (default: memory)"
    )
    validate_parser.add_argument("--shards", type=int, default=None, help="Number of shards")
    validate_parser.add_argument("--batch-size", type=int, default=None, help="Records per micro-batch")
    validate_parser.add_argument("--delimiter", default=",", help="Field delimiter (default: ,)")

    schema_parser = subparsers.add_parser("schema", help="Summarize a schema version")
    schema_parser.add_argument("--version", default="v1", help="Schema version (default: v1)")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "validate":
        return validate_command(args)
    if args.command == "schema":
        return schema_command(args)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
