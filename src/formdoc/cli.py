"""Metadata-driven form document CLI.

Encodes records from a relational form store into nested JSON documents,
decodes documents back into records, and reports mapping coverage.
"""

import json
import logging
import sys
from pathlib import Path
from typing import Any, Optional

import structlog
import typer

from formdoc.config import Settings
from formdoc.errors import ConfigurationError
from formdoc.models.diagnostics import ResolutionGap, TransformFault
from formdoc.services.codec import TEST_DATA_KEY, DocumentDecoder, to_json
from formdoc.services.coverage import build_coverage_report
from formdoc.services.factory import create_pipeline
from formdoc.services.metadata_loader import MetadataLoader
from formdoc.services.transformers import TransformationRegistry


def configure_logging(level: str = "INFO") -> None:
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=lambda *args: structlog.PrintLogger(file=sys.stderr),
        wrapper_class=structlog.make_filtering_bound_logger(getattr(logging, level.upper(), logging.INFO)),
        context_class=dict,
        cache_logger_on_first_use=False,
    )


configure_logging()

logger = structlog.get_logger(__name__)

app = typer.Typer(
    name="formdoc",
    help="""Convert form-store records to nested JSON documents and back, driven by YAML metadata.

Examples:

  # Encode record 42 of the farmers_registry service
  uv run formdoc encode farmers_registry 42 --database-url sqlite:///forms.db

  # Encode and submit to the configured endpoint
  uv run formdoc encode farmers_registry 42 --submit --endpoint https://example.org/api/applications

  # Decode a document back into a record
  uv run formdoc decode farmers_registry document.json

  # Report mapping coverage
  uv run formdoc validate farmers_registry""",
    rich_markup_mode="markdown",
)


@app.callback()
def main(
    log_level: Optional[str] = typer.Option(
        None,
        "--log-level",
        "-l",
        help="Log level (default: FORMDOC_LOG_LEVEL or INFO)",
    ),
) -> None:
    """Configure logging before running a command."""
    configure_logging(log_level or Settings().log_level)


def _settings(**overrides: Any) -> Settings:
    return Settings(**{key: value for key, value in overrides.items() if value is not None})


@app.command()
def encode(
    service_id: str = typer.Argument(..., help="Service whose metadata drives the mapping"),
    record_id: str = typer.Argument(..., help="Key of the root record"),
    database_url: Optional[str] = typer.Option(
        None,
        "--database-url",
        "-d",
        help="SQLAlchemy database URL (default: FORMDOC_DATABASE_URL)",
    ),
    metadata_dir: Optional[str] = typer.Option(
        None,
        "--metadata-dir",
        "-m",
        help="Directory holding metadata files (default: FORMDOC_METADATA_DIR)",
    ),
    output: Optional[str] = typer.Option(
        None,
        "--output",
        "-o",
        help="Write the document to this file instead of stdout",
    ),
    submit: bool = typer.Option(
        False,
        "--submit/--no-submit",
        help="Post the document to the submission endpoint",
    ),
    endpoint: Optional[str] = typer.Option(
        None,
        "--endpoint",
        "-e",
        help="Submission endpoint (default: FORMDOC_SUBMISSION_ENDPOINT)",
    ),
    wrap_test_data: bool = typer.Option(
        False,
        "--wrap-test-data",
        help="Wrap the document as {\"testData\": [document]}",
    ),
) -> None:
    """Extract a record and encode it as a JSON document."""
    settings = _settings(
        database_url=database_url,
        metadata_dir=metadata_dir,
        submission_endpoint=endpoint,
    )

    gaps: list[ResolutionGap] = []
    faults: list[TransformFault] = []
    try:
        pipeline = create_pipeline(service_id, settings=settings, on_gap=gaps.append, on_fault=faults.append)
    except ConfigurationError as e:
        logger.error("configuration_error", service_id=service_id, error=str(e))
        raise typer.Exit(1)

    if submit and not settings.submission_endpoint:
        logger.error("submission_endpoint_missing", service_id=service_id)
        typer.echo("No submission endpoint configured. Pass --endpoint or set FORMDOC_SUBMISSION_ENDPOINT.")
        raise typer.Exit(1)

    result = pipeline.run(record_id, submit=submit, test_data=wrap_test_data)

    rendered = to_json(result.document)
    if output:
        Path(output).write_text(rendered + "\n", encoding="utf-8")
        typer.echo(f"Wrote document for record {record_id} to {output}")
    else:
        typer.echo(rendered)

    if gaps or faults:
        typer.echo(f"Encountered {len(gaps)} resolution gaps and {len(faults)} transform faults", err=True)

    if result.submission is not None:
        submission = result.submission
        typer.echo(
            f"Submission {'succeeded' if submission.success else 'failed'} "
            f"(status {submission.status_code}, application id {submission.application_id or '-'})"
        )
        if not submission.success:
            if submission.error_details:
                typer.echo(submission.error_details, err=True)
            raise typer.Exit(1)


@app.command()
def decode(
    service_id: str = typer.Argument(..., help="Service whose metadata drives the mapping"),
    document_file: str = typer.Argument(..., help="JSON document to decode"),
    metadata_dir: Optional[str] = typer.Option(
        None,
        "--metadata-dir",
        "-m",
        help="Directory holding metadata files (default: FORMDOC_METADATA_DIR)",
    ),
) -> None:
    """Decode a JSON document back into a record."""
    path = Path(document_file)
    if not path.is_file():
        logger.error("document_not_found", document_file=str(path))
        raise typer.Exit(1)

    try:
        document = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        logger.error("document_invalid", document_file=str(path), error=str(e))
        raise typer.Exit(1)

    if isinstance(document, dict) and isinstance(document.get(TEST_DATA_KEY), list) and document[TEST_DATA_KEY]:
        document = document[TEST_DATA_KEY][0]
    if not isinstance(document, dict):
        logger.error("document_invalid", document_file=str(path), error="expected a JSON object")
        raise typer.Exit(1)

    settings = _settings(metadata_dir=metadata_dir)
    try:
        metadata = MetadataLoader(settings=settings).load(service_id)
    except ConfigurationError as e:
        logger.error("configuration_error", service_id=service_id, error=str(e))
        raise typer.Exit(1)

    record = DocumentDecoder(metadata=metadata, registry=TransformationRegistry()).decode(document)
    typer.echo(to_json(record.to_mapping()))


@app.command()
def validate(
    service_id: str = typer.Argument(..., help="Service whose metadata to check"),
    metadata_dir: Optional[str] = typer.Option(
        None,
        "--metadata-dir",
        "-m",
        help="Directory holding metadata files (default: FORMDOC_METADATA_DIR)",
    ),
    strict: bool = typer.Option(
        False,
        "--strict",
        help="Exit with status 1 when any field is unmapped or any transform is unknown",
    ),
) -> None:
    """Load service metadata and report mapping coverage."""
    settings = _settings(metadata_dir=metadata_dir)
    try:
        metadata = MetadataLoader(settings=settings).load(service_id)
    except ConfigurationError as e:
        logger.error("configuration_error", service_id=service_id, error=str(e))
        raise typer.Exit(1)

    report = build_coverage_report(metadata, TransformationRegistry())

    typer.echo(
        f"Service {report.service_id}: {report.mapped_fields}/{report.total_fields} fields mapped "
        f"({report.coverage}%)"
    )
    for section in report.sections:
        typer.echo(f"  {section.section}: {section.mapped_fields}/{section.total_fields} ({section.coverage}%)")
        for field_id in section.unmapped:
            typer.echo(f"    unmapped: {field_id}")
    for unknown in report.unknown_transforms:
        typer.echo(f"  unknown transform '{unknown.transform}' on {unknown.section}.{unknown.field}")

    if strict and not report.is_complete:
        raise typer.Exit(1)


@app.command()
def version() -> None:
    """Show version information."""
    from formdoc import __version__

    typer.echo(f"formdoc {__version__}")
