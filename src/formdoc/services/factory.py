"""Factory functions for creating and wiring document pipelines.

Provides a production factory that reads settings, loads metadata and opens
the configured database, and a test factory that runs against an in-memory
SQLite database or any injected row accessor.
"""

from collections.abc import Mapping
from pathlib import Path

import structlog

from formdoc.config import Settings
from formdoc.models.diagnostics import FaultCallback, GapCallback
from formdoc.models.metadata import ServiceMetadata
from formdoc.services.codec import Clock, DocumentDecoder, DocumentEncoder, utc_now
from formdoc.services.extractor import RecordGraphExtractor
from formdoc.services.metadata_loader import MetadataLoader
from formdoc.services.pipeline import DocumentPipeline
from formdoc.services.row_store import RowAccessor, SqlRowStore, create_engine_from_url
from formdoc.services.submission import SubmissionClient
from formdoc.services.transformers import TransformationRegistry

IN_MEMORY_DATABASE_URL = "sqlite://"


def create_pipeline(
    service_id: str,
    settings: Settings | None = None,
    submission_headers: Mapping[str, str] | None = None,
    on_gap: GapCallback | None = None,
    on_fault: FaultCallback | None = None,
) -> DocumentPipeline:
    """Create a production DocumentPipeline for one service.

    Loads the service metadata, opens the configured database and, when an
    endpoint is configured, creates a submission client.

    Args:
        service_id: Service whose metadata drives the pipeline.
        settings: Runtime settings; read from the environment when omitted.
        submission_headers: Extra HTTP headers sent with submissions.
        on_gap: Callback receiving resolution gaps.
        on_fault: Callback receiving transform faults.

    Returns:
        Configured DocumentPipeline ready for use.

    Raises:
        ConfigurationError: If the service metadata cannot be loaded.
    """
    settings = settings or Settings()
    logger = structlog.get_logger(__name__)

    metadata = MetadataLoader(settings=settings, logger=logger).load(service_id)
    row_store = SqlRowStore(engine=create_engine_from_url(settings.database_url), logger=logger)

    submission_client = None
    if settings.submission_endpoint:
        submission_client = SubmissionClient(
            endpoint=settings.submission_endpoint,
            headers=submission_headers,
            timeout=settings.submission_timeout,
            logger=logger,
        )

    return _assemble(
        metadata=metadata,
        row_store=row_store,
        settings=settings,
        submission_client=submission_client,
        clock=utc_now,
        on_gap=on_gap,
        on_fault=on_fault,
        logger=logger,
    )


def create_test_pipeline(
    service_id: str,
    metadata_dir: Path,
    row_store: RowAccessor | None = None,
    submission_client: SubmissionClient | None = None,
    clock: Clock = utc_now,
    on_gap: GapCallback | None = None,
    on_fault: FaultCallback | None = None,
) -> DocumentPipeline:
    """Create a DocumentPipeline for testing.

    Metadata is read from ``metadata_dir`` only. Without an explicit row
    accessor the pipeline reads from a fresh in-memory SQLite database.

    Args:
        service_id: Service whose metadata drives the pipeline.
        metadata_dir: Directory holding the mapping and structure files.
        row_store: Row accessor to extract from.
        submission_client: Client used when a run asks to submit.
        clock: Source of the encoded timestamp.
        on_gap: Callback receiving resolution gaps.
        on_fault: Callback receiving transform faults.

    Returns:
        Configured DocumentPipeline.
    """
    logger = structlog.get_logger(__name__)
    settings = Settings(
        metadata_dir=str(metadata_dir),
        resources_dir=str(metadata_dir),
        database_url=IN_MEMORY_DATABASE_URL,
    )

    metadata = MetadataLoader(settings=settings, logger=logger).load(service_id)
    if row_store is None:
        row_store = SqlRowStore(engine=create_engine_from_url(IN_MEMORY_DATABASE_URL), logger=logger)

    return _assemble(
        metadata=metadata,
        row_store=row_store,
        settings=settings,
        submission_client=submission_client,
        clock=clock,
        on_gap=on_gap,
        on_fault=on_fault,
        logger=logger,
    )


def _assemble(
    metadata: ServiceMetadata,
    row_store: RowAccessor,
    settings: Settings,
    submission_client: SubmissionClient | None,
    clock: Clock,
    on_gap: GapCallback | None,
    on_fault: FaultCallback | None,
    logger: structlog.stdlib.BoundLogger,
) -> DocumentPipeline:
    registry = TransformationRegistry(logger=logger, on_gap=on_gap, on_fault=on_fault)
    extractor = RecordGraphExtractor(
        metadata=metadata,
        row_store=row_store,
        column_prefix=settings.column_prefix,
        key_column=settings.key_column,
        logger=logger,
        on_gap=on_gap,
    )
    encoder = DocumentEncoder(metadata=metadata, registry=registry, logger=logger, clock=clock, on_gap=on_gap)
    decoder = DocumentDecoder(metadata=metadata, registry=registry, logger=logger, on_gap=on_gap)
    return DocumentPipeline(
        metadata=metadata,
        extractor=extractor,
        encoder=encoder,
        decoder=decoder,
        submission_client=submission_client,
        logger=logger,
    )
