"""Pipeline that extracts, encodes and optionally submits one record.

Coordinates the extractor, encoder, decoder and submission client for a
single service. All dependencies are injected via the constructor.
"""

from typing import Any

import structlog
from pydantic import BaseModel

from formdoc.models.metadata import ServiceMetadata
from formdoc.models.record import ExtractedRecord
from formdoc.services.codec import DocumentDecoder, DocumentEncoder, wrap_test_data
from formdoc.services.extractor import RecordGraphExtractor
from formdoc.services.submission import SubmissionClient, SubmissionResult


class PipelineResult(BaseModel):
    """Record, document and submission outcome of one run."""

    record: ExtractedRecord
    document: dict[str, Any]
    submission: SubmissionResult | None = None

    model_config = {"frozen": True}


class DocumentPipeline:
    def __init__(
        self,
        metadata: ServiceMetadata,
        extractor: RecordGraphExtractor,
        encoder: DocumentEncoder,
        decoder: DocumentDecoder,
        submission_client: SubmissionClient | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        self._metadata = metadata
        self._extractor = extractor
        self._encoder = encoder
        self._decoder = decoder
        self._submission_client = submission_client
        self._logger = logger or structlog.get_logger(__name__)

    @property
    def metadata(self) -> ServiceMetadata:
        return self._metadata

    def run(self, root_id: str, submit: bool = False, test_data: bool = False) -> PipelineResult:
        """Extract and encode the record rooted at ``root_id``.

        Args:
            root_id: Key of the root row.
            submit: Post the document with the configured submission client.
            test_data: Wrap the document in the test-data envelope.

        Returns:
            PipelineResult holding the record, the document and, when
            submitted, the submission outcome.

        Raises:
            ValueError: If ``submit`` is set but no submission client is configured.
        """
        self._logger.info("pipeline_started", service_id=self._metadata.id, root_id=root_id)

        record = self._extractor.extract(root_id)
        document = self._encoder.encode(record)
        if test_data:
            document = wrap_test_data(document)

        submission = None
        if submit:
            if self._submission_client is None:
                raise ValueError("no submission endpoint configured")
            submission = self._submission_client.submit(document)

        self._logger.info(
            "pipeline_completed",
            service_id=self._metadata.id,
            root_id=root_id,
            section_count=len(record.sections),
            submitted=submission is not None,
        )
        return PipelineResult(record=record, document=document, submission=submission)

    def decode(self, document: dict[str, Any]) -> ExtractedRecord:
        return self._decoder.decode(document)
