"""HTTP submission of encoded documents.

The client posts one JSON document and reads back a small response envelope
(success flag, application id, message). Transport failures are reported in
the result instead of being raised.
"""

from collections.abc import Mapping
from typing import Any

import requests
import structlog
from pydantic import BaseModel

TRANSPORT_FAILURE_STATUS = -1

_TRUE_TOKENS = frozenset({"true", "yes", "1"})
_FALSE_TOKENS = frozenset({"false", "no", "0"})


class SubmissionResult(BaseModel):
    """Outcome of posting a document."""

    success: bool
    status_code: int
    application_id: str | None = None
    message: str | None = None
    error_details: str | None = None
    response_body: Any = None

    model_config = {"frozen": True}


class SubmissionClient:
    def __init__(
        self,
        endpoint: str,
        headers: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        session: requests.Session | None = None,
        logger: structlog.stdlib.BoundLogger | None = None,
    ) -> None:
        if not endpoint or not endpoint.strip():
            raise ValueError("endpoint cannot be empty")
        self._endpoint = endpoint
        self._headers = {"Content-Type": "application/json", "Accept": "application/json", **(headers or {})}
        self._timeout = timeout
        self._session = session or requests.Session()
        self._logger = logger or structlog.get_logger(__name__)

    @property
    def endpoint(self) -> str:
        return self._endpoint

    def submit(self, document: Mapping[str, Any]) -> SubmissionResult:
        """POST ``document`` as JSON.

        Success follows the HTTP status unless the response body carries an
        explicit ``success`` flag.

        Args:
            document: The encoded document.

        Returns:
            SubmissionResult describing the response or the transport failure.
        """
        self._logger.info("submission_started", endpoint=self._endpoint)
        try:
            response = self._session.post(
                self._endpoint,
                json=dict(document),
                headers=self._headers,
                timeout=self._timeout,
            )
        except requests.RequestException as e:
            self._logger.error("submission_failed", endpoint=self._endpoint, error=str(e))
            return SubmissionResult(
                success=False,
                status_code=TRANSPORT_FAILURE_STATUS,
                message="request failed",
                error_details=str(e),
            )

        body = _parse_body(response)
        result = _to_result(response.status_code, response.ok, body)
        self._logger.info(
            "submission_completed",
            endpoint=self._endpoint,
            status_code=result.status_code,
            success=result.success,
            application_id=result.application_id,
        )
        return result


def _parse_body(response: requests.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text


def _to_result(status_code: int, ok: bool, body: Any) -> SubmissionResult:
    if not isinstance(body, dict):
        return SubmissionResult(
            success=ok,
            status_code=status_code,
            message=body if isinstance(body, str) and body else None,
            error_details=None if ok else f"HTTP {status_code}",
            response_body=body,
        )

    success = body.get("success")
    application_id = body.get("applicationId", body.get("application_id"))
    message = body.get("message")
    error_details = body.get("errorDetails", body.get("error"))
    if error_details is None and not ok:
        error_details = f"HTTP {status_code}"
    return SubmissionResult(
        success=_success_flag(success, ok),
        status_code=status_code,
        application_id=None if application_id is None else str(application_id),
        message=None if message is None else str(message),
        error_details=None if error_details is None else str(error_details),
        response_body=body,
    )


def _success_flag(flag: Any, ok: bool) -> bool:
    """Read the envelope flag, which some gateways send as a string."""
    if isinstance(flag, bool):
        return flag
    if isinstance(flag, str):
        token = flag.strip().lower()
        if token in _TRUE_TOKENS:
            return True
        if token in _FALSE_TOKENS:
            return False
    return ok


__all__ = ["SubmissionClient", "SubmissionResult", "TRANSPORT_FAILURE_STATUS"]
