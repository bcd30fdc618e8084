"""Unit tests for SubmissionClient."""

import json

import pytest
import requests
import responses

from formdoc.services.submission import TRANSPORT_FAILURE_STATUS, SubmissionClient

_ENDPOINT = "https://forms.example.org/api/applications"


class TestSubmissionClient:
    @responses.activate
    def test_successful_submission_parses_envelope(self) -> None:
        responses.add(
            responses.POST,
            _ENDPOINT,
            json={"success": True, "applicationId": "APP-7", "message": "accepted"},
            status=200,
        )
        client = SubmissionClient(endpoint=_ENDPOINT, headers={"X-Client": "formdoc"})

        result = client.submit({"id": "F-001"})

        assert result.success
        assert result.status_code == 200
        assert result.application_id == "APP-7"
        assert result.message == "accepted"
        request = responses.calls[0].request
        assert json.loads(request.body) == {"id": "F-001"}
        assert request.headers["X-Client"] == "formdoc"
        assert request.headers["Content-Type"] == "application/json"

    @responses.activate
    def test_body_success_flag_overrides_status(self) -> None:
        responses.add(
            responses.POST,
            _ENDPOINT,
            json={"success": False, "message": "duplicate", "errorDetails": "already submitted"},
            status=200,
        )

        result = SubmissionClient(endpoint=_ENDPOINT).submit({"id": "F-001"})

        assert not result.success
        assert result.error_details == "already submitted"

    @pytest.mark.parametrize(("flag", "expected"), [("false", False), ("FALSE", False), ("true", True), ("1", True)])
    @responses.activate
    def test_string_success_flag_is_read_as_token(self, flag: str, expected: bool) -> None:
        responses.add(responses.POST, _ENDPOINT, json={"success": flag}, status=200)

        result = SubmissionClient(endpoint=_ENDPOINT).submit({"id": "F-001"})

        assert result.success is expected

    @responses.activate
    def test_unrecognized_success_flag_falls_back_to_status(self) -> None:
        responses.add(responses.POST, _ENDPOINT, json={"success": "maybe"}, status=500)

        result = SubmissionClient(endpoint=_ENDPOINT).submit({"id": "F-001"})

        assert not result.success

    @responses.activate
    def test_http_error_without_envelope(self) -> None:
        responses.add(responses.POST, _ENDPOINT, body="gateway down", status=502)

        result = SubmissionClient(endpoint=_ENDPOINT).submit({"id": "F-001"})

        assert not result.success
        assert result.status_code == 502
        assert result.message == "gateway down"
        assert result.error_details == "HTTP 502"

    @responses.activate
    def test_transport_failure_is_reported_not_raised(self) -> None:
        responses.add(responses.POST, _ENDPOINT, body=requests.ConnectionError("refused"))

        result = SubmissionClient(endpoint=_ENDPOINT).submit({"id": "F-001"})

        assert not result.success
        assert result.status_code == TRANSPORT_FAILURE_STATUS
        assert "refused" in result.error_details

    def test_endpoint_is_required(self) -> None:
        with pytest.raises(ValueError):
            SubmissionClient(endpoint=" ")
