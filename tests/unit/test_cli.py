"""Tests for the formdoc CLI commands."""

import json
from pathlib import Path

import pytest
import responses
from typer.testing import CliRunner

from formdoc.cli import app

_ENDPOINT = "https://forms.example.org/api/applications"

runner = CliRunner()


@pytest.fixture(autouse=True)
def _clear_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("FORMDOC_SUBMISSION_ENDPOINT", "FORMDOC_METADATA_DIR", "FORMDOC_DATABASE_URL", "FORMDOC_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)


def _encode_args(metadata_dir: Path, database_url: str, *extra: str) -> list[str]:
    return [
        "--log-level",
        "CRITICAL",
        "encode",
        "farmers_registry",
        "F-001",
        "--metadata-dir",
        str(metadata_dir),
        "--database-url",
        database_url,
        *extra,
    ]


class TestEncodeCommand:
    def test_writes_document_to_output_file(self, metadata_dir: Path, farm_database_url: str, tmp_path: Path) -> None:
        output = tmp_path / "document.json"

        result = runner.invoke(app, _encode_args(metadata_dir, farm_database_url, "--output", str(output)))

        assert result.exit_code == 0
        assert "Wrote document for record F-001" in result.output
        document = json.loads(output.read_text(encoding="utf-8"))
        assert document["applicant"]["name"]["first"] == "Amina"
        assert document["serviceId"] == "farmers_registry"

    def test_wraps_test_data(self, metadata_dir: Path, farm_database_url: str, tmp_path: Path) -> None:
        output = tmp_path / "document.json"

        result = runner.invoke(
            app,
            _encode_args(metadata_dir, farm_database_url, "--output", str(output), "--wrap-test-data"),
        )

        assert result.exit_code == 0
        assert json.loads(output.read_text(encoding="utf-8"))["testData"][0]["id"] == "F-001"

    def test_unknown_service_exits_with_error(self, metadata_dir: Path, farm_database_url: str) -> None:
        args = _encode_args(metadata_dir, farm_database_url)
        args[args.index("farmers_registry")] = "unknown_service"

        result = runner.invoke(app, args)

        assert result.exit_code == 1

    def test_submit_requires_endpoint(self, metadata_dir: Path, farm_database_url: str) -> None:
        result = runner.invoke(app, _encode_args(metadata_dir, farm_database_url, "--submit"))

        assert result.exit_code == 1
        assert "No submission endpoint configured" in result.output

    @responses.activate
    def test_submit_reports_result(self, metadata_dir: Path, farm_database_url: str, tmp_path: Path) -> None:
        responses.add(responses.POST, _ENDPOINT, json={"success": True, "applicationId": "APP-3"}, status=200)

        result = runner.invoke(
            app,
            _encode_args(
                metadata_dir,
                farm_database_url,
                "--output",
                str(tmp_path / "document.json"),
                "--submit",
                "--endpoint",
                _ENDPOINT,
            ),
        )

        assert result.exit_code == 0
        assert "Submission succeeded" in result.output
        assert "APP-3" in result.output

    @responses.activate
    def test_failed_submission_exits_with_error(
        self, metadata_dir: Path, farm_database_url: str, tmp_path: Path
    ) -> None:
        responses.add(responses.POST, _ENDPOINT, json={"success": False, "message": "rejected"}, status=400)

        result = runner.invoke(
            app,
            _encode_args(
                metadata_dir,
                farm_database_url,
                "--output",
                str(tmp_path / "document.json"),
                "--submit",
                "--endpoint",
                _ENDPOINT,
            ),
        )

        assert result.exit_code == 1
        assert "Submission failed" in result.output


class TestDecodeCommand:
    def test_prints_record(self, metadata_dir: Path, tmp_path: Path) -> None:
        document = tmp_path / "document.json"
        document.write_text(
            json.dumps({"testData": [{"id": "F-001", "household": {"hasElectricity": False}}]}),
            encoding="utf-8",
        )

        result = runner.invoke(
            app,
            [
                "--log-level",
                "CRITICAL",
                "decode",
                "farmers_registry",
                str(document),
                "--metadata-dir",
                str(metadata_dir),
            ],
        )

        assert result.exit_code == 0
        assert json.loads(result.stdout) == {"id": "F-001", "household": {"has_electricity": "no"}}

    def test_missing_file_exits_with_error(self, metadata_dir: Path, tmp_path: Path) -> None:
        result = runner.invoke(app, ["decode", "farmers_registry", str(tmp_path / "absent.json")])

        assert result.exit_code == 1

    def test_invalid_json_exits_with_error(self, metadata_dir: Path, tmp_path: Path) -> None:
        document = tmp_path / "document.json"
        document.write_text("{not json", encoding="utf-8")

        result = runner.invoke(app, ["decode", "farmers_registry", str(document), "--metadata-dir", str(metadata_dir)])

        assert result.exit_code == 1


class TestValidateCommand:
    def test_prints_coverage(self, metadata_dir: Path) -> None:
        result = runner.invoke(
            app, ["--log-level", "CRITICAL", "validate", "farmers_registry", "-m", str(metadata_dir)]
        )

        assert result.exit_code == 0
        assert "12/14 fields mapped" in result.output
        assert "applicant: 4/5 (80.0%)" in result.output
        assert "unmapped: household_ref" in result.output

    def test_strict_fails_on_gaps(self, metadata_dir: Path) -> None:
        result = runner.invoke(app, ["validate", "farmers_registry", "-m", str(metadata_dir), "--strict"])

        assert result.exit_code == 1


def test_version_command() -> None:
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert result.output.startswith("formdoc ")
