"""Tests for the CLI review and auth-check commands."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from proposal_review import cli
from proposal_review.config import Settings
from proposal_review.llm_client import ExternalServiceError, LLMAuthError
from proposal_review.schema import Recommendation, ReviewRequest, ReviewResult
from typer.testing import CliRunner

runner = CliRunner()

SETTINGS = Settings(api_key="test-key", base_url="https://llm.test/v1")


def make_result(**overrides: object) -> ReviewResult:
    fields: dict[str, object] = {
        "score": 82,
        "explanation": "Clear and well-scoped.",
        "recommendation": Recommendation.RECOMMENDED,
        "raw_reply": "Score: 82\nExplanation: Clear and well-scoped.\nRecommendation: Recommended",
        "model_used": "gpt-3.5-turbo",
    }
    fields.update(overrides)
    return ReviewResult(**fields)


@pytest.fixture(autouse=True)
def fixed_settings(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(cli, "_load_settings", lambda: SETTINGS)
    monkeypatch.setattr(cli, "configure_logging", lambda level: None)


@pytest.mark.unit
def test_review_prints_markdown_report(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[tuple[Settings, ReviewRequest]] = []

    async def _fake_run(settings: Settings, request: ReviewRequest, *, trust_env: bool):
        seen.append((settings, request))
        return make_result()

    monkeypatch.setattr(cli, "_run_review", _fake_run)

    result = runner.invoke(
        cli.app,
        ["review", "--abstract", "Study of soil erosion", "--objectives", "Quantify erosion"],
    )

    assert result.exit_code == 0
    assert "**Score:** 82/100" in result.output
    assert "**Recommendation:** Recommended" in result.output
    assert seen[0][1] == ReviewRequest(
        abstract="Study of soil erosion", objectives="Quantify erosion"
    )


@pytest.mark.unit
def test_review_json_output_and_model_override(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: list[Settings] = []

    async def _fake_run(settings: Settings, request: ReviewRequest, *, trust_env: bool):
        seen.append(settings)
        return make_result(score=None, model_used="gpt-4o")

    monkeypatch.setattr(cli, "_run_review", _fake_run)

    result = runner.invoke(
        cli.app,
        [
            "review",
            "--abstract",
            "A",
            "--objectives",
            "O",
            "--model",
            "gpt-4o",
            "--output-format",
            "json",
        ],
    )

    assert result.exit_code == 0
    payload = json.loads(result.output)
    assert payload["score"] is None
    assert payload["recommendation"] == "Recommended"
    assert payload["needsManualReview"] is True
    assert payload["modelUsed"] == "gpt-4o"
    assert seen[0].model == "gpt-4o"


@pytest.mark.unit
def test_review_reads_fields_from_files(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    abstract_path = tmp_path / "abstract.txt"
    objectives_path = tmp_path / "objectives.txt"
    abstract_path.write_text("Abstract from file", encoding="utf-8")
    objectives_path.write_text("Objectives from file", encoding="utf-8")
    seen: list[ReviewRequest] = []

    async def _fake_run(settings: Settings, request: ReviewRequest, *, trust_env: bool):
        seen.append(request)
        return make_result()

    monkeypatch.setattr(cli, "_run_review", _fake_run)

    result = runner.invoke(
        cli.app,
        [
            "review",
            "--abstract-file",
            str(abstract_path),
            "--objectives-file",
            str(objectives_path),
        ],
    )

    assert result.exit_code == 0
    assert seen == [ReviewRequest(abstract="Abstract from file", objectives="Objectives from file")]


@pytest.mark.unit
def test_review_rejects_non_utf8_file(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    abstract_path = tmp_path / "abstract.txt"
    abstract_path.write_bytes(b"\xff\xfe\x00bad")

    async def _fake_run(settings: Settings, request: ReviewRequest, *, trust_env: bool):
        raise AssertionError("service must not be called")

    monkeypatch.setattr(cli, "_run_review", _fake_run)

    result = runner.invoke(
        cli.app,
        ["review", "--abstract-file", str(abstract_path), "--objectives", "O"],
    )

    assert result.exit_code == 2
    assert "UTF-8" in result.output
    assert not isinstance(result.exception, UnicodeDecodeError)


@pytest.mark.unit
def test_review_rejects_missing_objectives(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fake_run(settings: Settings, request: ReviewRequest, *, trust_env: bool):
        raise AssertionError("service must not be called")

    monkeypatch.setattr(cli, "_run_review", _fake_run)

    result = runner.invoke(cli.app, ["review", "--abstract", "A"])

    assert result.exit_code == 2
    assert "Invalid proposal" in result.output
    assert "objectives" in result.output


@pytest.mark.unit
def test_review_reports_service_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _fake_run(settings: Settings, request: ReviewRequest, *, trust_env: bool):
        raise ExternalServiceError("boom", status_code=503, endpoint="/chat/completions")

    monkeypatch.setattr(cli, "_run_review", _fake_run)

    result = runner.invoke(cli.app, ["review", "--abstract", "A", "--objectives", "O"])

    assert result.exit_code == 1
    assert "status=503 endpoint=/chat/completions" in result.output


@pytest.mark.unit
def test_auth_check_fails_when_key_missing(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _raise_missing_key(settings: Settings, *, trust_env: bool) -> list[str]:
        raise LLMAuthError("Missing generation service API key.")

    monkeypatch.setattr(cli, "_check_auth", _raise_missing_key)
    result = runner.invoke(cli.app, ["auth-check"])

    assert result.exit_code == 1
    assert "Auth check failed" in result.output


@pytest.mark.unit
def test_auth_check_succeeds_when_model_listed(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _models(settings: Settings, *, trust_env: bool) -> list[str]:
        return ["gpt-3.5-turbo", "gpt-4o"]

    monkeypatch.setattr(cli, "_check_auth", _models)
    result = runner.invoke(cli.app, ["auth-check"])

    assert result.exit_code == 0
    assert "API key accepted by https://llm.test/v1." in result.output
    assert "Model 'gpt-3.5-turbo' is available." in result.output


@pytest.mark.unit
def test_auth_check_warns_when_model_not_listed(monkeypatch: pytest.MonkeyPatch) -> None:
    async def _models(settings: Settings, *, trust_env: bool) -> list[str]:
        return ["other-model"]

    monkeypatch.setattr(cli, "_check_auth", _models)
    result = runner.invoke(cli.app, ["auth-check"])

    assert result.exit_code == 0
    assert "Warning: model 'gpt-3.5-turbo' was not listed" in result.output
