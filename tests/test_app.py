"""Tests covering the command-line entry point."""

from __future__ import annotations

import io
import json
from pathlib import Path
from typing import Any

import pytest

from notepilot import app
from notepilot.ai.ai_types import BackendError
from notepilot.ui.domain import FAILURE_NOTICE


@pytest.fixture(autouse=True)
def _quiet_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(app, "configure_logging", lambda debug=False, *, force=False: None)


@pytest.fixture
def settings_path(tmp_path: Path) -> Path:
    return tmp_path / "settings.json"


@pytest.fixture
def use_backend(monkeypatch: pytest.MonkeyPatch):
    def _install(backend: Any) -> Any:
        monkeypatch.setattr(
            "notepilot.ai.orchestration.orchestrator.build_backend",
            lambda settings: backend,
        )
        monkeypatch.setattr(app, "build_backend", lambda settings: backend)
        return backend

    return _install


def _document(tmp_path: Path, text: str) -> str:
    path = tmp_path / "note.md"
    path.write_text(text, encoding="utf-8")
    return str(path)


# =============================================================================
# Override coercion
# =============================================================================


def test_coerce_cli_overrides_uses_annotations() -> None:
    overrides = app._coerce_cli_overrides(
        [
            "model=gpt-4.1-mini",
            "prefix_char_limit=1200",
            "request_timeout=12.5",
            "debug_mode=yes",
            "organization=none",
            'default_headers={"X-Team": "notes"}',
            "ollama.host=gpu-box:11434",
            "model_options.temperature=0.4",
            "model_options.num_ctx=4096",
        ]
    )

    assert overrides == {
        "model": "gpt-4.1-mini",
        "prefix_char_limit": 1200,
        "request_timeout": 12.5,
        "debug_mode": True,
        "organization": None,
        "default_headers": {"X-Team": "notes"},
        "ollama.host": "gpu-box:11434",
        "model_options.temperature": 0.4,
        "model_options.num_ctx": 4096,
    }


@pytest.mark.parametrize(
    "entry",
    [
        "model",
        "=value",
        "no_such_field=1",
        "ollama.no_such_field=1",
        "model.name=x",
        "debug_mode=perhaps",
        "prefix_char_limit=many",
    ],
)
def test_coerce_cli_overrides_rejects_bad_entries(entry: str) -> None:
    with pytest.raises(ValueError):
        app._coerce_cli_overrides([entry])


def test_invalid_override_exits_with_usage_error(settings_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    code = app.main(["--settings-path", str(settings_path), "--set", "debug_mode=perhaps", "-"])

    assert code == app.EXIT_USAGE
    assert "Invalid --set override" in capsys.readouterr().err


# =============================================================================
# Settings dump
# =============================================================================


def test_dump_settings_redacts_api_key(
    settings_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    settings_path.write_text(json.dumps({"api_key": "sk-1234567890"}), encoding="utf-8")
    monkeypatch.setenv("NOTEPILOT_MODEL", "gpt-env")

    code = app.main(["--settings-path", str(settings_path), "--set", "prefix_char_limit=99", "--dump-settings"])

    assert code == app.EXIT_OK
    output = json.loads(capsys.readouterr().out)
    assert output["settings"]["api_key"] == "sk*********90"
    assert output["settings"]["model"] == "gpt-env"
    assert output["settings"]["prefix_char_limit"] == 99
    assert output["meta"]["path"] == str(settings_path)
    assert output["meta"]["cli_overrides"] == ["prefix_char_limit"]
    assert "NOTEPILOT_MODEL" in output["meta"]["environment_variables"]


# =============================================================================
# Prediction runs
# =============================================================================


def test_prediction_is_printed(
    tmp_path: Path,
    settings_path: Path,
    use_backend,
    make_backend,
    capsys: pytest.CaptureFixture[str],
) -> None:
    backend = use_backend(make_backend(["world"]))
    document = _document(tmp_path, "Hello <|cursor|>")

    code = app.main(["--settings-path", str(settings_path), document])

    assert code == app.EXIT_OK
    assert capsys.readouterr().out == "world\n"
    assert backend.requests[0].prefix == "Hello "
    assert backend.closed


def test_splice_prints_whole_document(
    tmp_path: Path,
    settings_path: Path,
    use_backend,
    make_backend,
    capsys: pytest.CaptureFixture[str],
) -> None:
    use_backend(make_backend(["brave new"]))
    document = _document(tmp_path, "A [[cursor]] world.\n")

    code = app.main(["--settings-path", str(settings_path), "--cursor-marker", "[[cursor]]", "--splice", document])

    assert code == app.EXIT_OK
    assert capsys.readouterr().out == "A brave new world.\n"


def test_stdin_input(
    settings_path: Path,
    use_backend,
    make_backend,
    monkeypatch: pytest.MonkeyPatch,
    capsys: pytest.CaptureFixture[str],
) -> None:
    use_backend(make_backend(["x^2"]))
    monkeypatch.setattr("sys.stdin", io.StringIO("Area: $<|cursor|>$\n"))

    code = app.main(["--settings-path", str(settings_path), "-"])

    assert code == app.EXIT_OK
    assert capsys.readouterr().out == "x^2\n"


def test_backend_failure_exits_with_one(
    tmp_path: Path,
    settings_path: Path,
    use_backend,
    make_backend,
    capsys: pytest.CaptureFixture[str],
) -> None:
    error = BackendError(provider="scripted", kind="network", message="refused", retryable=True)
    use_backend(make_backend(error=error))
    document = _document(tmp_path, "Hello <|cursor|>")

    code = app.main(["--settings-path", str(settings_path), document])

    captured = capsys.readouterr()
    assert code == app.EXIT_BACKEND_FAILURE
    assert FAILURE_NOTICE in captured.err
    assert captured.out == ""


def test_missing_cursor_marker_is_a_usage_error(
    tmp_path: Path,
    settings_path: Path,
    capsys: pytest.CaptureFixture[str],
) -> None:
    document = _document(tmp_path, "No marker here")

    code = app.main(["--settings-path", str(settings_path), document])

    assert code == app.EXIT_USAGE
    assert "cursor marker" in capsys.readouterr().err


def test_missing_input_is_a_usage_error(settings_path: Path) -> None:
    assert app.main(["--settings-path", str(settings_path)]) == app.EXIT_USAGE


def test_unreadable_input_is_a_usage_error(tmp_path: Path, settings_path: Path) -> None:
    code = app.main(["--settings-path", str(settings_path), str(tmp_path / "missing.md")])

    assert code == app.EXIT_USAGE


# =============================================================================
# Connectivity check
# =============================================================================


def test_check_lists_models(
    settings_path: Path,
    use_backend,
    make_backend,
    capsys: pytest.CaptureFixture[str],
) -> None:
    backend = use_backend(make_backend())

    code = app.main(["--settings-path", str(settings_path), "--check"])

    out = capsys.readouterr().out
    assert code == app.EXIT_OK
    assert "Successfully connected to the ollama API." in out
    assert "scripted-model" in out
    assert backend.closed


def test_check_failure(
    settings_path: Path,
    use_backend,
    make_backend,
    capsys: pytest.CaptureFixture[str],
) -> None:
    backend = make_backend()

    async def _refuse() -> list[str]:
        raise BackendError(provider="scripted", kind="network", message="refused", retryable=True)

    backend.list_models = _refuse
    use_backend(backend)

    code = app.main(["--settings-path", str(settings_path), "--set", "api_provider=openai", "--check"])

    assert code == app.EXIT_BACKEND_FAILURE
    assert "Cannot connect to the openai API" in capsys.readouterr().err
    assert backend.closed


@pytest.mark.parametrize("switch", ["debug_mode=true", "debug_logging=true"])
def test_debug_settings_raise_logging_level(
    settings_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    use_backend,
    make_backend,
    switch: str,
) -> None:
    calls: list[tuple[bool, bool]] = []
    monkeypatch.setattr(app, "configure_logging", lambda debug=False, *, force=False: calls.append((debug, force)))
    use_backend(make_backend())

    code = app.main(["--settings-path", str(settings_path), "--set", switch, "--check"])

    assert code == app.EXIT_OK
    assert calls == [(False, False), (True, True)]
