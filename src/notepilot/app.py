"""Command-line entry point: run one prediction over a Markdown document."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
from dataclasses import asdict, is_dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence, TextIO, get_args, get_origin, get_type_hints

from .ai.ai_types import BackendError, PredictionFailed, PredictionOutcome
from .ai.orchestration.orchestrator import PredictionOrchestrator, build_backend
from .services.settings import Settings, SettingsStore, redact_secret
from .ui.domain.prediction_manager import PredictionManager
from .ui.events import EventBus, NoticeRaised
from .utils import logging as logging_utils

_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_LOGGER = logging.getLogger(__name__)
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}

DEFAULT_CURSOR_MARKER = "<|cursor|>"
EXIT_OK = 0
EXIT_BACKEND_FAILURE = 1
EXIT_USAGE = 2


def configure_logging(debug: bool = False, *, force: bool = False) -> None:
    """Configure logging for the command-line tool."""

    log_path = logging_utils.setup_logging(debug=debug, force=force)
    _LOGGER.debug("Logging to %s (debug=%s)", log_path, debug)


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load settings from disk or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        settings = active_store.load(overrides=overrides)
    except (OSError, TypeError, ValueError) as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        settings = Settings()
    return settings


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point invoked by the `notepilot` console script."""

    args = _parse_cli_args(argv)

    debug = args.debug or _env_flag("NOTEPILOT_DEBUG", default=False)
    configure_logging(debug)

    settings_path = args.settings_path or os.environ.get("NOTEPILOT_SETTINGS_PATH")
    resolved_path = Path(settings_path).expanduser() if settings_path else None
    settings_store = SettingsStore(resolved_path)
    try:
        cli_overrides = _coerce_cli_overrides(args.overrides or [])
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return EXIT_USAGE

    overrides_mapping: Dict[str, Any] | None = cli_overrides or None
    settings = load_settings(resolved_path, store=settings_store, overrides=overrides_mapping)

    if args.dump_settings:
        _dump_settings(settings, settings_store, overrides=cli_overrides)
        return EXIT_OK

    if logging_utils.debug_requested(settings) and not debug:
        configure_logging(True, force=True)

    if args.check:
        return asyncio.run(_run_connectivity_check(settings))

    if not args.input:
        print("An input document is required (use '-' for stdin).", file=sys.stderr)
        return EXIT_USAGE
    try:
        document = _read_document(args.input)
    except OSError as exc:
        print(f"Cannot read {args.input}: {exc}", file=sys.stderr)
        return EXIT_USAGE

    marker = args.cursor_marker
    if not marker or marker not in document:
        print(f"The document does not contain the cursor marker {marker!r}.", file=sys.stderr)
        return EXIT_USAGE
    prefix, suffix = document.split(marker, 1)

    return asyncio.run(_run_prediction(settings, prefix, suffix, splice=args.splice))


async def _run_prediction(
    settings: Settings,
    prefix: str,
    suffix: str,
    *,
    splice: bool = False,
    orchestrator: PredictionOrchestrator | None = None,
    stream: TextIO | None = None,
) -> int:
    destination = stream or sys.stdout
    active = orchestrator or PredictionOrchestrator.from_settings(settings)
    bus = EventBus()
    notices: list[str] = []
    bus.subscribe(NoticeRaised, lambda event: notices.append(event.message))
    manager = PredictionManager(active, bus)

    outcome: PredictionOutcome | None = None
    try:
        manager.start_prediction(prefix, suffix)
        pending = manager.pending
        if pending is not None:
            outcome = await pending
    finally:
        await active.aclose()

    for notice in notices:
        print(notice, file=sys.stderr)
    if isinstance(outcome, PredictionFailed):
        return EXIT_BACKEND_FAILURE

    suggestion = manager.accept_suggestion() or ""
    if splice:
        destination.write(f"{prefix}{suggestion}{suffix}")
    elif suggestion:
        destination.write(suggestion)
        destination.write("\n")
    return EXIT_OK


async def _run_connectivity_check(settings: Settings, *, stream: TextIO | None = None) -> int:
    destination = stream or sys.stdout
    backend = build_backend(settings)
    try:
        models = await backend.list_models()
    except BackendError as exc:
        _LOGGER.error("Connectivity check failed: %s", exc)
        print(
            f"Cannot connect to the {settings.api_provider} API. Please check your settings.",
            file=sys.stderr,
        )
        return EXIT_BACKEND_FAILURE
    finally:
        await backend.aclose()
    destination.write(f"Successfully connected to the {settings.api_provider} API.\n")
    for model in models:
        destination.write(f"  {model}\n")
    return EXIT_OK


def _read_document(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).expanduser().read_text(encoding="utf-8")


def _env_flag(name: str, *, default: bool = False) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in _TRUE_VALUES


def _parse_cli_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="notepilot",
        add_help=True,
        description="Predict a completion at the cursor marker of a Markdown document.",
    )
    parser.add_argument(
        "input",
        nargs="?",
        metavar="PATH",
        help="Document containing the cursor marker, or '-' to read stdin.",
    )
    parser.add_argument(
        "--cursor-marker",
        default=DEFAULT_CURSOR_MARKER,
        metavar="TEXT",
        help=f"Text marking the cursor position (default: {DEFAULT_CURSOR_MARKER}).",
    )
    parser.add_argument(
        "--splice",
        action="store_true",
        help="Print the whole document with the suggestion inserted at the cursor.",
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Check connectivity to the configured backend and exit.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings payload (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.notepilot/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override settings for this run (repeatable; nested keys use dots, e.g. ollama.host).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Log at DEBUG level.",
    )
    return parser.parse_args(argv)


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    overrides: Dict[str, Any] = {}
    if not items:
        return overrides

    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = entry.split("=", 1)
        key = key.strip()
        if not key:
            raise ValueError("Override is missing a field name.")
        annotation = _field_annotation(key)
        overrides[key] = _coerce_value(annotation, raw_value.strip())
    return overrides


def _field_annotation(key: str) -> Any:
    owner: Any = Settings
    parts = key.split(".")
    for depth, part in enumerate(parts):
        fields = getattr(owner, "__dataclass_fields__", None)
        if not fields or part not in fields:
            raise ValueError(f"Unknown setting '{key}'.")
        annotation = get_type_hints(owner).get(part, fields[part].type)
        if depth == len(parts) - 1:
            return annotation
        owner = _resolve_annotation(annotation)
    raise ValueError(f"Unknown setting '{key}'.")  # pragma: no cover


def _coerce_value(annotation: Any, raw_value: str) -> Any:
    target = _resolve_annotation(annotation)
    normalized = raw_value.strip()

    if type(None) in get_args(annotation) and normalized.lower() in {"none", "null"}:
        return None
    if target is str or target is Any:
        return normalized
    if target is bool:
        return _parse_bool(normalized)
    if target is int:
        return int(normalized, 10)
    if target is float:
        return float(normalized)
    if target is type(None) or normalized.lower() in {"none", "null"}:
        return None
    if is_dataclass(target):
        try:
            payload = json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dataclass overrides must be valid JSON") from exc
        if isinstance(target, type):
            try:
                return target(**payload)
            except TypeError as exc:
                raise ValueError(f"Invalid fields for {target.__name__}: {exc}") from exc
        raise ValueError("Dataclass override target is not instantiable")
    if target is dict:
        try:
            return json.loads(normalized or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError("Dict overrides must be valid JSON objects") from exc
    return normalized


def _resolve_annotation(annotation: Any) -> Any:
    origin = get_origin(annotation)
    if origin is None:
        return annotation
    if origin in {list, dict}:
        return origin
    args = [arg for arg in get_args(annotation) if arg is not type(None)]
    if not args:
        return origin
    return args[0]


def _parse_bool(value: str) -> bool:
    lowered = value.strip().lower()
    if lowered in _TRUE_VALUES:
        return True
    if lowered in _FALSE_VALUES:
        return False
    raise ValueError(f"Cannot coerce '{value}' to a boolean.")


def _dump_settings(
    settings: Settings,
    store: SettingsStore,
    *,
    overrides: Mapping[str, Any],
    stream: TextIO | None = None,
) -> None:
    destination = stream or sys.stdout
    payload = asdict(settings)
    api_key = payload.get("api_key", "")
    if isinstance(api_key, str):
        payload["api_key"] = redact_secret(api_key)
    metadata = {
        "path": str(store.path),
        "cli_overrides": sorted(overrides.keys()),
        "environment_variables": _active_env_overrides(),
    }
    output = {"settings": payload, "meta": metadata}
    json.dump(output, destination, indent=2)
    destination.write("\n")


def _active_env_overrides() -> list[str]:
    return sorted(name for name in os.environ if name.startswith("NOTEPILOT_"))


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
