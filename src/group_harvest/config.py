from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, ValidationError, field_validator

from group_harvest.models import DEFAULT_HOST

DEFAULT_SESSION_MARKER = "豆瓣"
DEFAULT_REPORT_DIR = Path("reports")

# Key names used by the JSON configuration file.
FILE_KEYS = {
    "GroupID": "forum_id",
    "MaxPage": "max_page",
    "MaxWorker": "worker_count",
    "SearchKey": "search_key",
    "Enrich": "enrich",
    "EnrichMaxInFlight": "enrich_max_in_flight",
    "ExpectedLastPage": "expected_last_page",
    "Host": "host",
    "ReportDir": "report_dir",
}


class Settings(BaseModel):
    forum_id: str = ""
    max_page: int = Field(default=0, ge=0)
    worker_count: int = Field(default=4, ge=1)
    search_key: str = ""
    enrich: bool = False
    enrich_max_in_flight: int = Field(default=4, ge=1)
    expected_last_page: int | None = Field(default=None, ge=0)
    host: str = DEFAULT_HOST
    session_marker: str = DEFAULT_SESSION_MARKER
    tz: str = "Asia/Shanghai"
    user_agent: str = "group-harvest/0.1"
    request_timeout_seconds: float = Field(default=20.0, gt=0.0)
    fetch_attempts: int = Field(default=1, ge=1)
    fetch_retry_delay_seconds: float = Field(default=1.0, ge=0.0)
    report_dir: Path = Field(default=DEFAULT_REPORT_DIR)

    @field_validator("forum_id", "host")
    @classmethod
    def _strip_slashes(cls, value: str) -> str:
        return value.strip().strip("/")

    @field_validator("search_key")
    @classmethod
    def _validate_search_key(cls, value: str) -> str:
        if value and not any(piece.strip() for piece in value.split(";")):
            raise ValueError("SEARCH_KEY must contain at least one pattern")
        return value

    @field_validator("tz")
    @classmethod
    def _validate_tz(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError, OSError) as exc:
            raise ValueError(f"TZ must be an IANA time zone name, got '{value}'") from exc
        return value

    @property
    def zone(self) -> ZoneInfo:
        return ZoneInfo(self.tz)


def _env_value(environ: Mapping[str, str], key: str) -> str:
    return environ.get(key, "").strip()


def _env_bool(raw: str) -> bool:
    return raw.casefold() in {"1", "true", "yes", "on"}


def _build(payload: dict[str, Any]) -> Settings:
    try:
        return Settings(**payload)
    except ValidationError as exc:
        raise ValueError(str(exc)) from exc


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    source = os.environ if environ is None else environ
    expected_last_page = _env_value(source, "EXPECTED_LAST_PAGE")
    payload = {
        "forum_id": _env_value(source, "GROUP_ID"),
        "max_page": int(_env_value(source, "MAX_PAGE") or "0"),
        "worker_count": int(_env_value(source, "MAX_WORKER") or "4"),
        "search_key": _env_value(source, "SEARCH_KEY"),
        "enrich": _env_bool(_env_value(source, "ENRICH")),
        "enrich_max_in_flight": int(_env_value(source, "ENRICH_MAX_IN_FLIGHT") or "4"),
        "expected_last_page": int(expected_last_page) if expected_last_page else None,
        "host": _env_value(source, "HOST") or DEFAULT_HOST,
        "session_marker": _env_value(source, "SESSION_MARKER") or DEFAULT_SESSION_MARKER,
        "tz": _env_value(source, "TZ") or "Asia/Shanghai",
        "user_agent": _env_value(source, "USER_AGENT") or "group-harvest/0.1",
        "request_timeout_seconds": float(_env_value(source, "REQUEST_TIMEOUT_SECONDS") or "20"),
        "fetch_attempts": int(_env_value(source, "FETCH_ATTEMPTS") or "1"),
        "fetch_retry_delay_seconds": float(_env_value(source, "FETCH_RETRY_DELAY_SECONDS") or "1"),
        "report_dir": Path(_env_value(source, "REPORT_DIR") or DEFAULT_REPORT_DIR),
    }
    return _build(payload)


def load_settings_file(path: Path | str, environ: Mapping[str, str] | None = None) -> Settings:
    """Load settings from a JSON file, on top of the environment defaults.

    The file uses CamelCase keys (``GroupID``, ``MaxPage``, ``MaxWorker``,
    ``SearchKey``, ...); unknown keys are ignored.
    """
    try:
        raw = json.loads(Path(path).read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        raise ValueError(f"load configuration from '{path}': {exc}") from exc
    if not isinstance(raw, dict):
        raise ValueError(f"configuration in '{path}' must be a JSON object")

    base = load_settings(environ).model_dump()
    for file_key, field_name in FILE_KEYS.items():
        if file_key in raw:
            base[field_name] = raw[file_key]
    return _build(base)


def assert_required(settings: Settings) -> None:
    missing = []
    if not settings.forum_id:
        missing.append("GROUP_ID")
    if not settings.search_key:
        missing.append("SEARCH_KEY")
    if missing:
        raise ValueError(f"Missing required settings: {', '.join(missing)}")
