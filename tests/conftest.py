"""Shared fixtures: a capturing log sink, test settings and app/client builders."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from backend.app.core.config import Settings
from backend.app.main import create_app


@dataclass
class LogEvent:
    level: str
    message: str
    fields: Dict[str, Any] = field(default_factory=dict)


class CapturingLogger:
    """In-memory stand-in for StructuredLogger."""

    def __init__(self) -> None:
        self.events: List[LogEvent] = []

    def log(self, level: str, message: str, fields: Optional[Dict[str, Any]] = None) -> None:
        self.events.append(LogEvent(level, message, dict(fields or {})))

    def error(self, message: str, **fields: Any) -> None:
        self.log("error", message, fields)

    def warn(self, message: str, **fields: Any) -> None:
        self.log("warn", message, fields)

    def info(self, message: str, **fields: Any) -> None:
        self.log("info", message, fields)

    def debug(self, message: str, **fields: Any) -> None:
        self.log("debug", message, fields)

    @property
    def messages(self) -> List[str]:
        return [e.message for e in self.events]

    def named(self, message: str) -> List[LogEvent]:
        return [e for e in self.events if e.message == message]


def make_settings(**overrides: Any) -> Settings:
    values: Dict[str, Any] = {"ENVIRONMENT": "test", "LOG_FORMAT": "text"}
    values.update(overrides)
    return Settings(**values)


def make_request(
    method: str = "GET",
    path: str = "/test",
    query: str = "",
    headers: Optional[Dict[str, str]] = None,
) -> Request:
    """A bare Starlette request, enough for the normalizer and tracer helpers."""
    scope = {
        "type": "http",
        "http_version": "1.1",
        "method": method,
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "root_path": "",
        "query_string": query.encode(),
        "headers": [(k.lower().encode(), v.encode()) for k, v in (headers or {}).items()],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }
    return Request(scope)


@pytest.fixture
def capture() -> CapturingLogger:
    return CapturingLogger()


@pytest.fixture
def build_app(capture: CapturingLogger) -> Callable[..., FastAPI]:
    def _build(**overrides: Any) -> FastAPI:
        return create_app(make_settings(**overrides), event_logger=capture)
    return _build


@pytest.fixture
def app(build_app: Callable[..., FastAPI]) -> FastAPI:
    return build_app()


@pytest.fixture
def client(app: FastAPI) -> TestClient:
    return TestClient(app)


@pytest.fixture
def request_factory() -> Callable[..., Request]:
    return make_request


@pytest.fixture
def settings_factory() -> Callable[..., Settings]:
    return make_settings
