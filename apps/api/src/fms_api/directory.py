from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping, Protocol
from urllib.parse import quote

import httpx

from fms_api.errors import DirectoryUnavailableError
from fms_api.security import redact_secrets
from fms_api.settings import Settings

logger = logging.getLogger(__name__)


class Directory(Protocol):
    def departments_of(self, actor: str) -> list[str]: ...

    def list_departments(self) -> list[str]: ...


class StaticDirectory:
    def __init__(self, members: Mapping[str, str | list[str]] | None = None) -> None:
        self._members: dict[str, list[str]] = {}
        for username, departments in (members or {}).items():
            self._members[username.strip()] = _normalize_departments(departments)

    @classmethod
    def from_file(cls, path: str | Path) -> "StaticDirectory":
        raw = Path(path).expanduser().read_text(encoding="utf-8")
        data = json.loads(raw)
        if not isinstance(data, dict):
            raise ValueError("directory file must contain a JSON object of username -> department")
        return cls(data)

    def departments_of(self, actor: str) -> list[str]:
        return list(self._members.get(actor.strip(), []))

    def list_departments(self) -> list[str]:
        seen: list[str] = []
        for departments in self._members.values():
            for department in departments:
                if department not in seen:
                    seen.append(department)
        return sorted(seen)


class HttpDirectory:
    def __init__(self, base_url: str, *, timeout: float = 5.0, client: httpx.Client | None = None) -> None:
        self._base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def departments_of(self, actor: str) -> list[str]:
        # httpx collapses dot segments; they never name a user.
        if actor.strip() in {"", ".", ".."}:
            return []

        try:
            response = self._client.get(f"{self._base_url}/users/{quote(actor, safe='')}")
            if response.status_code == 404:
                return []
            response.raise_for_status()
            data = response.json()
            if not isinstance(data, dict):
                raise ValueError(f"expected a JSON object for user, got {type(data).__name__}")
            if "departments" in data:
                return _normalize_departments(data["departments"])
            return _normalize_departments(data.get("department"))
        except (httpx.HTTPError, ValueError) as exc:
            raise self._unavailable("user lookup", exc) from exc

    def list_departments(self) -> list[str]:
        try:
            response = self._client.get(f"{self._base_url}/departments")
            response.raise_for_status()
            data = response.json()
            if isinstance(data, dict):
                data = data.get("departments", [])
            if not isinstance(data, list):
                raise ValueError(f"expected a JSON list of departments, got {type(data).__name__}")
            return sorted(_normalize_departments(data))
        except (httpx.HTTPError, ValueError) as exc:
            raise self._unavailable("department listing", exc) from exc

    def close(self) -> None:
        self._client.close()

    def _unavailable(self, operation: str, exc: Exception) -> DirectoryUnavailableError:
        message = f"directory {operation} failed: {redact_secrets(str(exc))}"
        logger.warning(message)
        return DirectoryUnavailableError(message)


def build_directory(settings: Settings) -> Directory:
    if settings.directory_url:
        return HttpDirectory(settings.directory_url, timeout=settings.directory_timeout_seconds)
    if settings.directory_file:
        return StaticDirectory.from_file(settings.directory_file)
    return StaticDirectory()


def _normalize_departments(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        items = [value]
    elif isinstance(value, list):
        items = value
    else:
        raise ValueError(f"departments must be a string or a list, got {type(value).__name__}")
    normalized: list[str] = []
    for item in items:
        trimmed = str(item).strip()
        if trimmed and trimmed not in normalized:
            normalized.append(trimmed)
    return normalized
