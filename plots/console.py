"""HTTP client and session state for the plots admin console."""

from __future__ import annotations

import json
import logging
import os
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import httpx

logger = logging.getLogger("plots.console")

FILTER_NAMES = ("status", "location", "minPrice", "maxPrice")
STATUSES = ("available", "reserved", "sold")


class ConsoleError(Exception):
    """Raised when the plots service rejects or fails a console request."""

    def __init__(self, message: str, *, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class SessionExpiredError(ConsoleError):
    pass


def _normalize_base_url(base_url: str) -> str:
    cleaned = (base_url or "").strip()
    if not cleaned:
        raise ValueError("Service base URL must not be empty")
    return cleaned.rstrip("/")


def _extract_error_message(payload: object, default: str) -> str:
    if isinstance(payload, dict):
        for key in ("message", "detail", "error"):
            value = payload.get(key)
            if isinstance(value, str) and value.strip():
                return value.strip()
    if isinstance(payload, str) and payload.strip():
        return payload.strip()
    return default


def default_token_path() -> Path:
    return Path.home() / ".config" / "plots" / "session.json"


class TokenStore:
    """Persist the session token between console runs."""

    def __init__(self, path: Optional[Path] = None) -> None:
        self._path = path or default_token_path()

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Optional[str]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None
        except (OSError, ValueError):
            logger.warning("Ignoring unreadable session file %s", self._path)
            return None
        token = raw.get("token") if isinstance(raw, dict) else None
        return token if isinstance(token, str) and token else None

    def save(self, token: str) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        self._path.write_text(json.dumps({"token": token}), encoding="utf-8")
        os.chmod(self._path, 0o600)

    def clear(self) -> None:
        self._path.unlink(missing_ok=True)


class PlotsClient:
    """Thin wrapper over the plots service wire contract."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        *,
        client: Optional[httpx.Client] = None,
        timeout: float = 10.0,
    ) -> None:
        if client is None:
            if base_url is None:
                raise ValueError("Either base_url or client must be provided")
            client = httpx.Client(base_url=_normalize_base_url(base_url), timeout=timeout)
        self._client = client

    def close(self) -> None:
        self._client.close()

    def _request(
        self,
        method: str,
        path: str,
        *,
        token: Optional[str] = None,
        json_body: Optional[Mapping[str, Any]] = None,
        params: Optional[Mapping[str, str]] = None,
    ) -> Dict[str, Any]:
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        try:
            response = self._client.request(
                method,
                path,
                json=dict(json_body) if json_body is not None else None,
                params=dict(params) if params else None,
                headers=headers,
            )
        except httpx.RequestError as exc:
            raise ConsoleError(f"Failed to contact plots service: {exc}") from exc

        try:
            payload = response.json()
        except ValueError:
            payload = None

        if response.status_code >= 400:
            message = _extract_error_message(
                payload, f"Plots service request failed with status {response.status_code}"
            )
            if isinstance(payload, dict) and payload.get("details"):
                message = f"{message}: {'; '.join(str(item) for item in payload['details'])}"
            if response.status_code == 401:
                raise SessionExpiredError(message, status_code=401)
            raise ConsoleError(message, status_code=response.status_code)

        if not isinstance(payload, dict):
            raise ConsoleError("Plots service returned an unexpected response payload")
        return payload

    def health(self) -> Dict[str, Any]:
        return self._request("GET", "/health")

    def login(self, username: str, password: str) -> Dict[str, Any]:
        return self._request("POST", "/auth/login", json_body={"username": username, "password": password})

    def verify(self, token: str) -> Dict[str, Any]:
        return self._request("GET", "/auth/verify", token=token)["user"]

    def list_plots(self, filters: Optional[Mapping[str, str]] = None) -> List[Dict[str, Any]]:
        params = {key: value for key, value in (filters or {}).items() if value}
        return list(self._request("GET", "/plots", params=params)["data"])

    def get_plot(self, plot_id: str) -> Dict[str, Any]:
        return self._request("GET", f"/plots/{plot_id}")["data"]

    def create_plot(self, token: str, payload: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request("POST", "/plots", token=token, json_body=payload)["data"]

    def update_plot(self, token: str, plot_id: str, fields: Mapping[str, Any]) -> Dict[str, Any]:
        return self._request("PUT", f"/plots/{plot_id}", token=token, json_body=fields)["data"]

    def delete_plot(self, token: str, plot_id: str) -> Dict[str, Any]:
        return self._request("DELETE", f"/plots/{plot_id}", token=token)["data"]


class AdminConsole:
    """Client-side state of the admin console: session, filters and plot list."""

    def __init__(self, client: PlotsClient, store: TokenStore) -> None:
        self._client = client
        self._store = store
        self.token: Optional[str] = store.load()
        self.user: Optional[Dict[str, Any]] = None
        self.filters: Dict[str, str] = {name: "" for name in FILTER_NAMES}
        self.plots: List[Dict[str, Any]] = []

    @property
    def is_authenticated(self) -> bool:
        return self.token is not None and self.user is not None

    def restore_session(self) -> bool:
        """Validate a stored token; drop it if the service rejects it."""

        if not self.token:
            return False
        try:
            self.user = self._client.verify(self.token)
        except SessionExpiredError:
            logger.info("Stored session was rejected; logging out")
            self.logout()
            return False
        return True

    def login(self, username: str, password: str) -> Dict[str, Any]:
        payload = self._client.login(username, password)
        token = payload["token"]
        self._store.save(token)
        self.token = token
        self.user = self._client.verify(token)
        return payload["user"]

    def logout(self) -> None:
        self._store.clear()
        self.token = None
        self.user = None

    def set_filter(self, name: str, value: str) -> List[Dict[str, Any]]:
        if name not in self.filters:
            raise ValueError(f"Unknown filter {name!r}; expected one of {', '.join(FILTER_NAMES)}")
        self.filters[name] = (value or "").strip()
        return self.refresh()

    def refresh(self) -> List[Dict[str, Any]]:
        self.plots = self._client.list_plots(self.filters)
        return self.plots

    def summary(self) -> Dict[str, int]:
        counts = {status: 0 for status in STATUSES}
        for plot in self.plots:
            status = plot.get("status")
            if status in counts:
                counts[status] += 1
        return counts

    def change_status(self, plot_id: str, status: str) -> Dict[str, Any]:
        token = self._require_session()
        updated = self._authenticated(self._client.update_plot, token, plot_id, {"status": status})
        self.plots = [
            {**plot, "status": updated["status"], "updated_at": updated["updated_at"]}
            if plot.get("id") == plot_id
            else plot
            for plot in self.plots
        ]
        return updated

    def add_plot(self, payload: Mapping[str, Any]) -> Dict[str, Any]:
        token = self._require_session()
        created = self._authenticated(self._client.create_plot, token, payload)
        self.refresh()
        return created

    def remove_plot(self, plot_id: str) -> Dict[str, Any]:
        token = self._require_session()
        deleted = self._authenticated(self._client.delete_plot, token, plot_id)
        self.plots = [plot for plot in self.plots if plot.get("id") != plot_id]
        return deleted

    def _require_session(self) -> str:
        if not self.is_authenticated or self.token is None:
            raise ConsoleError("Log in as an administrator first", status_code=401)
        return self.token

    def _authenticated(self, call, *args: Any) -> Dict[str, Any]:
        try:
            return call(*args)
        except SessionExpiredError:
            self.logout()
            raise


__all__ = [
    "AdminConsole",
    "ConsoleError",
    "PlotsClient",
    "SessionExpiredError",
    "TokenStore",
    "default_token_path",
]
