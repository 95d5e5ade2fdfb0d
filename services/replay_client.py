"""Replay of queued mutations against the Supabase REST API."""
from __future__ import annotations

import threading
from typing import Any, Callable, Dict, Optional, Tuple
from urllib.parse import parse_qsl, urlsplit

import requests

from core.settings import OFFLINE, SUPABASE
from services.errors import ReplayAuthError, ReplayError
from services.mutation_queue_store import QueuedMutation
from services.sync_log import get_sync_logger


RETRYABLE_STATUS = {408, 409, 425, 429, 500, 502, 503, 504}
AUTH_STATUS = {401, 403}

_METHODS = {"create": "POST", "update": "PATCH", "delete": "DELETE"}
_API_PREFIXES = ("api/", "rest/v1/")
# app route names whose backend table is named differently
TABLE_ALIASES = {"budgets": "user_budgets", "automations": "automation_rules"}


def resolve_endpoint(endpoint: str) -> Tuple[str, Dict[str, str], bool]:
    """Split ``endpoint`` into ``(path, query params, is_function)``.

    ``/api/goals``, ``goals`` and ``/rest/v1/goals`` all name the ``goals``
    table; ``functions/v1/<name>`` names an edge function.
    """

    parts = urlsplit(endpoint.strip())
    path = parts.path.strip("/")
    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    if path.startswith(SUPABASE.functions_path + "/"):
        return path[len(SUPABASE.functions_path) + 1 :], params, True
    for prefix in _API_PREFIXES:
        if path.startswith(prefix):
            path = path[len(prefix) :]
            break
    if not path:
        raise ReplayError(f"Endpoint {endpoint!r} names no table", retryable=False)
    return TABLE_ALIASES.get(path, path), params, False


class SupabaseReplayClient:
    """Sends one queued mutation to the backend per :meth:`replay` call."""

    def __init__(
        self,
        url: Optional[str] = None,
        key: Optional[str] = None,
        *,
        token_provider: Optional[Callable[[], Optional[str]]] = None,
        session: Optional[requests.Session] = None,
        timeout: float = OFFLINE.request_timeout_sec,
    ) -> None:
        self._lock = threading.Lock()
        self.url = (url or SUPABASE.url or "").rstrip("/")
        self.key = key or SUPABASE.key or ""
        self.token_provider = token_provider
        self.session = session or requests.Session()
        self.timeout = timeout
        self.logger = get_sync_logger("replay")

    # ------------------------------------------------------------------
    def configure(self, url: str, key: str) -> None:
        with self._lock:
            self.url = (url or "").rstrip("/")
            self.key = key or ""
        self.logger.info("Replay target set to %s", self.url or "<unset>")

    @property
    def configured(self) -> bool:
        return bool(self.url and self.key)

    def _headers(self) -> Dict[str, str]:
        token = self.token_provider() if self.token_provider else None
        return {
            "apikey": self.key,
            "Authorization": f"Bearer {token or self.key}",
            "Content-Type": "application/json",
            "Prefer": "return=minimal",
        }

    def build_request(self, mutation: QueuedMutation) -> Dict[str, Any]:
        path, params, is_function = resolve_endpoint(mutation.endpoint)
        payload = dict(mutation.payload)
        if is_function:
            url = f"{self.url}/{SUPABASE.functions_path}/{path}"
            return {
                "method": "POST",
                "url": url,
                "params": params,
                "json": {"action": mutation.action, "payload": payload},
            }

        method = _METHODS.get(mutation.action)
        if method is None:
            raise ReplayError(f"Unsupported action: {mutation.action}", retryable=False)
        url = f"{self.url}/{SUPABASE.rest_path}/{path}"
        if mutation.action == "create" and mutation.user_id:
            payload.setdefault("user_id", mutation.user_id)
        if mutation.action in ("update", "delete"):
            record_id = payload.get("id")
            if record_id is not None and "id" not in params:
                params["id"] = f"eq.{record_id}"
            if mutation.action == "update":
                payload.pop("id", None)
        body: Optional[Dict[str, Any]] = payload
        if mutation.action == "delete":
            body = None
        return {"method": method, "url": url, "params": params, "json": body}

    def send(
        self,
        mutation_type: str,
        action: str,
        endpoint: str,
        payload: Dict[str, Any],
        user_id: str = "",
    ) -> None:
        """Perform a write immediately, outside the queue."""

        self.replay(QueuedMutation.new(mutation_type, action, endpoint, payload, user_id=user_id))

    def replay(self, mutation: QueuedMutation) -> None:
        if not self.configured:
            raise ReplayError("Backend connection is not configured", retryable=True)

        request = self.build_request(mutation)
        try:
            response = self.session.request(
                request["method"],
                request["url"],
                params=request["params"] or None,
                json=request["json"],
                headers=self._headers(),
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise ReplayError(f"Network error: {exc}", retryable=True) from exc

        status = int(response.status_code)
        if status < 400:
            self.logger.debug("Replayed %s -> %s", mutation.id, status)
            return
        detail = (response.text or "")[:300]
        if status in AUTH_STATUS:
            raise ReplayAuthError(f"Replay rejected with {status}: {detail}", status=status)
        raise ReplayError(
            f"Replay failed with {status}: {detail}",
            status=status,
            retryable=status in RETRYABLE_STATUS,
        )


__all__ = [
    "AUTH_STATUS",
    "RETRYABLE_STATUS",
    "TABLE_ALIASES",
    "SupabaseReplayClient",
    "resolve_endpoint",
]
