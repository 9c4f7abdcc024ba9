# backends/rest.py
import os
from typing import Any, Dict, List, Optional, Tuple

import requests
from tenacity import (
    RetryError,
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential_jitter,
)

from core.errors import RemoteError
from core.logger import get_logger

from .base import Query

logger = get_logger(__name__)

SUPABASE_URL = os.getenv("SUPABASE_URL", "").rstrip("/")
SUPABASE_KEY = os.getenv("SUPABASE_KEY", "")
REMOTE_TIMEOUT = float(os.getenv("REMOTE_TIMEOUT", "30"))
REMOTE_RETRIES = int(os.getenv("REMOTE_RETRIES", "3"))
REMOTE_RETRY_MAX_WAIT = float(os.getenv("REMOTE_RETRY_MAX_WAIT", "10"))
USER_AGENT = os.getenv("REMOTE_USER_AGENT", "marketcache/0.1")


class TransientHTTPError(RemoteError):
    """5xx / 429 responses; retried before surfacing."""


def _encode(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return "null"
    return str(value)


def _filter_value(op: str, value: Any) -> str:
    text = _encode(value)
    if op == "ilike":
        # PostgREST accepts * as the like wildcard inside URLs
        text = text.replace("%", "*")
    return f"{op}.{text}"


def build_params(query: Query) -> List[Tuple[str, str]]:
    """
    Translate a Query into PostgREST query-string pairs. A list of pairs
    keeps repeated columns (price=gte.1&price=lte.5).
    """
    params: List[Tuple[str, str]] = [("select", query.columns)]
    for column, op, value in query.filters:
        params.append((column, _filter_value(op, value)))
    if query.any_of:
        group = ",".join(
            f"{column}.{_filter_value(op, value)}" for column, op, value in query.any_of
        )
        params.append(("or", f"({group})"))
    if query.order_by:
        direction = "asc" if query.ascending else "desc"
        params.append(("order", f"{query.order_by}.{direction}"))
    if query.row_limit is not None:
        params.append(("limit", str(query.row_limit)))
    return params


def _match_params(match: Dict[str, Any]) -> List[Tuple[str, str]]:
    if not match:
        raise RemoteError("Refusing to run an unfiltered delete/update")
    return [(column, f"eq.{_encode(value)}") for column, value in sorted(match.items())]


class RestRemote:
    """
    Synchronous client for a hosted Postgres REST endpoint (PostgREST as
    served by Supabase under /rest/v1). Connection errors, timeouts and
    5xx/429 responses are retried with jittered exponential backoff; any other
    failure raises RemoteError straight away.
    """

    def __init__(
        self,
        base_url: str = SUPABASE_URL,
        api_key: str = SUPABASE_KEY,
        access_token: Optional[str] = None,
        timeout: float = REMOTE_TIMEOUT,
        retries: int = REMOTE_RETRIES,
        retry_max_wait: float = REMOTE_RETRY_MAX_WAIT,
    ):
        if not base_url:
            raise RemoteError("SUPABASE_URL is not configured")
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update(
            {
                "User-Agent": USER_AGENT,
                "apikey": api_key,
                "Authorization": f"Bearer {access_token or api_key}",
                "Content-Type": "application/json",
            }
        )
        self._retrying = Retrying(
            wait=wait_exponential_jitter(
                initial=min(1.0, retry_max_wait),
                max=retry_max_wait,
                jitter=min(1.0, retry_max_wait),
            ),
            stop=stop_after_attempt(max(1, retries)),
            retry=retry_if_exception_type(
                (requests.ConnectionError, requests.Timeout, TransientHTTPError)
            ),
        )

    def set_access_token(self, token: Optional[str]) -> None:
        """Switch between the signed-in user's JWT and the anonymous key."""
        api_key = self.session.headers.get("apikey", "")
        self.session.headers["Authorization"] = f"Bearer {token or api_key}"

    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        url = f"{self.base_url}{path}"
        logger.debug("%s %s params=%s", method, url, kwargs.get("params"))
        resp = self.session.request(method, url, timeout=self.timeout, **kwargs)
        status = resp.status_code
        if status == 429 or status >= 500:
            logger.warning("Remote returned %s for %s %s; will retry.", status, method, path)
            raise TransientHTTPError(f"{method} {path}: HTTP {status}")
        if status >= 400:
            logger.warning("Remote rejected %s %s with %s: %s", method, path, status, resp.text[:200])
            raise RemoteError(f"{method} {path}: HTTP {status}: {resp.text[:200]}")
        return resp

    def _request(self, method: str, path: str, **kwargs) -> requests.Response:
        try:
            return self._retrying.copy()(self._send, method, path, **kwargs)
        except RetryError as e:
            cause = e.last_attempt.exception()
            logger.error("%s %s failed after retries: %s", method, path, cause)
            raise RemoteError(f"{method} {path} failed after retries: {cause}") from cause
        except requests.RequestException as e:
            raise RemoteError(f"{method} {path} failed: {e}") from e

    @staticmethod
    def _json(resp: requests.Response) -> Any:
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteError(f"Remote returned invalid JSON: {e}") from e

    def select(self, query: Query) -> List[Dict[str, Any]]:
        resp = self._request("GET", f"/rest/v1/{query.table}", params=build_params(query))
        data = self._json(resp)
        if not isinstance(data, list):
            raise RemoteError(f"select on {query.table} returned {type(data).__name__}")
        return data

    def insert(self, table: str, row: Dict[str, Any]) -> Dict[str, Any]:
        resp = self._request(
            "POST",
            f"/rest/v1/{table}",
            json=row,
            headers={"Prefer": "return=representation"},
        )
        data = self._json(resp)
        if isinstance(data, list):
            return data[0] if data else dict(row)
        return data if isinstance(data, dict) else dict(row)

    def delete(self, table: str, match: Dict[str, Any]) -> None:
        self._request("DELETE", f"/rest/v1/{table}", params=_match_params(match))

    def update(self, table: str, patch: Dict[str, Any], match: Dict[str, Any]) -> None:
        self._request("PATCH", f"/rest/v1/{table}", params=_match_params(match), json=patch)

    def rpc(self, function: str, params: Dict[str, Any]) -> Any:
        resp = self._request("POST", f"/rest/v1/rpc/{function}", json=params)
        return self._json(resp)
