"""
Indexer Client
==============
Sequential GET requests against an Algorand indexer (or algod) REST API
with exponential backoff on rate limiting / server errors and
continuation-token pagination.
"""

import base64
import time
from urllib.parse import quote

import requests
from loguru import logger

from algoland_backend.errors import IndexerError, IndexerNotFoundError

PAGE_LIMIT = 1000


def _normalise_path(path):
    return path if path.startswith("/") else f"/{path}"


class IndexerClient:
    """Read-only client for one upstream base URL."""

    def __init__(self, base_url, max_retries=5, base_delay=0.5, timeout=30,
                 session=None, sleep=time.sleep, label="Indexer"):
        self.base_url = base_url.rstrip("/")
        self.max_retries = max(1, int(max_retries))
        self.base_delay = base_delay
        self.timeout = timeout
        self.session = session or requests.Session()
        self.sleep = sleep
        self.label = label

    def build_url(self, path, params=None):
        """Fully-encoded URL; empty params dropped, base64: box names kept literal."""
        parts = []
        for key, value in (params or {}).items():
            if value is None or value == "":
                continue
            if isinstance(value, (list, tuple)):
                text = ",".join(str(item) for item in value)
            elif isinstance(value, bool):
                text = "true" if value else "false"
            else:
                text = str(value)
            encoded = quote(text, safe="")
            if key == "name" and text.startswith("base64:"):
                encoded = "base64:" + quote(text[len("base64:"):], safe="")
            parts.append(f"{quote(str(key), safe='')}={encoded}")
        url = f"{self.base_url}{_normalise_path(path)}"
        if parts:
            url = f"{url}?{'&'.join(parts)}"
        return url

    def request(self, path, params=None):
        """GET path and return decoded JSON, retrying 429/5xx with backoff."""
        url = self.build_url(path, params)
        last_error = None
        for attempt in range(self.max_retries):
            start = time.perf_counter()
            try:
                response = self.session.get(
                    url, headers={"accept": "application/json"}, timeout=self.timeout
                )
            except requests.RequestException as exc:
                last_error = IndexerError(f"{self.label} request error: {exc}", url=url)
                logger.warning(f"[{self.label}] Request error on attempt {attempt + 1}: {exc} ({url})")
            else:
                duration_ms = round((time.perf_counter() - start) * 1000, 1)
                status = response.status_code
                if status == 429 or status >= 500:
                    last_error = IndexerError(
                        f"{self.label} responded with status {status}",
                        status=status, body=response.text, url=url,
                    )
                    logger.warning(
                        f"[{self.label}] Busy (status {status}, attempt {attempt + 1}, {duration_ms}ms): {url}"
                    )
                elif status == 404:
                    raise IndexerNotFoundError(
                        f"{self.label} request failed (404): {response.text}",
                        status=status, body=response.text, url=url,
                    )
                elif not 200 <= status < 300:
                    raise IndexerError(
                        f"{self.label} request failed ({status}): {response.text}",
                        status=status, body=response.text, url=url,
                    )
                else:
                    logger.info(f"[{self.label}] Request complete ({status}, {duration_ms}ms): {url}")
                    try:
                        return response.json()
                    except ValueError as exc:
                        raise IndexerError(
                            f"{self.label} returned invalid JSON", status=status,
                            body=response.text, url=url,
                        ) from exc

            if attempt + 1 < self.max_retries:
                self.sleep(self.base_delay * (2 ** attempt))

        raise last_error or IndexerError(f"{self.label} request failed", url=url)

    def paginate(self, path, params=None, items_key="items"):
        """Yield one list of items per page until next-token runs out."""
        next_token = None
        while True:
            page_params = dict(params or {})
            page_params.setdefault("limit", PAGE_LIMIT)
            if next_token:
                page_params["next"] = next_token
            page = self.request(path, page_params) or {}
            items = page.get(items_key)
            yield items if isinstance(items, list) else []
            next_token = page.get("next-token")
            if not next_token:
                break

    def read_box(self, app_id, key):
        """Raw bytes of an application box; IndexerNotFoundError if it does not exist."""
        name = "base64:" + base64.b64encode(key).decode("ascii")
        payload = self.request(f"/v2/applications/{app_id}/box", {"name": name}) or {}
        value = payload.get("value")
        if not isinstance(value, str) or not value:
            return b""
        return base64.b64decode(value)

    def application(self, app_id):
        return self.request(f"/v2/applications/{app_id}") or {}
