"""Authenticated access to the Azure DevOps REST API.

Requests are made with ``requests`` and pushed onto a worker thread with
``asyncio.to_thread`` so that callers in the review pipeline can await them
without blocking the event loop.
"""

from __future__ import annotations

import asyncio
import logging

import requests

logger = logging.getLogger(__name__)

ADO_API_VERSION = "7.1"
CONNECTION_DATA_PATH = "/_apis/connectionData"
_DEFAULT_TIMEOUT = 30


class AdoApiError(Exception):
    """Non-2xx response from Azure DevOps."""

    def __init__(self, status: int, body: str, url: str):
        self.status = status
        self.body = body
        self.url = url
        super().__init__(f"ADO API error {status} for {url}: {body[:200]}")


class AdoAuthError(Exception):
    """No credential could be resolved for Azure DevOps."""


class AdoClient:
    """Thin JSON client. Auth headers are resolved once by the caller and reused."""

    def __init__(self, auth_headers: dict[str, str], session: requests.Session | None = None, timeout: int = _DEFAULT_TIMEOUT):
        if auth_headers is None:
            raise AdoAuthError("Not authenticated with Azure DevOps")
        self._headers = {"Accept": "application/json", **auth_headers}
        self._session = session or requests.Session()
        self._timeout = timeout

    def request(self, method: str, url: str, params: dict | None = None, json_body: dict | None = None) -> dict:
        query = dict(params or {})
        query.setdefault("api-version", ADO_API_VERSION)
        headers = dict(self._headers)
        if json_body is not None:
            headers["Content-Type"] = "application/json"

        logger.debug("%s %s", method, url)
        resp = self._session.request(method, url, params=query, json=json_body, headers=headers, timeout=self._timeout)
        if not resp.ok:
            raise AdoApiError(resp.status_code, resp.text or "", url)
        if not resp.content:
            return {}
        return resp.json()

    async def get(self, url: str, params: dict | None = None) -> dict:
        return await asyncio.to_thread(self.request, "GET", url, params)

    async def post(self, url: str, body: dict) -> dict:
        return await asyncio.to_thread(self.request, "POST", url, None, body)

    def close(self) -> None:
        self._session.close()
