"""
Async Exchange Online admin API client with pagination, throttling, retry,
and cmdlet guarding. Every call is a cmdlet invocation posted to the REST
InvokeCommand endpoint used by the Exchange Online management module.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import AsyncGenerator, Optional

import httpx

from ..config import (
    MAX_RETRIES,
    INITIAL_BACKOFF_SECONDS,
    MAX_BACKOFF_SECONDS,
    BACKOFF_MULTIPLIER,
    MAX_PAGES_PER_CMDLET,
)
from ..safety.guardian import CmdletGuardian

logger = logging.getLogger("m365_admin_console.exchange")

# Routing mailbox used by app-only sessions
APP_ANCHOR_MAILBOX = "APP:SystemMailbox{bb558c35-97f1-4cb9-8ff7-d53741dc928c}@"

NOT_FOUND_MARKERS = (
    "ManagementObjectNotFoundException",
    "couldn't be found",
    "could not be found",
    "UserNotFoundInFolderAcl",
    "isn't in the access list",
)


class CmdletError(Exception):
    """Raised when the admin API rejects a cmdlet invocation."""
    def __init__(self, status_code: int, message: str, cmdlet: str):
        self.status_code = status_code
        self.cmdlet = cmdlet
        self.message = message
        super().__init__(f"{cmdlet} failed ({status_code}): {message}")

    @property
    def not_found(self) -> bool:
        if self.status_code == 404:
            return True
        return any(marker.lower() in self.message.lower() for marker in NOT_FOUND_MARKERS)


class ExchangeAdminClient:
    """
    Async client for one admin endpoint (Exchange Online or Security &
    Compliance). Features:
      - Guardian-validated cmdlets (allow-list, read-only mode, audit)
      - Automatic pagination with @odata.nextLink
      - Exponential backoff on 429, and on 503/504 for read cmdlets
      - Mutating cmdlets are never replayed after a server error
    """

    def __init__(
        self,
        base_url: str,
        tenant_id: str,
        access_token: str,
        guardian: CmdletGuardian,
        anchor_mailbox: str = "",
        timeout: float = 120.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.tenant_id = tenant_id
        self.access_token = access_token
        self.guardian = guardian
        self.anchor_mailbox = anchor_mailbox
        self.timeout = timeout
        self._transport = transport
        self._request_count = 0
        self._throttle_count = 0
        self._client: Optional[httpx.AsyncClient] = None

    async def __aenter__(self):
        headers = {
            "Authorization": f"Bearer {self.access_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
            "X-ResponseFormat": "json",
            "Prefer": "odata.maxpagesize=1000",
        }
        if self.anchor_mailbox:
            headers["X-AnchorMailbox"] = self.anchor_mailbox
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.timeout, connect=30.0),
            headers=headers,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def command_url(self) -> str:
        return f"{self.base_url}/{self.tenant_id}/InvokeCommand"

    async def invoke(self, cmdlet: str, parameters: Optional[dict] = None) -> list[dict]:
        """Invoke a cmdlet and collect every output object into a list."""
        return [item async for item in self.invoke_stream(cmdlet, parameters)]

    async def invoke_stream(
        self,
        cmdlet: str,
        parameters: Optional[dict] = None,
    ) -> AsyncGenerator[dict, None]:
        """
        Invoke a cmdlet and yield its output objects one at a time,
        following @odata.nextLink for large result sets.
        """
        parameters = parameters or {}
        self.guardian.validate_invocation(cmdlet, parameters)

        body: Optional[dict] = {
            "CmdletInput": {"CmdletName": cmdlet, "Parameters": parameters}
        }
        url: Optional[str] = self.command_url
        pages = 0

        while url and pages < MAX_PAGES_PER_CMDLET:
            data = await self._execute_with_retry(cmdlet, url, body)
            for item in data.get("value", []):
                yield item
            url = data.get("@odata.nextLink")
            pages += 1

        if pages >= MAX_PAGES_PER_CMDLET:
            logger.warning(
                f"Pagination safety cap reached ({MAX_PAGES_PER_CMDLET} pages) "
                f"for cmdlet: {cmdlet}"
            )

    async def _execute_with_retry(self, cmdlet: str, url: str, body: Optional[dict]) -> dict:
        """Execute request with exponential backoff on throttling."""
        backoff = INITIAL_BACKOFF_SECONDS
        replayable = not self.guardian.is_mutating(cmdlet)

        for attempt in range(MAX_RETRIES + 1):
            try:
                response = await self._execute_raw(url, body)
            except (httpx.TimeoutException, httpx.ConnectError) as e:
                logger.warning(f"{type(e).__name__} on {cmdlet}, attempt {attempt + 1}/{MAX_RETRIES}")
                if not replayable or attempt == MAX_RETRIES:
                    raise CmdletError(0, f"{type(e).__name__}: {e}", cmdlet) from e
                await asyncio.sleep(backoff)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                continue

            self._request_count += 1

            if response.status_code == 200:
                if not response.content or not response.content.strip():
                    return {"value": []}
                return response.json()

            if response.status_code == 204:
                return {"value": []}

            throttled = response.status_code == 429 or (
                replayable and response.status_code in (503, 504)
            )
            if throttled and attempt < MAX_RETRIES:
                self._throttle_count += 1
                retry_after = _retry_after(response.headers.get("Retry-After"), backoff)
                wait_time = max(retry_after, backoff)
                logger.warning(
                    f"Throttled ({response.status_code}) on {cmdlet}. "
                    f"Retry {attempt + 1}/{MAX_RETRIES} in {wait_time:.1f}s"
                )
                await asyncio.sleep(wait_time)
                backoff = min(backoff * BACKOFF_MULTIPLIER, MAX_BACKOFF_SECONDS)
                continue

            raise CmdletError(response.status_code, _error_message(response), cmdlet)

        raise CmdletError(429, "Maximum retries exceeded", cmdlet)

    async def _execute_raw(self, url: str, body: Optional[dict]) -> httpx.Response:
        """Execute raw HTTP request."""
        if not self._client:
            raise RuntimeError("ExchangeAdminClient not initialized. Use 'async with' context.")
        # nextLink pages are fetched with GET
        if url == self.command_url:
            return await self._client.post(url, json=body)
        return await self._client.get(url)

    def get_stats(self) -> dict:
        """Return client statistics."""
        return {
            "total_requests": self._request_count,
            "throttle_events": self._throttle_count,
        }


def _error_message(response: httpx.Response) -> str:
    """Pull the most specific message out of an admin API error body."""
    try:
        error = response.json().get("error", {})
    except ValueError:
        return response.text[:300] or f"HTTP {response.status_code}"
    details = error.get("details") or []
    for detail in details:
        if detail.get("message"):
            return detail["message"]
    return error.get("message") or f"HTTP {response.status_code}"


def _retry_after(value: Optional[str], fallback: float) -> float:
    """Seconds to wait from a Retry-After header, in delay-seconds or HTTP-date form."""
    if not value:
        return fallback
    try:
        return float(value)
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        logger.debug(f"Unparseable Retry-After header: {value!r}")
        return fallback
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())
