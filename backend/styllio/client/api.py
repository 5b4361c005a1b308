from __future__ import annotations

import json
from typing import Any, AsyncIterator, Dict, Optional

import httpx

JobDict = Dict[str, Any]


class JobApiClient:
    """
    Thin async client for the public job endpoints.

    `find_by_session` and `get_job` return None on 404 (the job may simply not
    exist *yet*); other HTTP failures raise httpx errors.
    """

    def __init__(self, base_url: str = "", http: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._owns_http = http is None
        self.http = http or httpx.AsyncClient(base_url=base_url, timeout=timeout)

    async def find_by_session(self, session_id: str) -> Optional[JobDict]:
        response = await self.http.get("/jobs", params={"sessionId": session_id})
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def get_job(self, job_id: str) -> Optional[JobDict]:
        response = await self.http.get(f"/jobs/{job_id}")
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.json()

    async def stream_events(self, job_id: str) -> AsyncIterator[JobDict]:
        """Yield change notifications from the job's server-sent event stream."""
        timeout = httpx.Timeout(10.0, read=None)
        async with self.http.stream("GET", f"/jobs/{job_id}/events", timeout=timeout) as response:
            response.raise_for_status()
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                try:
                    yield json.loads(line[len("data:"):].strip())
                except ValueError:
                    continue

    async def aclose(self) -> None:
        if self._owns_http:
            await self.http.aclose()

    async def __aenter__(self) -> "JobApiClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()
