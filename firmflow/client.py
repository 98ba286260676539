# firmflow/client.py
"""HTTP client for the document processing backend."""

import logging
from typing import Any, Dict, Optional, Tuple

import httpx

from .models import StatusResponse, UploadResponse

logger = logging.getLogger(__name__)


class BackendClient:
    """
    Thin async wrapper over the three backend endpoints.

    Non-2xx responses raise ``httpx.HTTPStatusError`` and bodies that do not
    match the wire models raise ``pydantic.ValidationError``; callers map
    both onto the job error taxonomy.
    """

    UPLOAD_PATH = "/api/upload"
    STATUS_PATH = "/api/status/{job_id}"
    WEBHOOK_PATH = "/webhook/automation"

    def __init__(
        self,
        api_base: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    def _http(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.api_base,
                timeout=self.timeout,
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def upload(self, filename: str, content: bytes, content_type: str) -> Tuple[UploadResponse, Dict[str, Any]]:
        response = await self._http().post(
            self.UPLOAD_PATH,
            files={"file": (filename, content, content_type)},
        )
        response.raise_for_status()
        body = response.json()
        return UploadResponse.model_validate(body), body

    async def status(self, job_id: str) -> Tuple[StatusResponse, Dict[str, Any]]:
        response = await self._http().get(self.STATUS_PATH.format(job_id=job_id))
        response.raise_for_status()
        body = response.json()
        return StatusResponse.model_validate(body), body

    async def forward(self, result: Any) -> int:
        response = await self._http().post(self.WEBHOOK_PATH, json=result)
        response.raise_for_status()
        logger.info("Forwarded result to automation webhook (%s)", response.status_code)
        return response.status_code
