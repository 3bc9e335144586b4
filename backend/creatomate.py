"""
Creatomate REST client.

  create_render(template_id, modifications)  - submit a render, raises CreatomateApiError
  get_render_status(render_id)               - single live status lookup, never raises

Status lookups are not cached and not retried: the polling client owns the cadence.
"""

import logging
import os
import re
from typing import Any, Dict, List, Optional

import httpx

from generations import CamelModel

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Configuration
# ---------------------------------------------------------------------------
CREATOMATE_API_KEY: str = os.getenv("CREATOMATE_API_KEY", "")
CREATOMATE_API_URL: str = os.getenv("CREATOMATE_API_URL", "https://api.creatomate.com/v1")
CREATOMATE_TIMEOUT_SECONDS: float = float(os.getenv("CREATOMATE_TIMEOUT_SECONDS", "30"))

# Render ids are UUIDs; no slashes or dots may reach the request path
_RENDER_ID = re.compile(r"[A-Za-z0-9_-]{1,64}")


class CreatomateApiError(RuntimeError):
    def __init__(self, *, message: str, status_code: int = 502) -> None:
        super().__init__(message)
        self.status_code = status_code


class RenderStatusResult(CamelModel):
    success: bool
    status: Optional[str] = None
    url: Optional[str] = None
    error_message: Optional[str] = None
    error: Optional[str] = None

    @classmethod
    def failure(cls, error: str) -> "RenderStatusResult":
        return cls(success=False, error=error)


class CreatomateClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = CREATOMATE_API_URL,
        timeout: float = CREATOMATE_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._api_key = CREATOMATE_API_KEY if api_key is None else api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def get_render_status(self, render_id: str) -> RenderStatusResult:
        """
        Look up one render. Every fault (missing key or id, non-2xx, bad body,
        network error) comes back as success=False with a message.
        """
        if not self._api_key:
            return RenderStatusResult.failure("Missing Creatomate API Key")
        if not render_id:
            return RenderStatusResult.failure("Render ID is required")
        if not _RENDER_ID.fullmatch(render_id):
            logger.warning("Rejected malformed render id %r", render_id)
            return RenderStatusResult.failure("Invalid render ID")

        try:
            async with self._client() as client:
                response = await client.get(
                    f"/renders/{render_id}",
                    headers={**self._auth_headers(), "Accept": "application/json"},
                )
        except Exception as exc:
            logger.warning("Render status lookup for %s failed: %r", render_id, exc)
            return RenderStatusResult.failure(str(exc) or "Unknown error checking render status")

        data = _json_body(response)
        if not response.is_success:
            message = _error_message(data)
            logger.warning("Creatomate returned %s for render %s", response.status_code, render_id)
            return RenderStatusResult.failure(message or f"API error {response.status_code}")

        if not isinstance(data, dict) or not isinstance(data.get("status"), str):
            logger.error("Malformed render status for %s: %r", render_id, data)
            return RenderStatusResult.failure("Invalid response from Creatomate API")

        return RenderStatusResult(
            success=True,
            status=data["status"],
            url=_str_or_none(data.get("url")),
            error_message=_str_or_none(data.get("error_message")),
        )

    async def create_render(
        self,
        template_id: str,
        modifications: Dict[str, Any],
        output_format: str = "mp4",
        frame_rate: int = 30,
    ) -> List[Dict[str, Any]]:
        """Submit a template render. Returns the render objects Creatomate created."""
        if not self._api_key:
            raise CreatomateApiError(message="Missing Creatomate API Key", status_code=500)

        payload = {
            "template_id": template_id,
            "modifications": modifications,
            "output_format": output_format,
            "frame_rate": frame_rate,
        }
        logger.debug("Submitting Creatomate render: %s", payload)
        try:
            async with self._client() as client:
                response = await client.post(
                    "/renders",
                    json=payload,
                    headers={**self._auth_headers(), "Content-Type": "application/json"},
                )
        except httpx.HTTPError as exc:
            raise CreatomateApiError(message=f"Creatomate request failed: {exc!r}") from exc

        data = _json_body(response)
        if not response.is_success:
            detail = _error_message(data) or response.text
            raise CreatomateApiError(
                message=f"Creatomate API error: {response.status_code} - {detail}",
                status_code=response.status_code,
            )
        if not isinstance(data, list) or not data:
            raise CreatomateApiError(message="Invalid response from Creatomate API")
        return data

    # ------------------------------------------------------------------

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(base_url=self._base_url, timeout=self._timeout, transport=self._transport)

    def _auth_headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._api_key}"}


def _json_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return None


def _error_message(data: Any) -> Optional[str]:
    if not isinstance(data, dict):
        return None
    for field in ("error_message", "message"):
        value = data.get(field)
        if isinstance(value, str) and value:
            return value
    return None


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None
