from __future__ import annotations

import logging
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from avatar_welcome.config import settings
from avatar_welcome.errors import (
    ExternalServiceError,
    PermissionDeniedUpstream,
    ProviderResponseError,
    is_permission_message,
)

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)


class ProviderClient:
    """Shared request plumbing for the outbound provider integrations."""

    provider = "provider"

    def __init__(self, *, base_url: str, timeout_seconds: float | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self._timeout = float(timeout_seconds or settings.REQUEST_TIMEOUT_SECONDS)

    def _headers(self) -> dict[str, str]:
        return {"Accept": "application/json"}

    async def _send(
        self,
        method: str,
        url: str,
        *,
        json_payload: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
        content: bytes | None = None,
        data: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        merged_headers = {**self._headers(), **(headers or {})}
        try:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.request(
                    method,
                    url,
                    json=json_payload,
                    params=params,
                    content=content,
                    data=data,
                    files=files,
                    headers=merged_headers,
                )
        except httpx.RequestError as exc:
            raise ExternalServiceError(
                f"Network error while calling {self.provider}: {exc}",
                provider=self.provider,
            ) from exc

        if response.status_code >= 400:
            self._raise_for_response(response)
        return response

    async def _request_json(self, method: str, path_or_url: str, **kwargs: Any) -> dict[str, Any]:
        url = path_or_url if path_or_url.startswith("http") else f"{self.base_url}{path_or_url}"
        response = await self._send(method, url, **kwargs)
        try:
            body = response.json()
        except ValueError as exc:
            raise ProviderResponseError(
                f"{self.provider} returned invalid JSON", provider=self.provider
            ) from exc
        if not isinstance(body, dict):
            raise ProviderResponseError(
                f"{self.provider} response must be a JSON object", provider=self.provider
            )
        return body

    def _raise_for_response(self, response: httpx.Response) -> None:
        message = _extract_error_message(response)
        logger.warning(
            "Provider call failed",
            extra={"provider": self.provider, "status_code": response.status_code, "url": str(response.url)},
        )
        error_cls = PermissionDeniedUpstream if is_permission_message(message) else ExternalServiceError
        raise error_cls(message, provider=self.provider, upstream_status=response.status_code)

    def _parse_model(self, model: type[ModelT], payload: Any, *, context: str) -> ModelT:
        try:
            return model.model_validate(payload)
        except ValidationError as exc:
            raise ProviderResponseError(
                f"Unexpected {self.provider} response shape for {context}: {exc.errors()[:3]}",
                provider=self.provider,
            ) from exc

    def _unwrap_data(self, body: dict[str, Any], *, context: str) -> Any:
        data = body.get("data")
        if data is None:
            raise ProviderResponseError(
                f"{self.provider} response for {context} is missing data", provider=self.provider
            )
        return data


def _extract_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"Request failed with status {response.status_code}"
    if isinstance(body, dict):
        for key in ("message", "error", "detail"):
            value = body.get(key)
            if isinstance(value, str) and value:
                return value
            if isinstance(value, dict):
                nested = value.get("message") or value.get("detail")
                if isinstance(nested, str) and nested:
                    return nested
    return response.text or f"Request failed with status {response.status_code}"
