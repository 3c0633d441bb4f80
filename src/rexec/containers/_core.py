"""Core business logic for the Rexec containers API."""

from __future__ import annotations

import sys
from collections.abc import Mapping
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from .._http import BaseTransport, JSONBody
from ..errors import APIError, InvalidResponseError
from .models import Container, ContainersResponse, StartContainerResponse

VERSION = "0.1.0"
USER_AGENT = f"rexec-python/{VERSION} (Python/{sys.version_info[0]}.{sys.version_info[1]}; {sys.platform})"

CUSTOM_IMAGE = "custom"

ModelT = TypeVar("ModelT", bound=BaseModel)


def _parse_error_message(response: httpx.Response) -> tuple[str, Any | None]:
    """Parse the server-reported error from an API response.

    The server's ``error`` (or ``message``) field is returned verbatim; otherwise
    a generic message naming the status code.
    """
    parsed: Any | None = None
    message = f"Request failed with status {response.status_code}"
    try:
        parsed = response.json()
    except ValueError:
        parsed = None

    if isinstance(parsed, dict):
        for key in ("error", "message"):
            value = parsed.get(key)
            if isinstance(value, str) and value:
                return value, parsed
            if isinstance(value, dict):
                msg = value.get("message") or value.get("msg")
                if isinstance(msg, str) and msg:
                    return msg, parsed

    return message, parsed


def _parse_model(model: type[ModelT], data: Any, what: str) -> ModelT:
    """Validate a response body, raising InvalidResponseError if it does not fit."""
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise InvalidResponseError(
            f"Unexpected {what} response: {exc.error_count()} invalid field(s)"
        ) from exc


def build_create_body(name: str, image: str, custom_image: str | None = None) -> dict[str, str]:
    """Request body for container creation.

    ``custom_image`` is only sent when the image selector is ``"custom"``.
    """
    body = {"name": name, "image": image}
    if image == CUSTOM_IMAGE and custom_image:
        body["custom_image"] = custom_image
    return body


class _BaseAPIClient:
    """
    Base class containing shared business logic for container API operations.

    All methods are async and use the abstract _transport property for HTTP requests.
    Subclasses must provide a concrete transport implementation.
    """

    _transport: BaseTransport

    def _build_headers(self, extra: Mapping[str, str] | None = None) -> dict[str, str]:
        """Build request headers."""
        headers = {"user-agent": USER_AGENT}
        if extra:
            headers.update(extra)
        return headers

    async def _request(
        self,
        method: str,
        path: str,
        *,
        headers: Mapping[str, str] | None = None,
        json_body: Any | None = None,
    ) -> httpx.Response:
        """Make an API request."""
        body = JSONBody(json_body) if json_body is not None else None

        resp = await self._transport.send(
            method,
            path,
            headers=self._build_headers(headers),
            body=body,
        )

        if 200 <= resp.status_code < 300:
            return resp

        message, parsed = _parse_error_message(resp)
        raise APIError(resp, message, data=parsed)

    async def _request_json(self, method: str, path: str, **kwargs: Any) -> Any:
        """Make an API request and return the JSON body ({} when empty)."""
        resp = await self._request(method, path, **kwargs)
        if not resp.content:
            return {}
        try:
            return resp.json()
        except ValueError:
            return {}

    async def _list_containers(self) -> ContainersResponse:
        data = await self._request_json("GET", "/api/containers")
        return _parse_model(ContainersResponse, data, "container list")

    async def _get_container(self, *, container_id: str) -> Container:
        data = await self._request_json("GET", f"/api/containers/{container_id}")
        return _parse_model(Container, data, "container")

    async def _create_container(
        self, *, name: str, image: str, custom_image: str | None = None
    ) -> Container:
        data = await self._request_json(
            "POST",
            "/api/containers",
            json_body=build_create_body(name, image, custom_image),
        )
        if not isinstance(data, dict) or not data.get("id"):
            raise InvalidResponseError("Unexpected container response: missing container id")
        # The fallback endpoint only answers once the container is up.
        record = {"name": name, "image": image, **data, "status": "running"}
        return _parse_model(Container, record, "container")

    async def _start_container(self, *, container_id: str) -> StartContainerResponse:
        data = await self._request_json("POST", f"/api/containers/{container_id}/start")
        return _parse_model(StartContainerResponse, data, "start")

    async def _stop_container(self, *, container_id: str) -> None:
        await self._request("POST", f"/api/containers/{container_id}/stop")

    async def _delete_container(self, *, container_id: str) -> None:
        await self._request("DELETE", f"/api/containers/{container_id}")


__all__ = ["USER_AGENT", "CUSTOM_IMAGE", "build_create_body", "_BaseAPIClient"]
