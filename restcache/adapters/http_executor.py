"""
httpx-backed request executor.
"""

from typing import Any, Dict, Mapping, Optional, Tuple

import httpx

from ..core.registry import HttpMethod
from ..errors import TransientTransportError, classify_status
from ..logging import get_logger
from .base import Response


class HttpxRequestExecutor:
    """Dispatches engine requests over httpx and classifies failures by status."""

    def __init__(
        self,
        base_url: str = "",
        *,
        timeout: float = 10.0,
        headers: Optional[Mapping[str, str]] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.default_headers: Dict[str, str] = dict(headers or {})
        self._client = client
        self.logger = get_logger("restcache.http_executor")

    @classmethod
    def from_settings(cls, settings: Any, client: Optional[httpx.AsyncClient] = None) -> "HttpxRequestExecutor":
        """Build an executor from EngineSettings."""
        return cls(
            settings.base_url,
            timeout=settings.request_timeout,
            headers=settings.default_headers,
            client=client,
        )

    async def execute(
        self,
        method: HttpMethod,
        url: str,
        body: Any = None,
        query_params: Optional[Mapping[str, Any]] = None,
        headers: Optional[Mapping[str, str]] = None,
    ) -> Response:
        """Send one request; non-2xx statuses raise TransportError subclasses."""
        method = HttpMethod.parse(method)
        full_url = f"{self.base_url}{url}"
        request_kwargs = self._build_request_kwargs(body, query_params, headers)

        try:
            if self._client is not None:
                response = await self._client.request(method.value, full_url, **request_kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(method.value, full_url, **request_kwargs)
        except httpx.TimeoutException as exc:
            self.logger.error("Request timed out", method=method.value, url=full_url, error=str(exc))
            raise TransientTransportError(
                f"Request to {full_url} timed out",
                details={"method": method.value, "url": full_url}
            ) from exc
        except httpx.HTTPError as exc:
            self.logger.error("Request failed", method=method.value, url=full_url, error=str(exc))
            raise TransientTransportError(
                f"Request to {full_url} failed: {exc}",
                details={"method": method.value, "url": full_url}
            ) from exc

        if response.is_success:
            self.logger.debug("Request succeeded", method=method.value, url=full_url, status_code=response.status_code)
            return Response(
                status_code=response.status_code,
                data=self._decode(response),
                headers=dict(response.headers),
            )

        self.logger.warning(
            "Request returned error status",
            method=method.value,
            url=full_url,
            status_code=response.status_code,
        )
        raise classify_status(
            response.status_code,
            f"{method.value} {url} returned {response.status_code}",
            details={"method": method.value, "url": full_url, "body": self._decode(response)}
        )

    def _build_request_kwargs(
        self,
        body: Any,
        query_params: Optional[Mapping[str, Any]],
        headers: Optional[Mapping[str, str]],
    ) -> Dict[str, Any]:
        request_kwargs: Dict[str, Any] = {
            "headers": {**self.default_headers, **dict(headers or {})},
        }
        if query_params:
            request_kwargs["params"] = {k: v for k, v in query_params.items() if v is not None}

        if body is None:
            return request_kwargs

        form, files = _split_multipart(body)
        if files:
            request_kwargs["data"] = form
            request_kwargs["files"] = files
        else:
            request_kwargs["json"] = body
        return request_kwargs

    @staticmethod
    def _decode(response: httpx.Response) -> Any:
        if response.status_code == 204 or not response.content:
            return None
        content_type = response.headers.get("content-type", "")
        if "json" in content_type:
            try:
                return response.json()
            except ValueError:
                return response.text
        return response.text


def _is_file(value: Any) -> bool:
    return isinstance(value, (bytes, bytearray)) or hasattr(value, "read")


def _split_multipart(body: Any) -> Tuple[Dict[str, Any], Dict[str, Any]]:
    """Separate file-like fields from plain form fields."""
    if not isinstance(body, Mapping):
        return {}, {}
    files = {name: value for name, value in body.items() if _is_file(value)}
    if not files:
        return {}, {}
    form = {name: value for name, value in body.items() if name not in files and value is not None}
    return form, files
