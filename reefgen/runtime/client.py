"""The minimal HTTP abstraction generated clients dispatch through."""

import logging
from collections.abc import Mapping, Sequence
from typing import Any

import httpx

logger = logging.getLogger(__name__)

DEFAULT_USER_AGENT = 'reefgen client'
DEFAULT_TIMEOUT = 10.0


class ApiClient:
    """Thin wrapper around ``httpx.Client`` shared by all generated operations.

    Example:
        >>> api = ApiClient('https://api.example.com', bearer_token='secret')
        >>> client = PetstoreClient(api)
    """

    def __init__(
        self,
        base_url: str,
        *,
        timeout: float | None = DEFAULT_TIMEOUT,
        user_agent: str = DEFAULT_USER_AGENT,
        bearer_token: str | None = None,
        headers: Mapping[str, str] | None = None,
        http_client: httpx.Client | None = None,
    ):
        default_headers = {'User-Agent': user_agent}
        if bearer_token:
            default_headers['Authorization'] = f'Bearer {bearer_token}'
        if headers:
            default_headers.update(headers)

        if http_client is None:
            http_client = httpx.Client(
                base_url=base_url, timeout=timeout, headers=default_headers
            )
        else:
            http_client.base_url = base_url
            http_client.headers.update(default_headers)
        self._http = http_client
        self.base_url = base_url

    @property
    def http_client(self) -> httpx.Client:
        return self._http

    def request(
        self,
        method: str,
        path: str,
        *,
        params: Sequence[tuple[str, str]] | None = None,
        headers: Mapping[str, str] | None = None,
        cookies: Mapping[str, str] | None = None,
        json: Any = None,
        data: Mapping[str, Any] | None = None,
        files: Mapping[str, Any] | None = None,
        content: bytes | None = None,
    ) -> httpx.Response:
        headers = dict(headers or {})
        if cookies:
            headers['Cookie'] = '; '.join(f'{name}={value}' for name, value in cookies.items())

        logger.debug(f'{method} {path}')
        return self._http.request(
            method,
            path,
            params=list(params) if params else None,
            headers=headers,
            json=json,
            data=data or None,
            files=files or None,
            content=content,
        )

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> 'ApiClient':
        return self

    def __exit__(self, *args) -> None:
        self.close()
