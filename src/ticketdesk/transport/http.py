"""
REST HTTP client for the transcript store (PostgREST conventions).
"""

from typing import Any, Optional

import httpx

from ticketdesk.errors import StoreError

DEFAULT_BASE_URL = "http://localhost:54321"
REST_PATH = "/rest/v1"


class HttpClient:
    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str = "",
        token: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._api_key = api_key
        self._token = token
        self._client = httpx.AsyncClient(
            base_url=f"{self._base_url}{REST_PATH}",
            headers={"User-Agent": "ticketdesk/0.1.0", "Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def set_token(self, token: Optional[str]) -> None:
        self._token = token

    def _headers(self, prefer: Optional[str] = None) -> dict[str, str]:
        headers: dict[str, str] = {"Content-Type": "application/json", "apikey": self._api_key}
        headers["Authorization"] = f"Bearer {self._token or self._api_key}"
        if prefer:
            headers["Prefer"] = prefer
        return headers

    @staticmethod
    def _check(resp: httpx.Response) -> Any:
        if resp.status_code >= 400:
            try:
                body = resp.json()
            except ValueError:
                body = None
            if isinstance(body, dict):
                raise StoreError(
                    f"HTTP {resp.status_code}: {body.get('message') or resp.text[:200]}",
                    details={"status": resp.status_code, "code": body.get("code"), "hint": body.get("hint")},
                )
            raise StoreError(f"HTTP {resp.status_code}: {resp.text[:200]}", details={"status": resp.status_code})
        if resp.status_code == 204 or not resp.content:
            return None
        return resp.json()

    async def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        try:
            return await self._client.request(method, path, **kwargs)
        except httpx.HTTPError as e:
            raise StoreError(f"{method} {path} failed: {e}") from e

    async def get(self, path: str, params: Optional[dict[str, str]] = None) -> Any:
        resp = await self._send("GET", path, params=params, headers=self._headers())
        return self._check(resp)

    async def post(
        self, path: str, body: Optional[dict[str, Any]] = None, prefer: Optional[str] = None,
    ) -> Any:
        resp = await self._send("POST", path, json=body, headers=self._headers(prefer))
        return self._check(resp)

    async def patch(
        self, path: str, body: dict[str, Any], params: Optional[dict[str, str]] = None,
        prefer: Optional[str] = None,
    ) -> Any:
        resp = await self._send("PATCH", path, json=body, params=params, headers=self._headers(prefer))
        return self._check(resp)

    async def rpc(self, function: str, args: Optional[dict[str, Any]] = None) -> Any:
        return await self.post(f"/rpc/{function}", args or {})

    async def close(self) -> None:
        await self._client.aclose()
