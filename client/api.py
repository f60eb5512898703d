"""
client/api.py -- HTTP client for the MediLog REST API.

Every failed call raises ApiError(status, code, message):
  - HTTP error with the JSON error envelope -> its code and message
  - HTTP error with any other body          -> code "HTTP_<status>"
  - transport failure (DNS, refused, timeout) -> status None, code "NETWORK_ERROR"
  - 2xx whose body is not JSON or lacks the expected fields
                                              -> code "INVALID_RESPONSE"

The transport is injectable. Anything with
    .request(method, url, json=..., headers=..., timeout=...)
works: a requests.Session in production, Starlette's TestClient in tests, so
the same client code can run end-to-end against an in-process app.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

import requests

from client.session import Tokens

logger = logging.getLogger("medilog.client")


class ApiError(Exception):
    def __init__(self, status: Optional[int], code: str, message: str) -> None:
        super().__init__(f"{code}: {message}")
        self.status = status
        self.code = code
        self.message = message

    @property
    def is_unauthorized(self) -> bool:
        return self.status == 401


def _tokens(data: Any) -> Tokens:
    access, refresh = data["accessToken"], data["refreshToken"]
    if not (isinstance(access, str) and access and isinstance(refresh, str) and refresh):
        raise TypeError("token pair must be two non-empty strings")
    return Tokens(access_token=access, refresh_token=refresh)


def _object(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict) or not isinstance(data.get("id"), str):
        raise TypeError("expected an object with an id")
    return data


def _signed_in(data: Any) -> tuple[dict[str, Any], Tokens]:
    return _object(data["account"]), _tokens(data["tokens"])


def _items(data: Any) -> list[dict[str, Any]]:
    items = data["items"]
    if not isinstance(items, list):
        raise TypeError("items must be a list")
    return items


class ApiClient:
    """Thin wrapper over the REST endpoints. Stateless: tokens are passed in.

    Usage:
        api = ApiClient("http://localhost:8000/api/v1")
        account, tokens = api.login("a@example.com", "secret1")
        api.get_me(tokens.access_token)
    """

    def __init__(self, base_url: str, http: Any = None, timeout: float = 10.0) -> None:
        self.base_url = base_url.rstrip("/")
        if http is None:
            http = requests.Session()
            # Same cap as any client talking to a single known API
            http.max_redirects = 3
        self.http = http
        self.timeout = timeout

    def _call(
        self,
        method: str,
        path: str,
        body: Optional[dict[str, Any]] = None,
        access_token: Optional[str] = None,
        parse: Optional[Callable[[Any], Any]] = None,
    ) -> Any:
        """Send one request. With parse, a 2xx body it cannot read is INVALID_RESPONSE."""
        headers = {"Accept": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        url = f"{self.base_url}{path}"
        try:
            resp = self.http.request(method, url, json=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as e:
            logger.warning("%s %s failed: %s", method, path, e)
            raise ApiError(None, "NETWORK_ERROR", "Could not reach the server.") from e

        if resp.status_code >= 400:
            raise _error_from(resp)
        if resp.status_code == 204 or not resp.content:
            data = None
        else:
            try:
                data = resp.json()
            except ValueError as e:
                raise ApiError(resp.status_code, "INVALID_RESPONSE", "Server returned a non-JSON body.") from e
        if parse is None:
            return data
        try:
            return parse(data)
        except (KeyError, TypeError) as e:
            logger.warning("%s %s returned an unexpected body: %s", method, path, e)
            raise ApiError(resp.status_code, "INVALID_RESPONSE", "Server returned an unexpected body.") from e

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def register(self, email: str, password: str, name: str) -> tuple[dict[str, Any], Tokens]:
        body = {"email": email, "password": password, "name": name}
        return self._call("POST", "/auth/register", body, parse=_signed_in)

    def login(self, email: str, password: str) -> tuple[dict[str, Any], Tokens]:
        return self._call("POST", "/auth/login", {"email": email, "password": password}, parse=_signed_in)

    def refresh(self, refresh_token: str) -> Tokens:
        return self._call("POST", "/auth/refresh", {"refreshToken": refresh_token}, parse=_tokens)

    def logout(self, refresh_token: str) -> None:
        self._call("POST", "/auth/logout", {"refreshToken": refresh_token})

    def get_me(self, access_token: str) -> dict[str, Any]:
        return self._call("GET", "/account/me", access_token=access_token, parse=_object)

    # ------------------------------------------------------------------
    # Profiles
    # ------------------------------------------------------------------

    def list_profiles(self, access_token: str) -> list[dict[str, Any]]:
        return self._call("GET", "/profiles", access_token=access_token, parse=_items)

    def get_profile(self, access_token: str, profile_id: str) -> dict[str, Any]:
        return self._call("GET", f"/profiles/{profile_id}", access_token=access_token, parse=_object)


def _error_from(resp: Any) -> ApiError:
    fallback = ApiError(resp.status_code, f"HTTP_{resp.status_code}", f"Request failed with status {resp.status_code}.")
    try:
        payload = resp.json()
    except ValueError:
        return fallback
    error = payload.get("error") if isinstance(payload, dict) else None
    if not isinstance(error, dict) or "code" not in error:
        return fallback
    return ApiError(resp.status_code, str(error["code"]), str(error.get("message", "")))
