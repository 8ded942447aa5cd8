"""Thin REST client for the hosted backend (PostgREST tables and auth)."""

import logging
from typing import Any, Optional

import httpx

from .errors import SupabaseError

logger = logging.getLogger(__name__)


class SupabaseClient:
    """Client for the hosted backend's REST and auth endpoints."""

    def __init__(
        self,
        url: str,
        anon_key: str,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None,
    ) -> None:
        """
        Initialize the backend client.

        Args:
            url: Project URL, e.g. https://<project>.supabase.co
            anon_key: Public anon key sent as the apikey header
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.url = url.rstrip("/")
        self.anon_key = anon_key
        self.client = httpx.Client(
            base_url=self.url,
            timeout=timeout,
            transport=transport,
            headers={
                "apikey": anon_key,
                "Content-Type": "application/json",
                "Accept": "application/json",
            },
        )

    def _headers(self, access_token: Optional[str] = None, **extra: str) -> dict[str, str]:
        headers = {"Authorization": f"Bearer {access_token or self.anon_key}"}
        headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        access_token: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
        json: Any = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """Send a request and return the decoded JSON body (None when empty)."""
        try:
            response = self.client.request(
                method,
                path,
                params=params,
                json=json,
                headers={**self._headers(access_token), **(headers or {})},
            )
        except httpx.TimeoutException as e:
            raise SupabaseError(f"{method} {path} timed out") from e
        except httpx.HTTPError as e:
            raise SupabaseError(f"{method} {path} failed: {e}") from e

        if response.status_code >= 400:
            detail = response.text
            try:
                body = response.json()
                detail = body.get("message") or body.get("msg") or body.get("error_description") or detail
            except ValueError:
                pass
            raise SupabaseError(
                f"{method} {path} returned {response.status_code}: {detail}",
                status_code=response.status_code,
            )

        if not response.content:
            return None
        return response.json()

    # ── Tables ──────────────────────────────────────

    def select(
        self,
        table: str,
        filters: Optional[dict[str, str]] = None,
        columns: str = "*",
        order: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """
        Read rows from a table.

        Args:
            table: Table name
            filters: PostgREST filters, e.g. {"category_id": "eq.3"}
            columns: Select expression, e.g. "*,categories(*)"
            order: Order expression, e.g. "name"

        Returns:
            List of row dicts
        """
        params: dict[str, str] = {"select": columns}
        if filters:
            params.update(filters)
        if order:
            params["order"] = order
        return self._request("GET", f"/rest/v1/{table}", params=params) or []

    def insert(
        self, table: str, row: dict[str, Any], access_token: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Insert a row and return the stored representation."""
        return self._request(
            "POST",
            f"/rest/v1/{table}",
            access_token=access_token,
            json=row,
            headers={"Prefer": "return=representation"},
        ) or []

    def update(
        self,
        table: str,
        filters: dict[str, str],
        values: dict[str, Any],
        access_token: Optional[str] = None,
    ) -> list[dict[str, Any]]:
        """Update matching rows and return them."""
        return self._request(
            "PATCH",
            f"/rest/v1/{table}",
            access_token=access_token,
            params=filters,
            json=values,
            headers={"Prefer": "return=representation"},
        ) or []

    def delete(
        self, table: str, filters: dict[str, str], access_token: Optional[str] = None
    ) -> list[dict[str, Any]]:
        """Delete matching rows and return them."""
        return self._request(
            "DELETE",
            f"/rest/v1/{table}",
            access_token=access_token,
            params=filters,
            headers={"Prefer": "return=representation"},
        ) or []

    # ── Auth ────────────────────────────────────────

    def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        """Exchange email and password for a session (access token, refresh token, user)."""
        return self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json={"email": email, "password": password},
        )

    def sign_up(self, email: str, password: str, full_name: str) -> dict[str, Any]:
        """Register a new account with the full name stored in user metadata."""
        return self._request(
            "POST",
            "/auth/v1/signup",
            json={"email": email, "password": password, "data": {"full_name": full_name}},
        )

    def sign_out(self, access_token: str) -> None:
        """Revoke the session behind an access token."""
        self._request("POST", "/auth/v1/logout", access_token=access_token)

    def get_user(self, access_token: str) -> dict[str, Any]:
        """Fetch the user behind an access token."""
        return self._request("GET", "/auth/v1/user", access_token=access_token)

    def close(self) -> None:
        """Close the HTTP client."""
        self.client.close()
