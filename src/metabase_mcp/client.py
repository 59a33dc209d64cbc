"""Async Metabase REST API client.

Handles authentication (API key, session token, or username/password login)
and the raw HTTP calls behind every tool. One httpx.AsyncClient is shared for
the life of the process.
"""

import asyncio
import logging
from typing import Any, Optional

import httpx

from .config import MetabaseConfig
from .errors import MetabaseAPIError

logger = logging.getLogger("metabase-mcp")

SESSION_ENDPOINT = "/api/session"

# Layout for cards appended to a dashboard: one full-width card per row
DASHCARD_WIDTH = 12
DASHCARD_HEIGHT = 8


def _error_message(resp: httpx.Response) -> str:
    """Pull a readable message out of a Metabase error response."""
    try:
        data = resp.json()
    except ValueError:
        return resp.text.strip() or resp.reason_phrase

    if isinstance(data, dict):
        if data.get("message"):
            return str(data["message"])
        if data.get("errors"):
            errors = data["errors"]
            if isinstance(errors, dict):
                return "; ".join(f"{k}: {v}" for k, v in errors.items())
            return str(errors)
    if isinstance(data, str):
        return data
    return resp.reason_phrase


def _raise_for_metabase_error(resp: httpx.Response, context: str = "") -> None:
    """Raise MetabaseAPIError on a non-2xx response."""
    if resp.is_success:
        return
    message = _error_message(resp)
    where = f" ({context})" if context else ""
    raise MetabaseAPIError(
        f"Metabase API error{where}: {resp.status_code} {message}",
        status_code=resp.status_code,
        endpoint=context,
    )


def _parse_body(resp: httpx.Response) -> Any:
    if not resp.content:
        return None
    content_type = resp.headers.get("content-type", "")
    if "json" in content_type:
        return resp.json()
    # Exports (csv, xlsx) and plain-text endpoints
    return resp.text


class MetabaseClient:
    """Thin async wrapper over the Metabase REST API."""

    def __init__(self, config: MetabaseConfig, transport: Optional[httpx.AsyncBaseTransport] = None):
        self.config = config
        self._session_token: Optional[str] = None
        self._login_lock = asyncio.Lock()

        # httpx sets Content-Type per request (json body or multipart)
        headers: dict[str, str] = {}
        if config.api_key:
            logger.info("Using Metabase API key for authentication")
            headers["X-API-Key"] = config.api_key
        elif config.session_token:
            logger.info("Using Metabase session token for authentication")
            self._session_token = config.session_token
            headers["X-Metabase-Session"] = config.session_token
        elif config.username and config.password:
            logger.info("Using Metabase username/password for authentication")
        else:
            raise ValueError("Metabase authentication credentials not provided or incomplete")

        self._http = httpx.AsyncClient(
            base_url=config.url,
            headers=headers,
            timeout=httpx.Timeout(config.timeout),
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    async def __aenter__(self) -> "MetabaseClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    # -------------------------------------------------------------------------
    # Authentication
    # -------------------------------------------------------------------------

    async def _ensure_authenticated(self) -> None:
        if self.config.api_key or self._session_token:
            return
        async with self._login_lock:
            # Another task may have logged in while we waited
            if self._session_token:
                return
            logger.info("Authenticating with Metabase using username/password...")
            resp = await self._http.post(
                SESSION_ENDPOINT,
                json={"username": self.config.username, "password": self.config.password},
            )
            try:
                _raise_for_metabase_error(resp, "login")
            except MetabaseAPIError as e:
                logger.error(f"Authentication failed: {e}")
                raise MetabaseAPIError(
                    "Failed to authenticate with Metabase", status_code=e.status_code, endpoint=SESSION_ENDPOINT
                ) from e
            token = resp.json().get("id")
            if not token:
                raise MetabaseAPIError("Metabase login response did not include a session id", endpoint=SESSION_ENDPOINT)
            self._session_token = token
            self._http.headers["X-Metabase-Session"] = token
            logger.info("Successfully authenticated with Metabase")

    async def health(self) -> dict:
        """Check Metabase's unauthenticated health endpoint."""
        resp = await self._http.get("/api/health")
        _raise_for_metabase_error(resp, "GET /api/health")
        return resp.json()

    # -------------------------------------------------------------------------
    # Generic request
    # -------------------------------------------------------------------------

    async def api_call(
        self,
        method: str,
        endpoint: str,
        *,
        params: Optional[dict] = None,
        json: Any = None,
        files: Optional[dict] = None,
    ) -> Any:
        """Issue one request against the Metabase API and return the decoded body.

        Args:
            method: HTTP method (GET, POST, PUT, DELETE).
            endpoint: Path starting with /api/.
            params: Query parameters. None values are dropped; lists repeat the key.
            json: JSON request body.
            files: Multipart upload fields (name -> (filename, content, mime type)).

        Raises:
            MetabaseAPIError: On a non-2xx response.
        """
        await self._ensure_authenticated()

        clean_params = None
        if params:
            clean_params = {k: v for k, v in params.items() if v is not None}

        request_kwargs: dict[str, Any] = {"params": clean_params}
        if files is not None:
            request_kwargs["files"] = files
        elif json is not None:
            request_kwargs["json"] = json

        logger.debug(f"{method} {endpoint}")
        resp = await self._http.request(method, endpoint, **request_kwargs)
        _raise_for_metabase_error(resp, f"{method} {endpoint}")
        return _parse_body(resp)

    # -------------------------------------------------------------------------
    # Dashboards
    # -------------------------------------------------------------------------

    async def get_dashboards(self) -> list[dict]:
        return await self.api_call("GET", "/api/dashboard")

    async def get_dashboard(self, dashboard_id: int) -> dict:
        return await self.api_call("GET", f"/api/dashboard/{dashboard_id}")

    async def delete_dashboard(self, dashboard_id: int, hard_delete: bool = False) -> None:
        """Archive a dashboard, or delete it permanently with hard_delete."""
        if hard_delete:
            await self.api_call("DELETE", f"/api/dashboard/{dashboard_id}")
        else:
            await self.api_call("PUT", f"/api/dashboard/{dashboard_id}", json={"archived": True})

    async def add_card_to_dashboard(self, dashboard_id: int, card: dict) -> dict:
        """Append a card below the existing dashcards, keeping everything else intact.

        New dashcards carry id -1, which Metabase treats as "create".
        """
        dashboard = await self.get_dashboard(dashboard_id)
        existing = dashboard.get("dashcards") or []

        new_dashcard = {
            "id": -1,
            "card_id": card["card_id"],
            "row": card.get("row", len(existing) * DASHCARD_HEIGHT),
            "col": card.get("col", 0),
            "size_x": card.get("size_x") or DASHCARD_WIDTH,
            "size_y": card.get("size_y") or DASHCARD_HEIGHT,
            "parameter_mappings": card.get("parameter_mappings") or [],
            "series": card.get("series") or [],
        }
        payload = {**dashboard, "dashcards": [*existing, new_dashcard]}
        return await self.api_call("PUT", f"/api/dashboard/{dashboard_id}", json=payload)

    async def update_dashboard_cards(self, dashboard_id: int, cards: list[dict]) -> dict:
        """Replace all dashcards on a dashboard."""
        dashboard = await self.get_dashboard(dashboard_id)
        payload = {**dashboard, "dashcards": cards}
        return await self.api_call("PUT", f"/api/dashboard/{dashboard_id}", json=payload)

    async def remove_cards_from_dashboard(self, dashboard_id: int, card_ids: list[int]) -> dict:
        dashboard = await self.get_dashboard(dashboard_id)
        remaining = [dc for dc in dashboard.get("dashcards") or [] if dc.get("card_id") not in card_ids]
        payload = {**dashboard, "dashcards": remaining}
        return await self.api_call("PUT", f"/api/dashboard/{dashboard_id}", json=payload)

    # -------------------------------------------------------------------------
    # Cards
    # -------------------------------------------------------------------------

    async def get_cards(self, f: Optional[str] = None, model_id: Optional[int] = None) -> list[dict]:
        return await self.api_call("GET", "/api/card", params={"f": f, "model_id": model_id})

    async def delete_card(self, card_id: int, hard_delete: bool = False) -> None:
        if hard_delete:
            await self.api_call("DELETE", f"/api/card/{card_id}")
        else:
            await self.api_call("PUT", f"/api/card/{card_id}", json={"archived": True})

    async def execute_card(
        self,
        card_id: int,
        ignore_cache: bool = False,
        collection_preview: Optional[bool] = None,
        dashboard_id: Optional[int] = None,
    ) -> dict:
        body: dict[str, Any] = {"ignore_cache": ignore_cache}
        if collection_preview is not None:
            body["collection_preview"] = collection_preview
        if dashboard_id is not None:
            body["dashboard_id"] = dashboard_id
        return await self.api_call("POST", f"/api/card/{card_id}/query", json=body)

    # -------------------------------------------------------------------------
    # Databases and queries
    # -------------------------------------------------------------------------

    async def get_databases(self) -> Any:
        return await self.api_call("GET", "/api/database")

    async def execute_query(self, database_id: int, query: str, parameters: Optional[list] = None) -> dict:
        """Run a native SQL query through /api/dataset."""
        body = {
            "type": "native",
            "native": {"query": query, "template_tags": {}},
            "parameters": parameters or [],
            "database": database_id,
        }
        return await self.api_call("POST", "/api/dataset", json=body)

    # -------------------------------------------------------------------------
    # Collections, users, permissions
    # -------------------------------------------------------------------------

    async def get_collections(self, archived: bool = False) -> list[dict]:
        return await self.api_call("GET", "/api/collection", params={"archived": True} if archived else None)

    async def get_users(self, include_deactivated: bool = False) -> Any:
        params = {"include_deactivated": True} if include_deactivated else None
        return await self.api_call("GET", "/api/user", params=params)

    async def get_permission_groups(self) -> list[dict]:
        return await self.api_call("GET", "/api/permissions/group")

    # -------------------------------------------------------------------------
    # Tables
    # -------------------------------------------------------------------------

    async def upload_csv(self, endpoint: str, field_name: str, filename: str, content: str) -> Any:
        """Send CSV text as a multipart upload."""
        files = {field_name: (filename, content.encode("utf-8"), "text/csv")}
        return await self.api_call("POST", endpoint, files=files)
