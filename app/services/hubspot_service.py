"""
HubSpot CRM Service
Thin async client over the HubSpot CRM v3 objects and v4 associations APIs.
Retries rate-limited calls with exponential backoff; everything else fails fast.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

from ..config import (
    HS_PRIVATE_APP_TOKEN,
    HUBSPOT_BASE_URL,
    HUBSPOT_MAX_RETRIES,
    HUBSPOT_RETRY_DELAY,
    HUBSPOT_TIMEOUT,
)
from .hubspot_objects import DEFAULT_OBJECT_TYPES, HubSpotObjectTypes

logger = logging.getLogger(__name__)

# HubSpot limits for a single batch request
MAX_BATCH_READ = 100
MAX_BATCH_ASSOCIATIONS = 1000


class HubSpotAPIError(Exception):
    """Uniform error for any non-2xx HubSpot response or transport failure"""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message

    def __repr__(self) -> str:
        return f"HubSpotAPIError(status={self.status}, message={self.message!r})"


def _error_message(response: httpx.Response) -> str:
    """Extract HubSpot's error message, falling back to the raw body"""
    try:
        payload = response.json()
        if isinstance(payload, dict) and payload.get("message"):
            return payload["message"]
    except ValueError:
        pass
    return response.text or f"HubSpot API returned {response.status_code}"


def _stringify(properties: dict[str, Any]) -> dict[str, str]:
    """HubSpot stores every property as a string"""
    result = {}
    for key, value in properties.items():
        if isinstance(value, bool):
            result[key] = "true" if value else "false"
        elif value is None:
            result[key] = ""
        else:
            result[key] = str(value)
    return result


def _chunks(items: list, size: int) -> list[list]:
    return [items[i : i + size] for i in range(0, len(items), size)]


class HubSpotService:
    """Service for interacting with the HubSpot CRM API"""

    def __init__(
        self,
        token: Optional[str] = None,
        object_types: HubSpotObjectTypes = DEFAULT_OBJECT_TYPES,
        base_url: str = HUBSPOT_BASE_URL,
        max_retries: int = HUBSPOT_MAX_RETRIES,
        retry_delay: float = HUBSPOT_RETRY_DELAY,
        timeout: float = HUBSPOT_TIMEOUT,
    ):
        self.token = token or HS_PRIVATE_APP_TOKEN
        if not self.token:
            raise ValueError("HS_PRIVATE_APP_TOKEN environment variable is required")

        self.types = object_types
        self.base_url = base_url.rstrip("/")
        self.max_retries = max_retries
        self.retry_delay = retry_delay
        self.timeout = timeout

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Content-Type": "application/json",
        }

    async def api_call(
        self,
        method: str,
        path: str,
        data: Optional[Any] = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """
        Make an API call, retrying on HTTP 429 with exponential backoff.

        Up to ``max_retries`` attempts are made. The delay before attempt n+1 is
        ``retry_delay * 2 ** (n - 1)``. Any other non-2xx response raises
        HubSpotAPIError immediately with HubSpot's status and message.
        """
        url = path if path.startswith("http") else f"{self.base_url}{path}"

        attempt = 1
        while True:
            try:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await client.request(
                        method,
                        url,
                        json=data,
                        params=params,
                        headers=self._headers(),
                    )
            except httpx.HTTPError as e:
                logger.error(f"❌ HubSpot transport error on {method} {path}: {e}")
                raise HubSpotAPIError(500, str(e) or "HubSpot request failed") from e

            if response.status_code == 429 and attempt < self.max_retries:
                delay = self.retry_delay * (2 ** (attempt - 1))
                logger.warning(
                    f"🔄 Rate limited on {method} {path}, retrying after {delay}s "
                    f"(attempt {attempt + 1}/{self.max_retries})"
                )
                await asyncio.sleep(delay)
                attempt += 1
                continue

            if response.status_code >= 400:
                message = _error_message(response)
                logger.error(
                    f"❌ HubSpot API error: {method} {path} -> {response.status_code}: {message}"
                )
                raise HubSpotAPIError(response.status_code, message)

            if response.status_code == 204 or not response.content:
                return None
            return response.json()

    # ------------------------------------------------------------------
    # Objects
    # ------------------------------------------------------------------

    async def search_objects(
        self,
        object_type: str,
        filters: Optional[list[dict]] = None,
        properties: Optional[list[str]] = None,
        sorts: Optional[list[dict]] = None,
        limit: int = 10,
        filter_groups: Optional[list[dict]] = None,
    ) -> dict[str, Any]:
        """Search objects with filter groups (filters in one group are ANDed)"""
        payload: dict[str, Any] = {
            "filterGroups": filter_groups if filter_groups is not None else [{"filters": filters or []}],
            "limit": limit,
        }
        if properties:
            payload["properties"] = properties
        if sorts:
            payload["sorts"] = sorts

        result = await self.api_call("POST", f"/crm/v3/objects/{object_type}/search", payload)
        return {"total": (result or {}).get("total", 0), "results": (result or {}).get("results", [])}

    async def get_object(
        self,
        object_type: str,
        object_id: str,
        properties: Optional[list[str]] = None,
        associations: Optional[list[str]] = None,
    ) -> Optional[dict[str, Any]]:
        """Read one object; returns None when HubSpot reports it missing"""
        params = {}
        if properties:
            params["properties"] = ",".join(properties)
        if associations:
            params["associations"] = ",".join(associations)

        try:
            return await self.api_call(
                "GET", f"/crm/v3/objects/{object_type}/{object_id}", params=params or None
            )
        except HubSpotAPIError as e:
            if e.status == 404:
                return None
            raise

    async def _post_chunks(self, path: str, payloads: list[Any]) -> list[Any]:
        """
        POST one payload per chunk concurrently.

        Waits for every chunk, then re-raises the first failure.
        """
        responses = await asyncio.gather(
            *[self.api_call("POST", path, payload) for payload in payloads],
            return_exceptions=True,
        )
        for response in responses:
            if isinstance(response, BaseException):
                raise response
        return responses

    async def batch_read_objects(
        self, object_type: str, ids: list[str], properties: Optional[list[str]] = None
    ) -> list[dict[str, Any]]:
        """
        Batch read objects in chunks of 100.

        HubSpot omits archived ids from the results, so the returned list only
        holds objects that still resolve. A failing chunk raises instead of
        silently shrinking the result.
        """
        if not ids:
            return []

        chunks = _chunks([str(i) for i in ids], MAX_BATCH_READ)
        logger.debug(f"📦 Batch reading {len(ids)} {object_type} objects in {len(chunks)} chunk(s)")

        responses = await self._post_chunks(
            f"/crm/v3/objects/{object_type}/batch/read",
            [{"inputs": [{"id": i} for i in chunk], "properties": properties or []} for chunk in chunks],
        )
        results = []
        for response in responses:
            results.extend((response or {}).get("results", []))
        return results

    async def batch_update_objects(self, object_type: str, updates: list[dict[str, Any]]) -> list[dict[str, Any]]:
        """Batch update ``[{"id", "properties"}]`` in chunks of 100"""
        if not updates:
            return []

        inputs = [{"id": str(u["id"]), "properties": _stringify(u["properties"])} for u in updates]
        chunks = _chunks(inputs, MAX_BATCH_READ)
        logger.info(f"✏️ Batch updating {len(inputs)} {object_type} objects in {len(chunks)} chunk(s)")

        responses = await self._post_chunks(
            f"/crm/v3/objects/{object_type}/batch/update", [{"inputs": chunk} for chunk in chunks]
        )
        results = []
        for response in responses:
            results.extend((response or {}).get("results", []))
        return results

    async def create_object(
        self,
        object_type: str,
        properties: dict[str, Any],
        associations: Optional[list[dict]] = None,
    ) -> dict[str, Any]:
        payload: dict[str, Any] = {"properties": _stringify(properties)}
        if associations:
            payload["associations"] = associations
        return await self.api_call("POST", f"/crm/v3/objects/{object_type}", payload)

    async def update_object(
        self, object_type: str, object_id: str, properties: dict[str, Any]
    ) -> dict[str, Any]:
        """Partial update (PATCH) of object properties"""
        return await self.api_call(
            "PATCH",
            f"/crm/v3/objects/{object_type}/{object_id}",
            {"properties": _stringify(properties)},
        )

    async def archive_object(self, object_type: str, object_id: str) -> None:
        """Archive (hard delete) an object"""
        await self.api_call("DELETE", f"/crm/v3/objects/{object_type}/{object_id}")

    # ------------------------------------------------------------------
    # Associations
    # ------------------------------------------------------------------

    async def create_association(
        self, from_type: str, from_id: str, to_type: str, to_id: str
    ) -> Any:
        type_id = self.types.association_type_id(from_type, to_type)
        logger.info(
            f"🔗 Creating association: {from_type}({from_id}) → {to_type}({to_id}) [type {type_id}]"
        )
        return await self.api_call(
            "PUT",
            f"/crm/v4/objects/{from_type}/{from_id}/associations/{to_type}/{to_id}",
            [{"associationCategory": "USER_DEFINED", "associationTypeId": type_id}],
        )

    async def remove_association(
        self, from_type: str, from_id: str, to_type: str, to_id: str
    ) -> None:
        await self.api_call(
            "DELETE", f"/crm/v4/objects/{from_type}/{from_id}/associations/{to_type}/{to_id}"
        )

    async def list_associations(
        self, from_type: str, from_id: str, to_type: str, limit: int = 500
    ) -> list[str]:
        """List ids of every ``to_type`` object associated to one object, following paging"""
        ids: list[str] = []
        after = None
        while True:
            params: dict[str, Any] = {"limit": limit}
            if after:
                params["after"] = after
            result = await self.api_call(
                "GET",
                f"/crm/v4/objects/{from_type}/{from_id}/associations/{to_type}",
                params=params,
            )
            for assoc in (result or {}).get("results", []):
                ids.append(str(assoc["toObjectId"]))

            paging = (result or {}).get("paging") or {}
            after = (paging.get("next") or {}).get("after")
            if not after:
                return ids

    async def batch_read_associations(
        self, from_type: str, from_ids: list[str], to_type: str
    ) -> dict[str, list[str]]:
        """
        Associated ``to_type`` ids for many objects at once, chunked by 1000.

        Objects without associations are absent from HubSpot's response and
        map to an empty list here.
        """
        if not from_ids:
            return {}

        ids = [str(i) for i in from_ids]
        chunks = _chunks(ids, MAX_BATCH_ASSOCIATIONS)
        logger.debug(
            f"🔗 Batch reading {from_type} → {to_type} associations for {len(ids)} objects "
            f"in {len(chunks)} chunk(s)"
        )

        responses = await self._post_chunks(
            f"/crm/v4/associations/{from_type}/{to_type}/batch/read",
            [{"inputs": [{"id": i} for i in chunk]} for chunk in chunks],
        )
        associated: dict[str, list[str]] = {i: [] for i in ids}
        for response in responses:
            for row in (response or {}).get("results", []):
                from_id = str((row.get("from") or {}).get("id"))
                associated.setdefault(from_id, []).extend(
                    str(to["toObjectId"]) for to in row.get("to") or []
                )
        return associated

    # ------------------------------------------------------------------
    # Notes
    # ------------------------------------------------------------------

    async def create_note(self, body: str, to_id: str, association_type_id: int) -> dict[str, Any]:
        """Create a timeline note associated to one record"""
        payload = {
            "properties": {
                "hs_note_body": body,
                "hs_timestamp": datetime.now(timezone.utc).isoformat(),
            },
            "associations": [
                {
                    "to": {"id": str(to_id)},
                    "types": [
                        {
                            "associationCategory": "HUBSPOT_DEFINED",
                            "associationTypeId": association_type_id,
                        }
                    ],
                }
            ],
        }
        return await self.api_call("POST", f"/crm/v3/objects/{self.types.notes}", payload)


# Shared client, created on first use
hubspot_service: Optional[HubSpotService] = None


def get_hubspot_service() -> HubSpotService:
    """FastAPI dependency returning the shared HubSpot client"""
    global hubspot_service
    if hubspot_service is None:
        hubspot_service = HubSpotService()
    return hubspot_service
