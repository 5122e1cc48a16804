"""Async client for the Catalogue Console API.

Used by the CLI and by :class:`~catalogue_console.forms.editor.FormEditor`
for auto-save. Every request carries the CSRF header, so the same client
works with an API key or a session cookie.

Usage:
    async with ConsoleClient("http://localhost:8080", api_key=key) as client:
        furnishers = await client.list_furnishers()
"""

import logging
from typing import Any, Optional

import httpx

from catalogue_console.auth.api_key import CSRF_HEADER, CSRF_HEADER_VALUE
from catalogue_console.forms.schema import unflatten_form_data

log = logging.getLogger(__name__)

# Server-computed keys that are not sent back on re-import
_COMPUTED_KEYS = frozenset({
    "stats", "dataTypes", "attributes", "effectiveRegionsCovered",
    "createdAt", "updatedAt", "createdBy", "updatedBy",
})


class ConsoleAPIError(Exception):
    """Raised when the API answers with an error status (or cannot be reached).

    ``status_code`` is 0 for network failures.
    """

    def __init__(self, status_code: int, message: str):
        super().__init__(f"HTTP {status_code}: {message}" if status_code else message)
        self.status_code = status_code
        self.message = message


def _strip(record: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in record.items() if k not in _COMPUTED_KEYS}


class ConsoleClient:
    """Thin async wrapper over the REST API.

    Args:
        base_url: Service root, e.g. ``http://localhost:8080``
        api_key: Sent as ``X-API-Key`` when given
        transport: Optional httpx transport (ASGI app or mock in tests)
        timeout: Request timeout in seconds
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        timeout: float = 30.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self._transport = transport
        self._timeout = timeout
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "ConsoleClient":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {CSRF_HEADER: CSRF_HEADER_VALUE}
            if self.api_key:
                headers["X-API-Key"] = self.api_key
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                headers=headers,
                transport=self._transport,
                timeout=self._timeout,
            )
        return self._client

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def _request(
        self,
        method: str,
        path: str,
        json: Any = None,
        params: dict[str, Any] | None = None,
    ) -> Any:
        client = await self._get_client()
        if params:
            params = {k: v for k, v in params.items() if v is not None}
        try:
            response = await client.request(method, path, json=json, params=params or None)
        except httpx.RequestError as e:
            raise ConsoleAPIError(0, f"Network error calling {method} {path}: {e}") from e

        if response.is_error:
            try:
                detail = response.json().get("detail")
            except ValueError:
                detail = None
            raise ConsoleAPIError(response.status_code, str(detail or response.reason_phrase))
        return response.json()

    # -------------------------------------------------------------------------
    # Furnisher catalogue (v1)
    # -------------------------------------------------------------------------

    async def list_furnishers(self) -> list[dict]:
        return await self._request("GET", "/api/catalogue/furnishers")

    async def get_furnisher(self, furnisher_id: str) -> dict:
        return await self._request("GET", f"/api/catalogue/furnishers/{furnisher_id}")

    async def create_furnisher(self, furnisher: dict) -> dict:
        return await self._request("POST", "/api/catalogue/furnishers", json=furnisher)

    async def update_furnisher(self, furnisher_id: str, changes: dict) -> dict:
        return await self._request("PUT", f"/api/catalogue/furnishers/{furnisher_id}", json=changes)

    async def delete_furnisher(self, furnisher_id: str) -> dict:
        return await self._request("DELETE", f"/api/catalogue/furnishers/{furnisher_id}")

    async def list_data_types(self, furnisher_id: Optional[str] = None) -> list[dict]:
        return await self._request(
            "GET", "/api/catalogue/data-types", params={"furnisherId": furnisher_id}
        )

    async def get_data_type(self, data_type_id: str) -> dict:
        return await self._request("GET", f"/api/catalogue/data-types/{data_type_id}")

    async def create_data_type(self, data_type: dict) -> dict:
        return await self._request("POST", "/api/catalogue/data-types", json=data_type)

    async def update_data_type(self, data_type_id: str, changes: dict) -> dict:
        return await self._request("PUT", f"/api/catalogue/data-types/{data_type_id}", json=changes)

    async def delete_data_type(self, data_type_id: str) -> dict:
        return await self._request("DELETE", f"/api/catalogue/data-types/{data_type_id}")

    async def get_attribute(self, attribute_id: str) -> dict:
        return await self._request("GET", f"/api/catalogue/attributes/{attribute_id}")

    async def create_attribute(self, attribute: dict) -> dict:
        return await self._request("POST", "/api/catalogue/attributes", json=attribute)

    async def bulk_create_attributes(self, data_type_id: str, attributes: list[dict]) -> dict:
        return await self._request(
            "POST",
            "/api/catalogue/attributes/bulk",
            json={"dataTypeId": data_type_id, "attributes": attributes},
        )

    async def update_attribute(self, attribute_id: str, changes: dict) -> dict:
        return await self._request("PUT", f"/api/catalogue/attributes/{attribute_id}", json=changes)

    async def delete_attribute(self, attribute_id: str) -> dict:
        return await self._request("DELETE", f"/api/catalogue/attributes/{attribute_id}")

    async def search_catalogue(self, query: str) -> dict:
        return await self._request("GET", "/api/catalogue/search", params={"q": query})

    async def export_catalogue(self) -> dict:
        return await self._request("GET", "/api/catalogue/export")

    async def catalogue_stats(self) -> dict:
        return await self._request("GET", "/api/catalogue/stats")

    async def reseed_catalogue(self, admin_secret: str) -> dict:
        return await self._request(
            "POST", "/api/catalogue/admin/reseed", json={"adminSecret": admin_secret}
        )

    # -------------------------------------------------------------------------
    # Categories
    # -------------------------------------------------------------------------

    async def list_categories(self) -> list[dict]:
        return await self._request("GET", "/api/catalogue/categories")

    async def create_category(self, category: dict) -> dict:
        return await self._request("POST", "/api/catalogue/categories", json=category)

    async def update_category(self, category_id: str, changes: dict) -> dict:
        return await self._request("PUT", f"/api/catalogue/categories/{category_id}", json=changes)

    async def delete_category(self, category_id: str) -> dict:
        return await self._request("DELETE", f"/api/catalogue/categories/{category_id}")

    # -------------------------------------------------------------------------
    # Vocabulary dictionary (v2)
    # -------------------------------------------------------------------------

    async def list_vocab_data_types(
        self, category: Optional[str] = None, search: Optional[str] = None
    ) -> list[dict]:
        return await self._request(
            "GET", "/api/dictionary/data-types", params={"category": category, "search": search}
        )

    async def get_vocab_data_type(self, data_type_id: str) -> dict:
        return await self._request("GET", f"/api/dictionary/data-types/{data_type_id}")

    async def create_vocab_data_type(self, data_type: dict) -> dict:
        return await self._request("POST", "/api/dictionary/data-types", json=data_type)

    async def update_vocab_data_type(self, data_type_id: str, changes: dict) -> dict:
        return await self._request("PUT", f"/api/dictionary/data-types/{data_type_id}", json=changes)

    async def delete_vocab_data_type(self, data_type_id: str) -> dict:
        return await self._request("DELETE", f"/api/dictionary/data-types/{data_type_id}")

    async def add_property(self, data_type_id: str, prop: dict) -> dict:
        return await self._request(
            "POST", f"/api/dictionary/data-types/{data_type_id}/properties", json=prop
        )

    async def update_property(self, data_type_id: str, property_id: str, changes: dict) -> dict:
        return await self._request(
            "PUT",
            f"/api/dictionary/data-types/{data_type_id}/properties/{property_id}",
            json=changes,
        )

    async def delete_property(self, data_type_id: str, property_id: str) -> dict:
        return await self._request(
            "DELETE", f"/api/dictionary/data-types/{data_type_id}/properties/{property_id}"
        )

    async def add_mapping(self, data_type_id: str, property_id: str, mapping: dict) -> dict:
        return await self._request(
            "POST",
            f"/api/dictionary/data-types/{data_type_id}/properties/{property_id}/mappings",
            json=mapping,
        )

    async def update_mapping(
        self, data_type_id: str, property_id: str, entity_id: str, changes: dict
    ) -> dict:
        return await self._request(
            "PUT",
            f"/api/dictionary/data-types/{data_type_id}/properties/{property_id}/mappings/{entity_id}",
            json=changes,
        )

    async def delete_mapping(self, data_type_id: str, property_id: str, entity_id: str) -> dict:
        return await self._request(
            "DELETE",
            f"/api/dictionary/data-types/{data_type_id}/properties/{property_id}/mappings/{entity_id}",
        )

    async def bulk_add_mapping(self, data_type_id: str, property_ids: list[str], mapping: dict) -> dict:
        return await self._request(
            "POST",
            f"/api/dictionary/data-types/{data_type_id}/properties/bulk-add-mapping",
            json={"propertyIds": property_ids, "mapping": mapping},
        )

    async def bulk_remove_mapping(self, data_type_id: str, property_ids: list[str], entity_id: str) -> dict:
        return await self._request(
            "POST",
            f"/api/dictionary/data-types/{data_type_id}/properties/bulk-remove-mapping",
            json={"propertyIds": property_ids, "entityId": entity_id},
        )

    async def add_source(self, data_type_id: str, source: dict) -> dict:
        return await self._request(
            "POST", f"/api/dictionary/data-types/{data_type_id}/sources", json=source
        )

    async def update_source(self, data_type_id: str, entity_id: str, changes: dict) -> dict:
        return await self._request(
            "PUT", f"/api/dictionary/data-types/{data_type_id}/sources/{entity_id}", json=changes
        )

    async def delete_source(self, data_type_id: str, entity_id: str) -> dict:
        return await self._request(
            "DELETE", f"/api/dictionary/data-types/{data_type_id}/sources/{entity_id}"
        )

    async def search_dictionary(self, query: str) -> dict:
        return await self._request("GET", "/api/dictionary/search", params={"q": query})

    async def export_dictionary(self) -> dict:
        return await self._request("GET", "/api/dictionary/export")

    async def dictionary_stats(self) -> dict:
        return await self._request("GET", "/api/dictionary/stats")

    async def reseed_dictionary(self, admin_secret: str) -> dict:
        return await self._request(
            "POST", "/api/dictionary/admin/reseed", json={"adminSecret": admin_secret}
        )

    # -------------------------------------------------------------------------
    # Forms
    # -------------------------------------------------------------------------

    async def list_forms(self) -> list[dict]:
        return await self._request("GET", "/api/forms")

    async def get_form(self, form_id: str) -> dict:
        return await self._request("GET", f"/api/forms/{form_id}")

    async def create_form(self, form: dict) -> dict:
        return await self._request("POST", "/api/forms", json=form)

    async def update_form(self, form_id: str, changes: dict) -> dict:
        return await self._request("PUT", f"/api/forms/{form_id}", json=changes)

    async def delete_form(self, form_id: str) -> dict:
        return await self._request("DELETE", f"/api/forms/{form_id}")

    async def publish_form(self, form_id: str) -> dict:
        return await self._request("PUT", f"/api/forms/{form_id}/publish")

    async def unpublish_form(self, form_id: str) -> dict:
        return await self._request("PUT", f"/api/forms/{form_id}/unpublish")

    async def clone_form(self, form_id: str) -> dict:
        return await self._request("POST", f"/api/forms/{form_id}/clone")

    async def submit_form(
        self,
        form_id: str,
        field_values: dict,
        is_test: bool = False,
        proof_presentations: Any = None,
    ) -> dict:
        """Submit a form. Dot-path keys such as ``"contact.email"`` are nested first."""
        return await self._request(
            "POST",
            f"/api/forms/{form_id}/submissions",
            json={
                "fieldValues": unflatten_form_data(field_values),
                "isTest": is_test,
                "proofPresentations": proof_presentations,
            },
        )

    # -------------------------------------------------------------------------
    # Import
    # -------------------------------------------------------------------------

    async def _create_or_skip(self, create, record: dict) -> bool:
        """True when created, False when the id (or name) already exists."""
        try:
            await create(record)
        except ConsoleAPIError as e:
            if e.status_code != 409:
                raise
            log.info(f"Import: skipped existing {record.get('id') or record.get('name')}")
            return False
        return True

    async def import_catalogue(self, export: dict) -> dict[str, dict[str, int]]:
        """Replay a catalogue export against this server.

        Categories first, then each furnisher, its data types and (in one bulk
        call per data type) their attributes. Records whose id already exists
        are skipped.

        Returns:
            ``{collection: {"created": n, "skipped": m}}``
        """
        counts = {
            key: {"created": 0, "skipped": 0}
            for key in ("categories", "furnishers", "dataTypes", "attributes")
        }

        def tally(key: str, created: bool) -> None:
            counts[key]["created" if created else "skipped"] += 1

        for category in export.get("categories") or []:
            tally("categories", await self._create_or_skip(self.create_category, category))

        for furnisher in export.get("furnishers") or []:
            tally("furnishers", await self._create_or_skip(self.create_furnisher, _strip(furnisher)))

            for data_type in furnisher.get("dataTypes") or []:
                payload = {**_strip(data_type), "furnisherId": furnisher["id"]}
                tally("dataTypes", await self._create_or_skip(self.create_data_type, payload))

                attributes = [_strip(a) for a in data_type.get("attributes") or []]
                if attributes:
                    result = await self.bulk_create_attributes(data_type["id"], attributes)
                    counts["attributes"]["created"] += result["created"]
                    counts["attributes"]["skipped"] += result["skipped"]

        log.info(f"Import complete: {counts}")
        return counts
