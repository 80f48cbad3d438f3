"""Entity and media stores backed by the Strapi REST API.

Both stores share a ``StrapiRestClient`` that adds authentication, maps
error responses to the exception hierarchy and retries server and connection
errors. Strapi v4 (``{"id", "attributes"}``) and v5 (flat, ``documentId``)
response shapes are both accepted.
"""

import json
import logging
from pathlib import Path
from typing import Any

import httpx
from tenacity import (
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from ..exceptions import ConnectionError as StoreConnectionError
from ..exceptions import ServerError, StoreRejectedError
from ..models.config import ConfigFactory, StrapiConfig
from ..models.references import StoredEntity, StoredFile, UploadMetadata
from ..models.schema import CollectionSchema
from ..utils.uid import uid_to_endpoint

logger = logging.getLogger(__name__)


def _flatten_entity(item: dict[str, Any]) -> dict[str, Any]:
    """Merge v4 ``attributes`` into the top level; v5 items are already flat."""
    if "attributes" in item and isinstance(item["attributes"], dict):
        return {"id": item.get("id"), **item["attributes"]}
    return dict(item)


def _extract_info(schema: dict[str, Any]) -> dict[str, Any]:
    """Info dict from a schema, nested (``schema.info``) or flat (v5)."""
    nested_info: dict[str, Any] = schema.get("info", {})
    if nested_info.get("displayName"):
        return nested_info
    return {
        "displayName": schema.get("displayName", ""),
        "singularName": schema.get("singularName"),
        "pluralName": schema.get("pluralName"),
    }


def _filter_params(filters: dict[str, Any], operator: str = "$eq") -> dict[str, Any]:
    """Strapi query-string filters.

    Example:
        >>> _filter_params({"slug": "hello"})
        {'filters[slug][$eq]': 'hello'}
    """
    return {f"filters[{name}][{operator}]": value for name, value in filters.items()}


class StrapiRestClient:
    """Authenticated HTTP access to a Strapi instance.

    Example:
        >>> config = StrapiConfig(base_url="http://localhost:1337", api_token="token")
        >>> async with StrapiRestClient(config) as client:
        ...     data = await client.request("GET", "articles")
    """

    def __init__(
        self,
        config: StrapiConfig,
        http_client: httpx.AsyncClient | None = None,
    ) -> None:
        if not config.get_api_token():
            raise ValueError("API token is required and cannot be empty")

        self.config = config
        self.base_url = config.base_url
        self._client = http_client or httpx.AsyncClient(
            timeout=config.timeout,
            verify=config.verify_ssl,
            limits=httpx.Limits(
                max_connections=config.max_connections,
                max_keepalive_connections=config.max_connections,
            ),
        )
        self._owns_client = http_client is None

        logger.info(f"Initialized Strapi REST client for {self.base_url}")

    async def __aenter__(self) -> "StrapiRestClient":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._owns_client:
            await self._client.aclose()

    def _build_url(self, endpoint: str) -> str:
        endpoint = endpoint.strip("/")
        if not endpoint.startswith("api/"):
            endpoint = f"api/{endpoint}"
        return f"{self.base_url}/{endpoint}"

    def _get_headers(self, json_body: bool = True) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {self.config.get_api_token()}",
        }
        if json_body:
            headers["Content-Type"] = "application/json"
        return headers

    def _create_retry_decorator(self) -> Any:
        retry_config = self.config.retry
        return retry(
            stop=stop_after_attempt(retry_config.max_attempts),
            wait=wait_exponential(
                multiplier=retry_config.exponential_base,
                min=retry_config.initial_wait,
                max=retry_config.max_wait,
            ),
            retry=retry_if_exception_type((ServerError, StoreConnectionError)),
            reraise=True,
        )

    @staticmethod
    def _handle_error_response(response: httpx.Response) -> None:
        """Raise the exception matching an error response.

        Raises:
            ServerError: On 5xx
            StoreRejectedError: On any other error status
        """
        status_code = response.status_code
        try:
            error = response.json().get("error", {})
            message = error.get("message") or response.text
            details = error.get("details") or {}
        except (ValueError, AttributeError):
            message = response.text or f"HTTP {status_code}"
            details = {}

        if 500 <= status_code < 600:
            raise ServerError(
                f"Server error: {message}", status_code=status_code, details=details
            )
        raise StoreRejectedError(
            f"Request rejected (HTTP {status_code}): {message}",
            status_code=status_code,
            details=details,
        )

    async def request(
        self,
        method: str,
        endpoint: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
        files: Any = None,
        data: dict[str, Any] | None = None,
        allow_not_found: bool = False,
    ) -> Any:
        """Send a request and decode the JSON answer.

        Server errors and connection failures are retried per the retry
        configuration; other errors are raised at once.

        Args:
            method: HTTP method
            endpoint: Path relative to ``/api``
            params: Query parameters
            json_body: JSON body
            files: Multipart files
            data: Multipart form fields
            allow_not_found: Return None on 404 instead of raising

        Returns:
            Decoded JSON (empty dict when the answer has no body)
        """

        @self._create_retry_decorator()  # type: ignore[untyped-decorator]
        async def _do_request() -> Any:
            url = self._build_url(endpoint)
            logger.debug(f"{method} {url} params={params}")
            try:
                response = await self._client.request(
                    method,
                    url,
                    params=params,
                    json=json_body,
                    files=files,
                    data=data,
                    headers=self._get_headers(json_body=files is None),
                )
            except httpx.TransportError as e:
                raise StoreConnectionError(f"Cannot reach {url}: {e}") from e

            if response.status_code == 404 and allow_not_found:
                return None
            if not response.is_success:
                self._handle_error_response(response)

            logger.debug(f"Response: {response.status_code}")
            if response.status_code == 204 or not response.content:
                return {}
            try:
                return response.json()
            except ValueError as e:
                raise StoreRejectedError(
                    f"Invalid JSON response from {url}: {e}",
                    status_code=response.status_code,
                ) from e

        return await _do_request()


class StrapiEntityStore:
    """Entity store using the Strapi content API."""

    def __init__(self, client: StrapiRestClient) -> None:
        self.client = client
        self._schemas: dict[str, CollectionSchema] = {}
        self._document_ids: dict[tuple[str, int], str] = {}

    async def get_schema(self, collection: str) -> CollectionSchema:
        schema = self._schemas.get(collection)
        if schema is not None:
            return schema

        response = await self.client.request(
            "GET", f"content-type-builder/content-types/{collection}"
        )
        raw = response.get("data", {})
        raw_schema: dict[str, Any] = raw.get("schema", raw)

        schema = CollectionSchema(
            uid=raw.get("uid", collection),
            kind=raw_schema.get("kind", "collectionType"),
            info=_extract_info(raw_schema),
            attributes=raw_schema.get("attributes", {}),
        )
        self._schemas[collection] = schema
        return schema

    async def _endpoint(self, collection: str) -> str:
        schema = await self.get_schema(collection)
        return uid_to_endpoint(collection, schema.plural_name)

    def _to_entity(self, collection: str, item: dict[str, Any]) -> StoredEntity:
        flat = _flatten_entity(item)
        entity_id = flat.pop("id")
        document_id = flat.get("documentId")
        if document_id:
            self._document_ids[(collection, entity_id)] = document_id
        return StoredEntity(id=entity_id, collection=collection, data=flat)

    async def find_one(self, collection: str, entity_id: int) -> StoredEntity | None:
        # v5 addresses single entries by documentId, so look numeric ids up by filter
        found = await self.find_many(collection, {"id": entity_id}, limit=1)
        return found[0] if found else None

    async def find_many(
        self,
        collection: str,
        filters: dict[str, Any],
        limit: int | None = None,
    ) -> list[StoredEntity]:
        endpoint = await self._endpoint(collection)
        params = _filter_params(filters)
        if limit is not None:
            params["pagination[pageSize]"] = limit

        response = await self.client.request("GET", endpoint, params=params)
        items = response.get("data") or []
        return [self._to_entity(collection, item) for item in items]

    async def create(self, collection: str, data: dict[str, Any]) -> StoredEntity:
        endpoint = await self._endpoint(collection)
        response = await self.client.request("POST", endpoint, json_body={"data": data})
        return self._to_entity(collection, response["data"])

    async def update(
        self, collection: str, entity_id: int, data: dict[str, Any]
    ) -> StoredEntity:
        endpoint = await self._endpoint(collection)

        ref: str | int | None = self._document_ids.get((collection, entity_id))
        if ref is None:
            existing = await self.find_one(collection, entity_id)
            if existing is None:
                raise StoreRejectedError(
                    f"No {collection} entry with id {entity_id}",
                    status_code=404,
                    details={"collection": collection},
                )
            ref = self._document_ids.get((collection, entity_id), entity_id)

        response = await self.client.request(
            "PUT", f"{endpoint}/{ref}", json_body={"data": data}
        )
        return self._to_entity(collection, response["data"])


class StrapiMediaStore:
    """Media store using the Strapi upload plugin API."""

    def __init__(self, client: StrapiRestClient) -> None:
        self.client = client

    async def find_file(
        self,
        *,
        id: int | None = None,
        hash_prefix: str | None = None,
        name: str | None = None,
    ) -> StoredFile | None:
        if id is not None:
            response = await self.client.request(
                "GET", f"upload/files/{id}", allow_not_found=True
            )
            return StoredFile.model_validate(response) if response else None

        if hash_prefix is not None:
            # Strapi slugs uploaded file names with "_" as separator
            prefix = hash_prefix.replace("-", "_")
            params = _filter_params({"hash": f"{prefix}_"}, operator="$startsWith")
        elif name is not None:
            params = _filter_params({"name": name})
        else:
            return None

        params["pagination[pageSize]"] = 1
        response = await self.client.request("GET", "upload/files", params=params)
        items = response if isinstance(response, list) else response.get("data") or []
        return StoredFile.model_validate(items[0]) if items else None

    async def upload(self, file_path: Path, metadata: UploadMetadata) -> StoredFile:
        file_info = {
            "name": metadata.name,
            "alternativeText": metadata.alternative_text,
            "caption": metadata.caption,
        }
        path = Path(file_path)
        with open(path, "rb") as f:
            response = await self.client.request(
                "POST",
                "upload",
                files={"files": (path.name, f, metadata.mime or "application/octet-stream")},
                data={"fileInfo": json.dumps(file_info)},
            )

        item = response[0] if isinstance(response, list) and response else response
        if not item:
            raise StoreRejectedError(f"Upload of {path.name} returned no file")
        return StoredFile.model_validate(item)


class StrapiStores:
    """Entity and media stores sharing one Strapi REST client.

    Example:
        >>> async with StrapiStores.from_env() as stores:
        ...     importer = EntryImporter(stores.entities, stores.media)
    """

    def __init__(self, config: StrapiConfig, http_client: httpx.AsyncClient | None = None) -> None:
        self.client = StrapiRestClient(config, http_client=http_client)
        self.entities = StrapiEntityStore(self.client)
        self.media = StrapiMediaStore(self.client)

    @classmethod
    def from_env(cls, **overrides: Any) -> "StrapiStores":
        """Build stores from ``STRAPI_*`` environment variables.

        Raises:
            ConfigurationError: If the environment is incomplete or invalid
        """
        return cls(ConfigFactory.create_strapi_config(**overrides))

    async def __aenter__(self) -> "StrapiStores":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.client.close()
