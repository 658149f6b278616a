"""Cloudinary REST client implementing the MediaStore interface.

Uses httpx.AsyncClient for transport and the cloudinary SDK for request
signing, tag lists and context encoding. Upload and destroy go to the signed
upload API; update, list and ping go to the Admin API with basic auth.

HTTP failures are mapped onto the application's error taxonomy:
404 -> NotFoundError, other 4xx -> MediaStoreError, 5xx and transport
errors -> TransientMediaStoreError (retryable).
"""

import logging
import time
from typing import Any, Dict, List, Optional

import cloudinary.utils
import httpx

from photostream.domain.errors import MediaStoreError, NotFoundError, TransientMediaStoreError
from photostream.domain.interfaces.media_store import MediaStore
from photostream.domain.models.common import AssetId, FolderPath, RemoteResource

logger = logging.getLogger(__name__)

DEFAULT_API_BASE = "https://api.cloudinary.com/v1_1"
DEFAULT_TIMEOUT_S = 60.0
RESOURCE_TYPE = "image"


def encode_context(context: Dict[str, Any]) -> str:
    """Encodes a context map as 'key=value|key=value', dropping unset values."""
    custom = context.get("custom", context)
    return cloudinary.utils.encode_context({k: v for k, v in custom.items() if v is not None})


class CloudinaryClient(MediaStore):
    """MediaStore backed by the Cloudinary upload and Admin APIs."""

    def __init__(
        self,
        cloud_name: str,
        api_key: str,
        api_secret: str,
        api_base: str = DEFAULT_API_BASE,
        timeout: float = DEFAULT_TIMEOUT_S,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize the Cloudinary client.

        Args:
            cloud_name: Cloudinary cloud name.
            api_key: API key.
            api_secret: API secret used for signing and basic auth.
            api_base: API root URL.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport (e.g. httpx.MockTransport in tests).
        """
        if not cloud_name or not api_key or not api_secret:
            raise ValueError("Cloudinary cloud_name, api_key and api_secret are required")
        self.cloud_name = cloud_name
        self.api_key = api_key
        self.api_secret = api_secret
        self.base_url = f"{api_base.rstrip('/')}/{cloud_name}"
        self.timeout = timeout
        self.transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        logger.info(f"Cloudinary client initialized: {self.base_url}")

    @property
    def client(self) -> httpx.AsyncClient:
        # Opened lazily and again after close(); every CLI command runs on a fresh event loop
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                auth=httpx.BasicAuth(self.api_key, self.api_secret),
                transport=self.transport,
            )
        return self._client

    # --- Request helpers ---

    def _signed(self, params: Dict[str, Any]) -> Dict[str, Any]:
        params = {k: v for k, v in params.items() if v is not None}
        params["timestamp"] = int(time.time())
        params["signature"] = cloudinary.utils.api_sign_request(params, self.api_secret)
        params["api_key"] = self.api_key
        return params

    async def _request(self, method: str, url: str, operation: str, **kwargs: Any) -> Dict[str, Any]:
        try:
            response = await self.client.request(method, url, **kwargs)
        except httpx.TransportError as e:
            logger.warning(f"Cloudinary {operation} transport error: {e}")
            raise TransientMediaStoreError(f"{operation} failed: {e}") from e

        if response.status_code >= 400:
            message = self._error_message(response)
            if response.status_code == 404:
                raise NotFoundError(f"{operation}: {message}")
            if response.status_code >= 500 or response.status_code == 429:
                raise TransientMediaStoreError(f"{operation} failed ({response.status_code}): {message}")
            raise MediaStoreError(f"{operation} failed ({response.status_code}): {message}")
        return response.json()

    @staticmethod
    def _error_message(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or response.reason_phrase
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict):
            return str(error.get("message", error))
        return str(error or body)

    # --- MediaStore Interface Implementation ---

    async def upload(
        self,
        data: bytes,
        folder: FolderPath,
        tags: List[str],
        filename: Optional[str] = None,
    ) -> RemoteResource:
        params = self._signed({
            "folder": folder,
            "tags": cloudinary.utils.encode_list(tags) if tags else None,
            "use_filename": "true" if filename else None,
        })
        files = {"file": (filename or "upload", data)}
        logger.debug(f"Uploading {len(data)} bytes to folder {folder}")
        result = await self._request("POST", f"/{RESOURCE_TYPE}/upload", "upload", data=params, files=files)
        logger.info(f"Uploaded asset {result.get('public_id')}")
        return RemoteResource(result)

    async def update(
        self,
        asset_id: AssetId,
        tags: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RemoteResource:
        params: Dict[str, Any] = {}
        if tags is not None:
            params["tags"] = cloudinary.utils.encode_list(list(tags))
        if context:
            params["context"] = encode_context(context)
        if metadata:
            params["metadata"] = encode_context(metadata)
        result = await self._request(
            "POST", f"/resources/{RESOURCE_TYPE}/upload/{asset_id}", "update", data=params
        )
        logger.info(f"Updated asset {asset_id}")
        return RemoteResource(result)

    async def destroy(self, asset_id: AssetId, invalidate: bool = True) -> Dict[str, Any]:
        params = self._signed({"public_id": asset_id, "invalidate": "true" if invalidate else None})
        result = await self._request("POST", f"/{RESOURCE_TYPE}/destroy", "destroy", data=params)
        if result.get("result") == "not found":
            raise NotFoundError(f"destroy: asset {asset_id} not found")
        logger.info(f"Destroyed asset {asset_id}: {result.get('result')}")
        return result

    async def list(
        self,
        prefix: Optional[str] = None,
        tags: Optional[List[str]] = None,
        max_results: int = 50,
        next_cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        query: Dict[str, Any] = {"max_results": max_results, "tags": "true", "context": "true"}
        if next_cursor:
            query["next_cursor"] = next_cursor
        wanted = list(tags or [])
        if prefix or not wanted:
            query["type"] = "upload"
            if prefix:
                query["prefix"] = prefix
            url = f"/resources/{RESOURCE_TYPE}"
        else:
            url = f"/resources/{RESOURCE_TYPE}/tags/{wanted[0]}"
        result = await self._request("GET", url, "list", params=query)
        resources = result.get("resources", [])
        if wanted:
            resources = [r for r in resources if set(wanted).issubset(set(r.get("tags") or []))]
        return {"resources": resources, "next_cursor": result.get("next_cursor")}

    async def ping(self) -> bool:
        try:
            await self._request("GET", "/ping", "ping")
            return True
        except (MediaStoreError, NotFoundError) as e:
            logger.warning(f"Cloudinary ping failed: {e}")
            return False

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.aclose()
        self._client = None
        logger.debug("Cloudinary HTTP client closed")
