"""Interface for the hosted media store.

Defines the contract for uploading, updating, destroying and listing assets,
allowing different store backends (the Cloudinary REST API, fakes in tests).
"""

import abc
from typing import Any, Dict, List, Optional

from photostream.domain.models.common import AssetId, FolderPath, RemoteResource


class MediaStore(abc.ABC):
    """Abstract Base Class for media store operations."""

    @abc.abstractmethod
    async def upload(
        self,
        data: bytes,
        folder: FolderPath,
        tags: List[str],
        filename: Optional[str] = None,
    ) -> RemoteResource:
        """Uploads a binary image.

        Args:
            data: Raw file bytes.
            folder: Remote folder to place the asset in.
            tags: Tags to attach to the asset.
            filename: Optional original file name.

        Returns:
            The created resource: public_id, secure_url, format, width,
            height, bytes, tags and created_at.
        """
        pass

    @abc.abstractmethod
    async def update(
        self,
        asset_id: AssetId,
        tags: Optional[List[str]] = None,
        context: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> RemoteResource:
        """Replaces tags and/or context of an asset and returns the echoed record."""
        pass

    @abc.abstractmethod
    async def destroy(self, asset_id: AssetId, invalidate: bool = True) -> Dict[str, Any]:
        """Deletes an asset. Returns the store's acknowledgement, e.g. {'result': 'ok'}."""
        pass

    @abc.abstractmethod
    async def list(
        self,
        prefix: Optional[str] = None,
        tags: Optional[List[str]] = None,
        max_results: int = 50,
        next_cursor: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Lists resources under a folder prefix.

        Returns:
            {'resources': [...], 'next_cursor': Optional[str]}
        """
        pass

    async def ping(self) -> bool:
        """Checks store reachability. Stores without a reachability check report healthy."""
        return True

    async def close(self) -> None:
        """Releases network resources held by the store client."""
        return None
