"""Domain model for a hosted photo.

The media store is the sole source of truth for assets; `Asset` is the local
view of one remote resource, mapped from the store's response payload.
"""

from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field, asdict

from photostream.domain.models.common import AssetId, OwnerId, CollectionId

THUMBNAIL_TRANSFORMATION = "c_thumb,g_face,w_200,h_200"


def dedupe_tags(tags: Optional[List[str]]) -> List[str]:
    """Removes duplicate and empty tags, keeping first-seen order."""
    seen: Dict[str, None] = {}
    for tag in tags or []:
        tag = str(tag).strip()
        if tag:
            seen.setdefault(tag, None)
    return list(seen)


def _tag_value(tags: List[str], prefix: str) -> Optional[str]:
    for tag in tags:
        if tag.startswith(prefix):
            return tag[len(prefix):]
    return None


@dataclass
class Asset:
    """Entity representing one photo stored in the media store."""
    asset_id: AssetId
    url: str
    format: str = ""
    width: int = 0
    height: int = 0
    bytes: int = 0
    created_at: str = ""
    tags: List[str] = field(default_factory=list)
    description: Optional[str] = None
    owner_id: Optional[OwnerId] = None
    collection_id: Optional[CollectionId] = None

    def __post_init__(self) -> None:
        self.tags = dedupe_tags(self.tags)

    @property
    def filename(self) -> str:
        """Last path segment of the asset id."""
        return self.asset_id.rsplit("/", 1)[-1]

    @property
    def thumbnail_url(self) -> str:
        """Face-cropped 200x200 thumbnail URL of the asset."""
        return self.url.replace("/upload/", f"/upload/{THUMBNAIL_TRANSFORMATION}/", 1)

    @classmethod
    def from_remote(
        cls,
        resource: Dict[str, Any],
        owner_id: Optional[str] = None,
        collection_id: Optional[str] = None,
    ) -> "Asset":
        """Maps a media store resource payload to an Asset.

        Owner and collection are taken from the explicit arguments when given,
        otherwise from the `user:` and `game:` tags on the resource.
        """
        tags = dedupe_tags(resource.get("tags"))
        context = resource.get("context") or {}
        custom = context.get("custom", context) if isinstance(context, dict) else {}
        return cls(
            asset_id=AssetId(resource.get("public_id", "")),
            url=resource.get("secure_url") or resource.get("url", ""),
            format=resource.get("format", ""),
            width=int(resource.get("width") or 0),
            height=int(resource.get("height") or 0),
            bytes=int(resource.get("bytes") or 0),
            created_at=str(resource.get("created_at", "")),
            tags=tags,
            description=custom.get("description") if isinstance(custom, dict) else None,
            owner_id=OwnerId(owner_id) if owner_id else _owner_from(tags),
            collection_id=CollectionId(collection_id) if collection_id else _collection_from(tags),
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializes the asset, including derived fields."""
        data = asdict(self)
        data["filename"] = self.filename
        data["thumbnail_url"] = self.thumbnail_url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Asset":
        """Inverse of `to_dict`; derived fields are ignored."""
        known = {k: v for k, v in data.items() if k not in ("filename", "thumbnail_url")}
        return cls(**known)


def _owner_from(tags: List[str]) -> Optional[OwnerId]:
    value = _tag_value(tags, "user:")
    return OwnerId(value) if value else None


def _collection_from(tags: List[str]) -> Optional[CollectionId]:
    value = _tag_value(tags, "game:")
    return CollectionId(value) if value else None
