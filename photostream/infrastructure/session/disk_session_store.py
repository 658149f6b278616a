"""Session store for uploaded assets, persisted with diskcache.

The asset list is stored as plain dicts under one session key so it survives
process restarts within the configured expiry. It is a convenience cache of
the media store, never the source of truth.
"""

import logging
from pathlib import Path
from typing import List, Optional

import diskcache as dc

from photostream.domain.interfaces.session_store import SessionStore
from photostream.domain.models.asset import Asset
from photostream.domain.models.common import SessionKey

logger = logging.getLogger(__name__)

DEFAULT_SESSION_DIR = Path.home() / ".photostream" / "session"
DEFAULT_SESSION_KEY = SessionKey("photoStream_uploadedPhotos")
DEFAULT_SESSION_EXPIRE_S = 24 * 60 * 60


class DiskSessionStore(SessionStore):
    """SessionStore backed by a diskcache directory."""

    def __init__(
        self,
        cache_dir: Path = DEFAULT_SESSION_DIR,
        session_key: SessionKey = DEFAULT_SESSION_KEY,
        expire: Optional[float] = DEFAULT_SESSION_EXPIRE_S,
    ):
        self.cache_dir = Path(cache_dir)
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self.session_key = session_key
        self.expire = expire
        self.cache = dc.Cache(str(self.cache_dir), timeout=1)
        logger.info(f"DiskSessionStore initialized at {self.cache_dir} (key={session_key})")

    def _save(self, assets: List[Asset]) -> None:
        self.cache.set(self.session_key, [a.to_dict() for a in assets], expire=self.expire)

    def load(self) -> List[Asset]:
        raw = self.cache.get(self.session_key, default=[])
        assets = []
        for item in raw or []:
            try:
                assets.append(Asset.from_dict(item))
            except TypeError as e:
                logger.warning(f"Skipping unreadable session entry: {e}")
        return assets

    def append(self, asset: Asset) -> None:
        assets = [a for a in self.load() if a.asset_id != asset.asset_id]
        assets.append(asset)
        self._save(assets)
        logger.debug(f"Session store now holds {len(assets)} assets")

    def remove(self, asset_id: str) -> bool:
        assets = self.load()
        kept = [a for a in assets if a.asset_id != asset_id]
        if len(kept) == len(assets):
            return False
        self._save(kept)
        return True

    def clear(self) -> None:
        self.cache.delete(self.session_key)
        logger.info("Cleared session asset list.")

    def close(self) -> None:
        self.cache.close()
