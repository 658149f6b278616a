"""Interface for the session-scoped store of uploaded assets.

The store is a cache of what the media store holds; it may be stale or empty
and is never treated as authoritative.
"""

import abc
from typing import List

from photostream.domain.models.asset import Asset


class SessionStore(abc.ABC):
    """Abstract Base Class for the uploaded-asset session list."""

    @abc.abstractmethod
    def load(self) -> List[Asset]:
        pass

    @abc.abstractmethod
    def append(self, asset: Asset) -> None:
        """Adds an asset to the session list, replacing one with the same id."""
        pass

    @abc.abstractmethod
    def remove(self, asset_id: str) -> bool:
        """Drops an asset from the session list. Returns True if it was present."""
        pass

    @abc.abstractmethod
    def clear(self) -> None:
        pass
