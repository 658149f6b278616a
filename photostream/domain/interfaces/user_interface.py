"""Interface for interacting with the user (output only).

Defines the contract for displaying information, errors, warnings and
structured results, allowing different UI implementations.
"""

import abc
from typing import Any, Dict, List

from photostream.domain.models.asset import Asset
from photostream.domain.models.batch import BatchOperationResult
from photostream.domain.models.upload import UploadState, IntakeRejection


class UserInterface(abc.ABC):
    """Abstract Base Class for user interaction."""

    @abc.abstractmethod
    def display_output(self, output: str, **kwargs: Any) -> None:
        """Displays standard output to the user.

        Args:
            output: The string to display.
            **kwargs: Additional arguments for formatting (e.g., title).
        """
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_assets(self, assets: List[Asset], title: str = "Photos") -> None:
        """Displays a table of assets."""
        pass

    @abc.abstractmethod
    def display_upload_state(self, state: UploadState, rejections: List[IntakeRejection]) -> None:
        """Displays per-task upload status and the aggregate progress."""
        pass

    @abc.abstractmethod
    def display_batch_result(self, result: BatchOperationResult) -> None:
        pass

    @abc.abstractmethod
    def display_stats(self, stats: Dict[str, Any], title: str = "Statistics") -> None:
        pass
