"""Interface for local file access used by the upload workflow."""

import abc

from photostream.domain.models.common import FilePath
from photostream.domain.models.upload import SourceFile


class FileSystem(abc.ABC):
    """Abstract Base Class for reading local source files."""

    @abc.abstractmethod
    async def read_bytes(self, file_path: FilePath) -> bytes:
        """Reads a file's content.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            IOError: For other reading errors.
        """
        pass

    @abc.abstractmethod
    async def read_text(self, file_path: FilePath) -> str:
        pass

    @abc.abstractmethod
    def describe(self, file_path: FilePath) -> SourceFile:
        """Builds a SourceFile (name, size, guessed MIME type) for a local path."""
        pass
