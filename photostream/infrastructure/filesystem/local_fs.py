"""Concrete implementation of the FileSystem interface for local disk.

Uses `pathlib` for metadata, `mimetypes` for type detection and `aiofiles`
for async reads.
"""

import logging
import mimetypes
from pathlib import Path

import aiofiles

from photostream.domain.interfaces.file_system import FileSystem
from photostream.domain.models.common import FilePath
from photostream.domain.models.upload import SourceFile

logger = logging.getLogger(__name__)

# Not registered by every platform's mimetypes table
mimetypes.add_type("image/webp", ".webp")


class LocalFileSystem(FileSystem):
    """Implementation of FileSystem for the local disk."""

    def __init__(self):
        logger.info("LocalFileSystem initialized.")

    async def read_bytes(self, file_path: FilePath) -> bytes:
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")
        try:
            async with aiofiles.open(path, mode='rb') as f:
                content = await f.read()
            logger.debug(f"Read {len(content)} bytes from {path}")
            return content
        except PermissionError as e:
            logger.error(f"Permission denied reading file: {path}")
            raise PermissionError(f"Permission denied: {file_path}") from e
        except OSError as e:
            logger.error(f"Error reading file {path}: {e}", exc_info=True)
            raise IOError(f"Failed to read file {file_path}: {e}") from e

    async def read_text(self, file_path: FilePath) -> str:
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")
        async with aiofiles.open(path, mode='r', encoding='utf-8') as f:
            return await f.read()

    def describe(self, file_path: FilePath) -> SourceFile:
        path = Path(file_path)
        if not path.is_file():
            raise FileNotFoundError(f"File not found: {file_path}")
        mime_type, _ = mimetypes.guess_type(path.name)
        return SourceFile(
            name=path.name,
            size=path.stat().st_size,
            mime_type=mime_type or "application/octet-stream",
            path=FilePath(str(path)),
        )
