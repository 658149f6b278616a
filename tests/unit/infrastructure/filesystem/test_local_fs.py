import asyncio
from pathlib import Path

import pytest

from photostream.infrastructure.filesystem.local_fs import LocalFileSystem


@pytest.fixture
def fs():
    return LocalFileSystem()


@pytest.mark.parametrize("name, mime", [
    ("shot.png", "image/png"),
    ("shot.jpg", "image/jpeg"),
    ("shot.webp", "image/webp"),
    ("notes.txt", "text/plain"),
])
def test_describe_detects_mime_type(fs, tmp_path: Path, name, mime):
    path = tmp_path / name
    path.write_bytes(b"x" * 42)

    source = fs.describe(str(path))

    assert source.name == name
    assert source.size == 42
    assert source.mime_type == mime
    assert source.path == str(path)


def test_describe_missing_file(fs, tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        fs.describe(str(tmp_path / "missing.png"))


def test_read_bytes_and_text(fs, tmp_path: Path):
    binary = tmp_path / "a.png"
    binary.write_bytes(b"\x89PNG")
    text = tmp_path / "batch.json"
    text.write_text('{"operations": []}', encoding="utf-8")

    assert asyncio.run(fs.read_bytes(str(binary))) == b"\x89PNG"
    assert asyncio.run(fs.read_text(str(text))) == '{"operations": []}'


def test_read_missing_file(fs, tmp_path: Path):
    with pytest.raises(FileNotFoundError):
        asyncio.run(fs.read_bytes(str(tmp_path / "nope.png")))
