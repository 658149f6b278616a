import pytest
from typer.testing import CliRunner
from unittest.mock import MagicMock
from pathlib import Path

from photostream import main
from photostream.domain.interfaces.media_store import MediaStore
from photostream.infrastructure.cli.display import ConsoleDisplay
from photostream.infrastructure.config.settings import (
    clear_test_config, reset_configuration, set_config_for_testing,
)


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture(autouse=True)
def isolated_config(tmp_path: Path):
    """Keeps configuration and the composition root isolated per test."""
    set_config_for_testing({
        'app.env': 'test',
        'session.dir': str(tmp_path / "session"),
        'rate_limit.backend': 'memory',
        'logging.level': 'WARNING',
    })
    main.reset_dependencies()
    yield
    main.reset_dependencies()
    clear_test_config()
    reset_configuration()


@pytest.fixture
def mock_media_store(mocker) -> MagicMock:
    """A MediaStore double whose async methods are AsyncMocks."""
    store = mocker.MagicMock(spec=MediaStore)
    store.ping.return_value = True
    store.list.return_value = {"resources": [], "next_cursor": None}
    return store


@pytest.fixture
def patched_media_store(mocker, mock_media_store: MagicMock) -> MagicMock:
    """Patches the Cloudinary client used by the composition root."""
    mocker.patch('photostream.main.CloudinaryClient', return_value=mock_media_store)
    return mock_media_store


@pytest.fixture
def mock_console_display(mocker):
    """ Mocks the ConsoleDisplay to capture output easily.
        Patches the ConsoleDisplay where the composition root uses it.
    """
    mock = mocker.MagicMock(spec=ConsoleDisplay)
    mocker.patch('photostream.main.ConsoleDisplay', return_value=mock)
    return mock


@pytest.fixture
def test_fs(tmp_path: Path):
    """Creates a temporary file structure for integration tests."""
    base = tmp_path / "integration_fs"
    base.mkdir()

    photos = base / "photos"
    photos.mkdir()
    (photos / "boss_fight.png").write_bytes(b"\x89PNG\r\n\x1a\n" + b"0" * 256)
    (photos / "victory.jpg").write_bytes(b"\xff\xd8\xff" + b"1" * 512)
    (photos / "notes.txt").write_text("not an image")

    return base
