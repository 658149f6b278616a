"""Main entry point for the PhotoStream application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler. The
`serve` command exposes the same services over HTTP.
"""

import asyncio
import logging
import sys
from pathlib import Path
from typing import Any, Coroutine, Dict, List, Optional

import typer
import uvicorn
from typing_extensions import Annotated

# --- Setup Logging Early ---
# Basic config until setup_logging runs with the configured settings
logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')
logger = logging.getLogger(__name__)

# --- Core Layer ---
from photostream.core.command_handler import CommandHandler
from photostream.core.services.batch_updater import BatchUpdater
from photostream.core.services.photo_storage_service import PhotoStorageService
from photostream.core.services.upload_orchestrator import UploadOrchestrator
from photostream.core.services.webhook_service import WebhookService
from photostream.domain.models.common import CollectionId, OwnerId

# --- Infrastructure Layer ---
# Config
from photostream.infrastructure.config.settings import (
    get_cloudinary_credentials, get_config, get_rate_limit_backend, get_rate_limit_rules,
    get_redis_url, get_webhook_secret, load_configuration,
)
# UI
from photostream.infrastructure.cli.display import ConsoleDisplay
# FileSystem
from photostream.infrastructure.filesystem.local_fs import LocalFileSystem
# Media store
from photostream.infrastructure.media.cloudinary_client import CloudinaryClient
# Cache
from photostream.infrastructure.cache.caching_service import CachingServiceImpl
# Session
from photostream.infrastructure.session.disk_session_store import DEFAULT_SESSION_DIR, DiskSessionStore
# Resilience
from photostream.infrastructure.resilience.api_retry import ApiRetryService
from photostream.infrastructure.resilience.rate_limiter import DEFAULT_WINDOW_MS, build_rate_limiter
# Monitoring
from photostream.infrastructure.monitoring.logger_setup import setup_logging_from_config
# Web
from photostream.infrastructure.web.app import create_app

# --- Dependency Injection Container (Manual) ---

def create_dependencies() -> Dict[str, Any]:
    """Creates and wires up all dependencies for the application.

    This acts as the Composition Root.
    """
    logger.info("Initializing application dependencies...")
    dependencies: Dict[str, Any] = {}
    try:
        # 1. Load Configuration First
        load_configuration()
        setup_logging_from_config()
        logger.info("Configuration and logging initialized.")

        # 2. Instantiate Infrastructure Adapters & Services
        dependencies['ui'] = ConsoleDisplay()
        dependencies['file_system'] = LocalFileSystem()
        dependencies['media_store'] = CloudinaryClient(**get_cloudinary_credentials())
        max_entries = get_config('cache.max_entries')
        dependencies['cache_service'] = CachingServiceImpl(
            default_ttl=float(get_config('cache.ttl_seconds', 300)),
            max_entries=int(max_entries) if max_entries else None,
        )
        dependencies['api_retry_service'] = ApiRetryService(
            max_retries=int(get_config('retry.max_retries', 3)),
            retry_delay_s=float(get_config('retry.delay_seconds', 1.0)),
            max_jitter_s=float(get_config('retry.max_jitter_seconds', 1.0)),
        )
        dependencies['session_store'] = DiskSessionStore(
            cache_dir=Path(get_config('session.dir', DEFAULT_SESSION_DIR)),
        )
        dependencies['rate_limiter'] = build_rate_limiter(
            backend=get_rate_limit_backend(),
            rules=get_rate_limit_rules(),
            redis_url=get_redis_url(),
            fail_open=bool(get_config('rate_limit.fail_open', False)),
            window_ms=int(get_config('rate_limit.window_ms', DEFAULT_WINDOW_MS)),
        )

        # 3. Instantiate Core Services (injecting dependencies)
        dependencies['photo_storage'] = PhotoStorageService(
            media_store=dependencies['media_store'],
            cache_service=dependencies['cache_service'],
            retry_service=dependencies['api_retry_service'],
            session_store=dependencies['session_store'],
            default_ttl=dependencies['cache_service'].default_ttl,
        )
        dependencies['batch_updater'] = BatchUpdater(
            media_store=dependencies['media_store'],
            cache_service=dependencies['cache_service'],
        )
        dependencies['webhook_service'] = WebhookService(
            secret=get_webhook_secret(),
            cache_service=dependencies['cache_service'],
            session_store=dependencies['session_store'],
        )

        def orchestrator_factory(owner_id: OwnerId, collection_id: CollectionId, tags: List[str]) -> UploadOrchestrator:
            return UploadOrchestrator(
                media_store=dependencies['media_store'],
                file_system=dependencies['file_system'],
                owner_id=owner_id,
                collection_id=collection_id,
                session_store=dependencies['session_store'],
                extra_tags=tags,
            )

        logger.info("Core services initialized.")

        # 4. Instantiate Command Handler
        dependencies['command_handler'] = CommandHandler(
            photo_storage=dependencies['photo_storage'],
            batch_updater=dependencies['batch_updater'],
            orchestrator_factory=orchestrator_factory,
            file_system=dependencies['file_system'],
            ui=dependencies['ui'],
            rate_limiter=dependencies['rate_limiter'],
        )
        logger.info("All dependencies initialized successfully.")
        return dependencies

    except Exception as e:
        logger.error(f"Fatal Error during application initialization: {e}", exc_info=True)
        if dependencies.get('ui') is not None:
            dependencies['ui'].display_error(f"Application Initialization Failed: {e}")
        else:
            print(f"FATAL ERROR during initialization: {e}", file=sys.stderr)
        sys.exit(1)


# --- Get Wired-up Dependencies ---
# Built on first use so tests can patch adapters before wiring
_dependencies: Optional[Dict[str, Any]] = None


def get_dependencies() -> Dict[str, Any]:
    global _dependencies
    if _dependencies is None:
        _dependencies = create_dependencies()
    return _dependencies


def reset_dependencies() -> None:
    global _dependencies
    _dependencies = None


# --- Typer App Definition ---
app = typer.Typer(
    name="photostream",
    help="PhotoStream: upload, tag and manage game photos on the media store.",
    add_completion=False,
)


# --- Helper for Running Async Commands ---
async def close_media_store() -> None:
    """Releases the media store's network client, if dependencies were built."""
    media_store = (_dependencies or {}).get('media_store')
    if media_store is None:
        return
    try:
        await media_store.close()
    except Exception as e:
        logger.warning(f"Failed to close media store client: {e}")


async def _run_and_close(coro: Coroutine[Any, Any, Any]) -> Any:
    try:
        return await coro
    finally:
        await close_media_store()


def run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    """Runs an async handler from a sync Typer command, then closes the media store client."""
    try:
        return asyncio.run(_run_and_close(coro))
    except Exception as e:
        logger.error(f"Error executing async command: {e}", exc_info=True)
        get_dependencies()['ui'].display_error(f"Command execution failed: {e}")
        return None


def _handler() -> CommandHandler:
    return get_dependencies()['command_handler']


# --- CLI Commands ---

UserOption = Annotated[str, typer.Option("--user", "-u", help="Owner of the photos.")]
GameOption = Annotated[str, typer.Option("--game", "-g", help="Collection (game number) of the photos.")]


@app.command()
def upload(
    files: Annotated[List[Path], typer.Argument(help="Image files to upload.")],
    user: UserOption,
    game: GameOption,
    tag: Annotated[Optional[List[str]], typer.Option("--tag", "-t", help="Extra tag (repeatable).")] = None,
    auto_retry: Annotated[bool, typer.Option("--auto-retry", help="Retry failed uploads up to the retry limit.")] = False,
):
    """Upload image files sequentially into a user's game folder."""
    run_async(_handler().handle_upload([str(f) for f in files], user, game, tags=tag, auto_retry=auto_retry))


@app.command(name="list")
def list_command(
    user: UserOption,
    game: GameOption,
    max_results: Annotated[int, typer.Option("--max", help="Maximum photos to fetch.")] = 50,
    refresh: Annotated[bool, typer.Option("--refresh", help="Bypass the cache.")] = False,
):
    """List the photos of a user's game folder."""
    run_async(_handler().handle_list(user, game, max_results=max_results, refresh=refresh))


@app.command()
def search(
    user: UserOption,
    game: GameOption,
    query: Annotated[Optional[str], typer.Argument(help="Text matched against filename, description and tags.")] = None,
    tag: Annotated[Optional[List[str]], typer.Option("--tag", "-t", help="Required tag (repeatable).")] = None,
    format: Annotated[Optional[str], typer.Option("--format", help="Image format, e.g. 'png'.")] = None,
):
    """Search a user's game folder."""
    run_async(_handler().handle_search(user, game, query=query, tags=tag, format=format))


@app.command()
def update(
    asset_id: Annotated[str, typer.Argument(help="Public id of the photo.")],
    tags: Annotated[str, typer.Option("--tags", help="Comma-separated tags replacing the current ones.")] = "",
    description: Annotated[Optional[str], typer.Option("--description", "-d", help="New description.")] = None,
):
    """Replace tags and description of one photo."""
    tag_list = [t.strip() for t in tags.split(",") if t.strip()]
    run_async(_handler().handle_update(asset_id, tag_list, description))


@app.command()
def delete(
    asset_ids: Annotated[List[str], typer.Argument(help="Public id(s) of the photos to delete.")],
):
    """Delete one or more photos."""
    run_async(_handler().handle_delete(asset_ids))


@app.command(name="batch-update")
def batch_update_command(
    batch_file: Annotated[Path, typer.Argument(exists=True, file_okay=True, dir_okay=False, readable=True,
                                                help="JSON file with operations and options.")],
    dry_run: Annotated[Optional[bool], typer.Option("--dry-run/--no-dry-run", help="Override the file's dryRun option.")] = None,
):
    """Apply metadata updates from a JSON batch file."""
    run_async(_handler().handle_batch_update(str(batch_file), dry_run=dry_run))


@app.command()
def stats(user: UserOption, game: GameOption):
    """Show statistics for a user's game folder."""
    run_async(_handler().handle_stats(user, game))


@app.command(name="clear-cache")
def clear_cache_command():
    """Clears the application cache."""
    run_async(_handler().handle_clear_cache())


@app.command()
def serve(
    host: Annotated[str, typer.Option(help="Interface to bind.")] = "127.0.0.1",
    port: Annotated[int, typer.Option(help="Port to listen on.")] = 8000,
):
    """Serve the HTTP API."""
    dependencies = get_dependencies()
    logger.info(f"Starting HTTP API on {host}:{port}")
    uvicorn.run(create_app(dependencies), host=host, port=port, log_config=None)


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    logger.info("Starting PhotoStream application...")
    app()
    logger.info("PhotoStream application finished.")


if __name__ == "__main__":
    cli_entry_point()
