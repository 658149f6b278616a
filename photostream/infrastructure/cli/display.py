"""Rich console implementation of the UserInterface."""

import logging
from typing import Any, Dict, List, Optional

from rich.console import Console
from rich.panel import Panel
from rich.box import ROUNDED
from rich.table import Table

from photostream.domain.interfaces.user_interface import UserInterface
from photostream.domain.models.asset import Asset
from photostream.domain.models.batch import BatchOperationResult
from photostream.domain.models.upload import IntakeRejection, UploadState, UploadStatus

logger = logging.getLogger(__name__)

STATUS_STYLES = {
    UploadStatus.PENDING: "dim",
    UploadStatus.UPLOADING: "yellow",
    UploadStatus.COMPLETED: "green",
    UploadStatus.ERROR: "bold red",
}


def _human_size(num_bytes: int) -> str:
    size = float(num_bytes)
    for unit in ("B", "KB", "MB"):
        if size < 1024:
            return f"{size:.0f}{unit}" if unit == "B" else f"{size:.1f}{unit}"
        size /= 1024
    return f"{size:.1f}GB"


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output."""

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console()

    def display_output(self, output: str, **kwargs: Any) -> None:
        title = kwargs.get("title")
        if title:
            self.console.print(Panel(str(output), title=title, title_align="left", box=ROUNDED))
        else:
            self.console.print(str(output))

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        self.console.print(f"[bold red]Error:[/bold red] {error_message}")

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        self.console.print(f"[yellow]Warning:[/yellow] {warning_message}")

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        self.console.print(f"[blue]Info:[/blue] {info_message}")

    def display_assets(self, assets: List[Asset], title: str = "Photos") -> None:
        if not assets:
            self.display_info("No photos found.")
            return
        table = Table(title=title, box=ROUNDED)
        table.add_column("ID", style="cyan", no_wrap=True)
        table.add_column("Format")
        table.add_column("Size", justify="right")
        table.add_column("Dimensions", justify="right")
        table.add_column("Tags")
        table.add_column("Description")
        for asset in assets:
            table.add_row(
                asset.asset_id,
                asset.format,
                _human_size(asset.bytes),
                f"{asset.width}x{asset.height}",
                ", ".join(asset.tags),
                asset.description or "",
            )
        self.console.print(table)

    def display_upload_state(self, state: UploadState, rejections: List[IntakeRejection]) -> None:
        for rejection in rejections:
            self.display_warning(rejection.reason)
        if not state.tasks:
            return
        table = Table(title="Uploads", box=ROUNDED)
        table.add_column("Task", style="dim", no_wrap=True)
        table.add_column("File")
        table.add_column("Preview", style="dim", overflow="fold")
        table.add_column("Status")
        table.add_column("Progress", justify="right")
        table.add_column("Retries", justify="right")
        table.add_column("Detail")
        for task in state.tasks:
            style = STATUS_STYLES.get(task.status, "")
            table.add_row(
                task.task_id[:8],
                task.source.name,
                str(task.preview or "-"),
                f"[{style}]{task.status.value}[/{style}]" if style else task.status.value,
                f"{task.progress}%",
                str(task.retry_count),
                task.error or (task.asset.asset_id if task.asset else ""),
            )
        self.console.print(table)
        self.console.print(
            f"Completed {state.completed}/{state.total} "
            f"(errors: {state.errors}) - overall progress {state.overall_progress:.0f}%"
        )

    def display_batch_result(self, result: BatchOperationResult) -> None:
        style = "green" if result.success else "yellow"
        self.console.print(f"[{style}]{result.message}[/{style}]")
        table = Table(box=ROUNDED)
        table.add_column("Asset", style="cyan")
        table.add_column("Result")
        table.add_column("Detail")
        for outcome in result.successful:
            operation = (outcome.details or {}).get("operation", "")
            table.add_row(outcome.asset_id, "[green]ok[/green]", operation)
        for outcome in result.failed:
            table.add_row(outcome.asset_id, "[red]failed[/red]", outcome.error or "")
        self.console.print(table)
        self.console.print(
            f"Success rate {result.success_rate}% in {result.batch_count} sub-batches, "
            f"{result.processing_time_ms:.0f}ms total ({result.average_time_per_operation_ms}ms/op)"
        )

    def display_stats(self, stats: Dict[str, Any], title: str = "Statistics") -> None:
        table = Table(title=title, box=ROUNDED, show_header=False)
        table.add_column("Key", style="bold")
        table.add_column("Value")
        for key, value in stats.items():
            if isinstance(value, dict):
                value = ", ".join(f"{k}={v}" for k, v in value.items()) or "-"
            elif isinstance(value, list):
                value = str(len(value))
            table.add_row(str(key), str(value))
        self.console.print(table)
