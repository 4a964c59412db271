from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager

from rich.console import Console
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .exceptions import ProgressNotStartedError


class ShopStyle:
    """
    Console output for commands: headings, messages, tables and one
    progress bar at a time.

    ``progress_total`` and ``progress_completed`` mirror the bar so callers
    can inspect it.
    """

    def __init__(self, console: Console | None = None):
        self.console = console or Console()
        self.progress_total = 0
        self.progress_completed = 0
        self._progress: Progress | None = None
        self._task: TaskID | None = None

    def title(self, message: str) -> None:
        self.console.print()
        self.console.rule(f"[bold]{message}[/bold]")

    def section(self, message: str) -> None:
        self.console.print(f"\n[bold cyan]{message}[/bold cyan]")

    def text(self, message: str) -> None:
        self.console.print(message)

    def success(self, message: str) -> None:
        self.console.print(f"[bold green]\\[OK][/bold green] {message}")

    def warning(self, message: str) -> None:
        self.console.print(f"[bold yellow]\\[WARNING][/bold yellow] {message}")

    def error(self, message: str) -> None:
        self.console.print(f"[bold red]\\[ERROR][/bold red] {message}")

    def table(
        self,
        headers: Sequence[str],
        rows: Iterable[Sequence[object]],
        title: str | None = None,
    ) -> None:
        table = Table(title=title, show_lines=False, pad_edge=False)
        for header in headers:
            table.add_column(header, overflow="fold")
        for row in rows:
            table.add_row(*(str(value) for value in row))
        self.console.print(table)

    # --- Progress ---

    @property
    def progress_running(self) -> bool:
        return self._progress is not None

    def progress_start(self, total: int) -> None:
        if self._progress is not None:
            self._progress.stop()

        self._progress = Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=self.console,
        )
        self._progress.start()
        self._task = self._progress.add_task("", total=total)
        self.progress_total = total
        self.progress_completed = 0

    def progress_advance(self, step: int = 1) -> None:
        if self._progress is None or self._task is None:
            msg = "progress_start() must be called before progress_advance()"
            raise ProgressNotStartedError(msg)
        self._progress.advance(self._task, step)
        self.progress_completed += step

    def progress_finish(self) -> None:
        if self._progress is None:
            msg = "progress_start() must be called before progress_finish()"
            raise ProgressNotStartedError(msg)
        self._progress.stop()
        self._progress = None
        self._task = None
        self.console.print()

    @contextmanager
    def progress(self, total: int) -> Iterator[None]:
        """
        Run a block with a progress bar of ``total`` steps.

        The bar is stopped when the block exits, also on error.

        >>> with style.progress(250):
        ...     style.progress_advance(100)
        """
        self.progress_start(total)
        try:
            yield
        finally:
            if self.progress_running:
                self.progress_finish()
