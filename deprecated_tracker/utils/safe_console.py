"""Rich console for deptracker output.

Sanitizes Unicode icons on terminals that don't support UTF-8 and offers
status-line helpers that print user data literally (no Rich markup).
"""
from rich.console import Console
from rich.markup import escape
from typing import Any
from .logger import sanitize_for_terminal, is_utf8_capable


class SafeConsole(Console):
    """Console that degrades to ASCII on non-UTF-8 terminals.

    File paths, member names and tag text can contain '[' which Rich would read
    as markup, so error/warning/success escape their message.
    """

    def __init__(self, *args, **kwargs):
        self._needs_sanitization = not is_utf8_capable()
        super().__init__(*args, **kwargs)

    def print(self, *objects: Any, **kwargs) -> None:
        if self._needs_sanitization:
            objects = tuple(
                sanitize_for_terminal(obj) if isinstance(obj, str) else obj
                for obj in objects
            )
        super().print(*objects, **kwargs)

    def status(self, *args, **kwargs):
        """Status spinner that stays ASCII on non-UTF-8 terminals."""
        if self._needs_sanitization:
            kwargs['spinner'] = 'line'
        return super().status(*args, **kwargs)

    def error(self, message: str) -> None:
        self.print(f"[bold red]Error:[/bold red] {escape(message)}")

    def warning(self, message: str) -> None:
        self.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def success(self, message: str) -> None:
        self.print(f"[green]✓ {escape(message)}[/green]")
