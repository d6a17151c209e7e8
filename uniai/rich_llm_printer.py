"""
Rich printers for displaying chat responses and image jobs.
"""
from typing import AsyncIterator, Optional
from rich.console import Console, Group
from rich.markdown import Markdown
from rich.syntax import Syntax
from rich.panel import Panel
from rich.live import Live
from rich.table import Table
from rich.text import Text
import json

from .types import ChatResponse, JobStatus

console = Console()


def _default_console() -> Console:
    return console


def _usage_panel(response: ChatResponse) -> Panel:
    usage = {
        "model": response.get("model", ""),
        "object": response.get("object", ""),
        "prompt_tokens": response.get("prompt_tokens", 0),
        "completion_tokens": response.get("completion_tokens", 0),
        "total_tokens": response.get("total_tokens", 0),
    }
    return Panel(
        Syntax(json.dumps(usage, indent=2), "json", theme="lightbulb", background_color="default"),
        title="[bold]Usage[/bold]",
        border_style="dim",
    )


class RichStreamPrinter:
    """
    Displays a ChatStream live using rich.

    Every streamed item already carries the full text so far, so the panel
    simply shows the latest one.

    Attributes:
        title: Title for the display panel
        show_metadata: Whether to show usage at the end
        code_theme: Theme for code blocks
        refresh_rate: Refresh rate for Live display
        border_style: Border style while streaming
    """

    def __init__(
        self,
        title: str = "Streaming Response",
        show_metadata: bool = True,
        code_theme: str = "coffee",
        refresh_rate: int = 30,
        border_style: str = "blue",
        console: Optional[Console] = None,
    ):
        self.title = title
        self.show_metadata = show_metadata
        self.code_theme = code_theme
        self.refresh_rate = refresh_rate
        self.border_style = border_style
        self.console = console if console is not None else _default_console()
        self._last: Optional[ChatResponse] = None

    async def print_stream(self, stream: AsyncIterator[ChatResponse]) -> Optional[ChatResponse]:
        """
        Display streamed responses as they arrive.

        Returns:
            The last response received, or None for an empty stream.
        """
        self._last = None
        with Live(Panel(""), refresh_per_second=self.refresh_rate, console=self.console) as live:
            async for response in stream:
                self._last = response
                live.update(self._render(is_final=False))
            live.update(self._render(is_final=True))
        return self._last

    def _render(self, is_final: bool) -> Panel:
        if self._last is None or not self._last["content"].strip():
            body = Text("(waiting for response...)", style="dim italic")
        else:
            body = Markdown(self._last["content"], code_theme=self.code_theme)
            if is_final and self.show_metadata:
                body = Group(body, _usage_panel(self._last))

        title = "[bold]Final Response[/bold]" if is_final else f"[bold]{self.title}[/bold]"
        if self._last and self._last.get("model"):
            title += f" [dim]({self._last['model']})[/dim]"
        return Panel(body, title=title, border_style="green" if is_final else self.border_style, padding=(1, 2))

    def get_full_text(self) -> str:
        return self._last["content"] if self._last else ""


class RichPrinter:
    """
    Displays buffered chat responses and image job states using rich.
    """

    def __init__(
        self,
        title: str = "Response",
        show_metadata: bool = True,
        code_theme: str = "coffee",
        border_style: str = "green",
        console: Optional[Console] = None,
    ):
        self.title = title
        self.show_metadata = show_metadata
        self.code_theme = code_theme
        self.border_style = border_style
        self.console = console if console is not None else _default_console()

    def print_chat(self, response: ChatResponse) -> ChatResponse:
        """
        Display a chat response. Returns it unchanged for chaining.
        """
        text = response.get("content", "")
        if not text.strip():
            body = Text("(empty response)", style="dim italic")
        else:
            body = Markdown(text, code_theme=self.code_theme)
            if self.show_metadata:
                body = Group(body, _usage_panel(response))

        title = f"[bold]{self.title}[/bold]"
        if response.get("model"):
            title += f" [dim]({response['model']})[/dim]"
        self.console.print(Panel(body, title=title, border_style=self.border_style, padding=(1, 2)))
        return response

    def print_job(self, status: JobStatus) -> JobStatus:
        """Display the state of an image job."""
        table = Table(show_header=False, box=None)
        table.add_row("Job", status.job_id)
        table.add_row("State", status.state)
        table.add_row("Progress", f"{status.progress}%")
        if status.result_url:
            table.add_row("Image", status.result_url)
        if status.failure_reason:
            table.add_row("Failure", Text(status.failure_reason, style="red"))

        border = {"succeeded": "green", "failed": "red"}.get(status.state, "yellow")
        self.console.print(Panel(table, title="[bold]Image Job[/bold]", border_style=border))
        return status
