"""Rich-based rendering for streamed output, function calls, costs, and errors."""

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

console = Console()

TOOL_BORDER = "cyan"
RESULT_BORDER = "green"
ERROR_BORDER = "red"
ERROR_STYLE = "bold red"
WARNING_STYLE = "yellow"


class StreamPrinter:
    """Writes streamed fragments as-is and remembers whether a line is left open."""

    def __init__(self) -> None:
        self._open_line = False

    def token(self, token: str) -> None:
        if not token:
            return
        console.out(token, end="", highlight=False)
        self._open_line = not token.endswith("\n")

    def end_line(self) -> None:
        if self._open_line:
            console.out("")
            self._open_line = False


def render_user(text: str) -> None:
    console.print(Text.assemble(("\nYou: ", "bold cyan"), (text, "white"), "\n"))


def render_rule() -> None:
    console.rule(style="dim")


def render_info(msg: str, style: str = "blue") -> None:
    console.print(Text(msg, style=style))


def render_tool_call(name: str, args: dict) -> None:
    """Render a styled function invocation block."""
    args_text = "\n".join(f"  {k}: {v}" for k, v in args.items())
    content = Text.assemble(
        ("Function: ", "bold cyan"),
        (name, "bold white"),
        ("\n",),
        (args_text, "dim"),
    )
    console.print(Panel(content, border_style=TOOL_BORDER, title="Function Call", title_align="left"))


def render_tool_result(result: str, error: str | None = None) -> None:
    if error is not None:
        console.print(Panel(Text(error), border_style=ERROR_BORDER, title="Error", title_align="left"))
        return
    console.print(Panel(Text(result), border_style=RESULT_BORDER, title="Result", title_align="left"))


def render_command(command: str, cwd: str, dangerous: bool) -> None:
    """Show a command awaiting confirmation."""
    console.print(f"\n  Command: [bold]{escape(command)}[/bold]")
    console.print(f"  Working directory: {escape(cwd)}")
    if dangerous:
        console.print(
            f"  [{WARNING_STYLE}]Warning: this command may be destructive or needs elevated privileges.[/{WARNING_STYLE}]"
        )


def render_cost(input_tokens: int, output_tokens: int, cost: float, label: str = "Cost") -> None:
    console.print(
        f"[dim]{label}: ${cost:.6f} · {input_tokens:,} input tokens · {output_tokens:,} output tokens[/dim]"
    )


def render_threads(threads: list[dict]) -> None:
    """Display recent threads."""
    if not threads:
        console.print("[dim]No threads yet.[/dim]")
        return

    table = Table(title="Recent Threads", border_style="dim")
    table.add_column("ID", style="bold")
    table.add_column("Name")
    table.add_column("Messages", justify="right")
    table.add_column("Updated", style="dim")

    for t in threads:
        table.add_row(t["id"], t["name"], str(t["message_count"]), t["updated_at"][:10])

    console.print(table)
    console.print("\n[dim]Resume a thread with: ai --agent --thread <ID>[/dim]")


def render_error(msg: str) -> None:
    """Render an error message in red."""
    console.print(f"[{ERROR_STYLE}]Error:[/{ERROR_STYLE}] {escape(msg)}")
