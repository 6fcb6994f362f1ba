# src/interface/cli.py

from typing import List
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich import box
from rich.text import Text

from src.domain.models import Document, SearchResult


console = Console()


def display_welcome_banner(semantic_enabled: bool) -> None:
    mode = (
        "keyword + semantic ([bold]~query[/bold] forces semantic, [bold]a | b[/bold] = alternatives)"
        if semantic_enabled
        else "keyword only — no embedding service configured"
    )
    console.print(Panel.fit(
        "[bold cyan]🔍 Hybrid Document Search[/bold cyan]\n"
        f"[dim]{mode}[/dim]",
        box=box.DOUBLE,
        border_style="cyan",
    ))


def display_documents(documents: List[Document], chunk_counts: dict) -> None:
    console.print(f"\n[green]✓[/green] [bold]{len(documents)}[/bold] document(s) loaded:")
    for document in documents:
        chunks = chunk_counts.get(document.document_id, 0)
        console.print(f"  • {document.name} [dim]({chunks} chunks indexed)[/dim]")


def prompt_for_query() -> str:
    return Prompt.ask("\n[bold yellow]❓ Search[/bold yellow]")


def display_results(query: str, results: List[SearchResult]) -> None:
    console.print(f"\n[bold]Results for:[/bold] [italic]\"{query}\"[/italic]\n")

    if not results:
        console.print("[dim]No matches.[/dim]")
        return

    for rank, result in enumerate(results, start=1):
        color = _origin_to_color(result.origin)

        panel_content = Text()
        panel_content.append("🎯 Match: ", style="dim")
        panel_content.append(result.origin, style=f"bold {color}")
        if result.score is not None:
            panel_content.append(f"   score {result.score:.4f}", style="dim")
        panel_content.append(f"\n\n{result.display_text}")

        console.print(Panel(
            panel_content,
            title=f"[bold]#{rank}[/bold]",
            border_style=color,
            box=box.ROUNDED,
            padding=(1, 2),
        ))


def display_warning(message: str) -> None:
    console.print(f"\n[bold yellow]⚠[/bold yellow] {message}\n")


def display_error(message: str) -> None:
    console.print(f"\n[bold red]✗ Error:[/bold red] {message}\n")


def ask_continue() -> bool:
    answer = Prompt.ask(
        "\n[dim]Search again?[/dim]",
        choices=["y", "n"],
        default="y",
    )
    return answer.lower() == "y"


def _origin_to_color(origin: str) -> str:
    return "green" if origin == "keyword" else "magenta"
