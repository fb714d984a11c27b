"""
ReelChef - CLI Entry Point.

Usage:
    reelchef extract URL                 Extract a recipe from a post
    reelchef extract URL --force video_ai
    reelchef health                      Check configuration and tools
    reelchef serve                       Start the HTTP API
    reelchef --help                      Show help
"""

import asyncio
import json
import shutil

import typer
from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.spinner import Spinner
from rich.table import Table

app = typer.Typer(
    name="reelchef",
    help="ReelChef - Turn Instagram and TikTok posts into structured recipes.",
    add_completion=False,
)
console = Console()


def _print_recipe(result) -> None:
    recipe = result.recipe
    lines = [f"[bold green]{recipe.title or 'Untitled recipe'}[/bold green]"]
    meta = [
        f"{label}: {value}"
        for label, value in (("Servings", recipe.servings), ("Prep", recipe.prep_time), ("Cook", recipe.cook_time))
        if value
    ]
    if meta:
        lines.append(f"[dim]{' | '.join(meta)}[/dim]")

    lines.append("\n[bold]Ingredients[/bold]")
    lines.extend(f"  • {i}" for i in recipe.ingredients or ["(none)"])
    lines.append("\n[bold]Steps[/bold]")
    lines.extend(f"  {n}. {s}" for n, s in enumerate(recipe.steps, 1))
    if not recipe.steps:
        lines.append("  (none)")
    if recipe.tips:
        lines.append("\n[bold]Tips[/bold]")
        lines.extend(f"  - {t}" for t in recipe.tips)

    console.print(Panel.fit("\n".join(lines), title=result.method.value, border_style="green"))

    usage = result.usage
    console.print(
        f"[dim]{usage.total_tokens} tokens "
        f"({usage.prompt_tokens} in / {usage.candidates_tokens} out), "
        f"~{usage.cost_eur:.5f} EUR[/dim]"
    )
    if result.saved:
        console.print(f"[green]Saved[/green] as {recipe.id}")


@app.command()
def extract(
    url: str = typer.Argument(..., help="Instagram or TikTok post URL"),
    force: str | None = typer.Option(None, "--force", "-f", help="Force a path: web_scraping or video_ai"),
    save: bool = typer.Option(False, "--save", "-s", help="Save the recipe to the library"),
    as_json: bool = typer.Option(False, "--json", help="Print the result as JSON"),
    log_prompts: bool = typer.Option(False, "--log-prompts", "-l", help="Log structuring prompts to prompt_logs/"),
) -> None:
    """Extract a recipe from a social post URL."""
    from reelchef.config import get_settings
    from reelchef.db.store import SupabaseRecipeStore
    from reelchef.errors import ReelChefError
    from reelchef.llm.prompt_logger import enable_prompt_logging, get_session_log_dir
    from reelchef.observability import configure_logging, init_tracing
    from reelchef.pipeline.models import ExtractionMethod, PipelineOptions
    from reelchef.pipeline.orchestrator import RecipeExtractionService

    settings = get_settings()
    configure_logging("WARNING" if as_json else settings.log_level)
    init_tracing(settings)
    if log_prompts or settings.log_prompts:
        enable_prompt_logging(True)

    try:
        force_method = ExtractionMethod(force) if force else None
    except ValueError:
        valid = ", ".join(m.value for m in ExtractionMethod)
        console.print(f"[red]Invalid --force value: {force}. Options: {valid}[/red]")
        raise typer.Exit(2)

    service = RecipeExtractionService.from_settings(settings, store=SupabaseRecipeStore.from_settings(settings))
    options = PipelineOptions(force_method=force_method, save=save)

    try:
        if as_json:
            result = asyncio.run(service.extract(url, options))
        else:
            with Live(Spinner("dots", text="Extracting..."), console=console, transient=True) as live:
                result = asyncio.run(service.extract(
                    url,
                    options,
                    on_progress=lambda p: live.update(Spinner("dots", text=f"{p.message} ({p.percentage}%)")),
                ))
    except ReelChefError as e:
        if as_json:
            console.print_json(json.dumps({"success": False, "error": str(e)}))
        else:
            console.print(f"\n[red]FAIL[/red] {e}")
        raise typer.Exit(1)

    if as_json:
        console.print_json(json.dumps({
            "success": True,
            "method": result.method.value,
            "data": result.recipe.to_dict(),
            "usage": result.usage.to_dict(),
            "saved": result.saved,
        }))
    else:
        _print_recipe(result)

    if log_prompts:
        log_dir = get_session_log_dir()
        if log_dir:
            console.print(f"\n[dim]Prompts logged to: {log_dir}[/dim]")


@app.command()
def health() -> None:
    """Check configuration and external tools."""
    from reelchef.config import get_settings

    console.print("\n[bold]ReelChef Health Check[/bold]\n")

    try:
        settings = get_settings()
    except Exception as e:
        console.print(f"[red]FAIL Configuration error: {e}[/red]")
        console.print("[dim]Make sure you have a .env file with GEMINI_API_KEY.[/dim]")
        raise typer.Exit(1)

    console.print("[green]OK[/green] Configuration loaded")
    console.print(f"   Environment: {settings.reelchef_env}")
    console.print(f"   Model: {settings.gemini_model}")

    table = Table(show_header=True, header_style="bold")
    table.add_column("Check")
    table.add_column("Status")

    failed = False

    if shutil.which("yt-dlp"):
        table.add_row("yt-dlp", "[green]OK[/green]")
    else:
        table.add_row("yt-dlp", "[red]missing[/red] (video fallback disabled)")
        failed = True

    for platform, path in (
        ("Instagram cookies", settings.cookies_instagram_path),
        ("TikTok cookies", settings.cookies_tiktok_path),
    ):
        status = "[green]OK[/green]" if path.is_file() else f"[yellow]not found[/yellow] ({path})"
        table.add_row(platform, status)

    table.add_row(
        "Recipe library",
        "[green]Supabase configured[/green]" if settings.persistence_enabled else "[dim]disabled[/dim]",
    )
    table.add_row(
        "LangSmith tracing",
        "[green]enabled[/green]" if settings.langchain_tracing_v2 and settings.langchain_api_key else "[dim]disabled[/dim]",
    )
    console.print(table)

    if failed:
        console.print("\n[red]Some checks failed.[/red]")
        raise typer.Exit(1)
    console.print("\n[green]All checks passed![/green]")


@app.command()
def version() -> None:
    """Show version information."""
    from reelchef import __version__

    console.print(f"ReelChef version {__version__}")


@app.command()
def serve(
    port: int = typer.Option(8000, "--port", "-p", help="Port to run on"),
    reload: bool = typer.Option(False, "--reload", "-r", help="Enable auto-reload for development"),
) -> None:
    """Start the HTTP API server."""
    import os

    import uvicorn

    # Hosting platforms set PORT
    actual_port = int(os.environ.get("PORT", port))

    console.print("\n[bold green]ReelChef API[/bold green]")
    console.print(f"Starting server on http://localhost:{actual_port}")
    console.print("[dim]Press Ctrl+C to stop[/dim]\n")

    uvicorn.run(
        "reelchef.web.app:app",
        host="0.0.0.0",
        port=actual_port,
        reload=reload,
        timeout_keep_alive=190,
    )


if __name__ == "__main__":
    app()
