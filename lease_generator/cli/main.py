"""Main CLI application"""

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from lease_generator.services.errors import LeasePipelineError, LeaseValidationError
from lease_generator.utils.config import get_settings
from lease_generator.utils.logging import configure_logging

app = typer.Typer(
    name="lease-generator",
    help="Generate residential lease agreements with an LLM backend",
    add_completion=False,
)

console = Console()


def _setup_logging(level: str) -> None:
    configure_logging(level, handler=RichHandler(console=console, show_path=False))


def _load_json(path: Path) -> dict:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        console.print(f"[red]Cannot read {path}: {e}[/red]")
        raise typer.Exit(code=1)


def _print_issues(error: LeaseValidationError, title: str) -> None:
    table = Table(title=title)
    table.add_column("Field", style="cyan")
    table.add_column("Reason", style="yellow")
    table.add_column("Message")
    for issue in error.issues:
        table.add_row(issue.path or "(root)", issue.reason, issue.message)
    console.print(table)


@app.command("serve")
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address (default from HOST)"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Port (default from PORT)"),
    reload: bool = typer.Option(False, "--reload", help="Reload on code changes"),
):
    """Run the lease generation API"""
    import uvicorn

    settings = get_settings()
    _setup_logging(settings.log_level)
    console.print(Panel.fit(
        f"[bold blue]Lease Generator API[/bold blue]\n"
        f"Provider: [cyan]{settings.llm_provider}[/cyan]  "
        f"Mode: [cyan]{settings.environment}[/cyan]  "
        f"Captcha: [cyan]{'on' if settings.captcha_required else 'off'}[/cyan]",
        border_style="blue",
    ))
    uvicorn.run(
        "lease_generator.api.app:create_app",
        factory=True,
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        log_config=None,
    )


@app.command("validate")
def validate(
    input_file: Path = typer.Argument(..., help="Lease input JSON file"),
):
    """Check a lease input file without calling the LLM"""
    from lease_generator.services.validation import validate_input

    raw = _load_json(input_file)
    try:
        lease_input = validate_input(raw)
    except LeaseValidationError as e:
        _print_issues(e, f"{len(e.issues)} problem(s) in {input_file.name}")
        raise typer.Exit(code=1)

    console.print(
        f"[green][OK][/green] {input_file.name} is valid "
        f"({len(lease_input.tenants)} tenant(s), rent {lease_input.financials.monthly_rent:,.2f})"
    )


@app.command("generate")
def generate(
    input_file: Path = typer.Argument(..., help="Lease input JSON file"),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="Output .docx path"),
):
    """Generate a lease document locally (no rate limit or captcha)"""
    from lease_generator.services.pipeline import build_pipeline
    from lease_generator.services.validation import validate_input

    settings = get_settings()
    _setup_logging(settings.log_level)

    raw = _load_json(input_file)
    try:
        lease_input = validate_input(raw)
    except LeaseValidationError as e:
        _print_issues(e, "Invalid lease input")
        raise typer.Exit(code=1)

    pipeline = build_pipeline(settings)
    console.print(f"[blue]Generating lease with {pipeline.generator.provider} ({pipeline.generator.model})...[/blue]")

    try:
        document = asyncio.run(pipeline.generate_document(lease_input))
    except LeaseValidationError as e:
        _print_issues(e, "Generated lease is incomplete, please try again")
        raise typer.Exit(code=2)
    except LeasePipelineError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(code=1)

    target = output or Path(f"{input_file.stem}-lease{pipeline.renderer.extension}")
    target.write_bytes(document.content)

    usage = document.token_usage
    console.print(Panel.fit(
        f"[bold green][OK] Saved {target}[/bold green]\n\n"
        f"Tokens: {usage.prompt_tokens} prompt + {usage.completion_tokens} completion\n"
        f"Estimated cost: ${document.estimated_cost:.4f}",
        border_style="green",
    ))


@app.command("schema")
def schema(
    output: bool = typer.Option(False, "--output", help="Show the generated lease schema instead"),
):
    """Print the JSON schema of lease input (or output)"""
    from lease_generator.models.lease import LeaseInput, LeaseOutput

    model = LeaseOutput if output else LeaseInput
    console.print_json(json.dumps(model.model_json_schema(by_alias=True)))


if __name__ == "__main__":
    app()
