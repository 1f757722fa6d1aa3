"""
Narrative Report Generator CLI

Command-line interface for generating narrative reports.

Usage:
    narrative-report generate --input request.yaml --output report.md
    narrative-report analyze-style --input reference.txt --output style.json
    narrative-report count-tokens notes.txt
    narrative-report info
"""

import asyncio
import json
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from . import __version__
from .config import get_config
from .errors import ReportGeneratorError
from .generator import ReportGenerator, collect_section_inputs, render_sections
from .llm import create_llm_client
from .logging_config import configure_logging
from .models import GenerationRequest, GenerationResult
from .style_analyzer import analyze_style
from .tokens import get_token_counter

app = typer.Typer(
    name="narrative-report",
    help="Generator för verksamhetsberättelser med hjälp av LLM",
    add_completion=False
)

console = Console(stderr=True)


@app.callback()
def main_callback():
    """Configure logging before any command runs."""
    configure_logging(get_config().log)


def load_request(path: Path) -> GenerationRequest:
    """Read a YAML generation request."""
    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    return GenerationRequest.model_validate(data)


def print_result_table(result: GenerationResult, output: Path) -> None:
    table = Table(title="Resultat")
    table.add_column("Parameter", style="cyan")
    table.add_column("Värde", style="green")

    meta = result.metadata
    table.add_row("Modell", meta.model)
    table.add_row("Metod", meta.processing_method.value)
    table.add_row("Delar", str(meta.chunks))
    table.add_row("Tokens", f"{meta.total_tokens} ({meta.prompt_tokens} in / {meta.completion_tokens} ut)")
    table.add_row("Tid", f"{meta.generation_time_ms} ms")
    table.add_row("Utdatafil", str(output))

    console.print(table)


@app.command("generate")
def generate(
    input_file: Path = typer.Option(
        ...,
        "--input", "-i",
        help="Sökväg till YAML-fil med organisation, mall och underlag"
    ),
    output: Path = typer.Option(
        Path("report.md"),
        "--output", "-o",
        help="Fil där den genererade rapporten sparas"
    ),
    metadata_file: Optional[Path] = typer.Option(
        None,
        "--metadata", "-m",
        help="Spara genereringsmetadata som JSON"
    ),
    model: Optional[str] = typer.Option(
        None,
        "--model",
        help="Modell att använda (ersätter värdet i indatafilen)"
    )
):
    """
    Generera en rapport från en YAML-fil.

    Små underlag genereras i ett anrop; stora delas upp i delar som
    genereras var för sig och sammanfogas.
    """
    if not input_file.exists():
        console.print(f"[red]✗ Filen finns inte: {input_file}[/red]")
        raise typer.Exit(1)

    try:
        request = load_request(input_file)
    except (yaml.YAMLError, ValidationError) as e:
        console.print(f"[red]✗ Ogiltig indatafil: {e}[/red]")
        raise typer.Exit(1)

    console.print(Panel.fit(
        "[bold]Narrative Report Generator[/bold]\n"
        f"Organisation: {request.organization.name}\n"
        f"Mall: {request.template.name or request.template.id}",
        border_style="blue"
    ))

    config = get_config()

    async def run_generation() -> GenerationResult:
        client = create_llm_client(config.llm)
        try:
            with Progress(
                SpinnerColumn(),
                TextColumn("[progress.description]{task.description}"),
                console=console
            ) as progress:
                task = progress.add_task("[cyan]Förbereder...", total=None)

                def on_progress(step: str, current: int, total: int) -> None:
                    progress.update(task, description=f"[cyan]{step}")

                generator = ReportGenerator(client, config=config.generation)
                result = await generator.generate(
                    organization=request.organization,
                    template=request.template,
                    sections_content=request.sections_content,
                    style_profile=request.style_profile,
                    reference_analysis=request.reference_analysis,
                    model=model or request.model,
                    on_progress=on_progress,
                )
                progress.update(task, description="[green]Klart!")
                return result
        finally:
            await client.aclose()

    try:
        result = asyncio.run(run_generation())
    except ReportGeneratorError as e:
        console.print(f"\n[red]✗ Genereringen misslyckades: {e}[/red]")
        raise typer.Exit(1)

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(result.content + "\n", encoding="utf-8")

    if metadata_file:
        metadata_file.parent.mkdir(parents=True, exist_ok=True)
        metadata_file.write_text(
            json.dumps(result.to_report_metadata(), ensure_ascii=False, indent=2),
            encoding="utf-8"
        )

    console.print()
    print_result_table(result, output)
    console.print(f"\n[green]✓ Rapport sparad: {output}[/green]")


@app.command("analyze-style")
def analyze_style_command(
    input_file: Path = typer.Option(
        ...,
        "--input", "-i",
        help="Textfil med en tidigare rapport"
    ),
    output: Optional[Path] = typer.Option(
        None,
        "--output", "-o",
        help="Spara stilanalysen som JSON (skrivs annars till stdout)"
    )
):
    """
    Analysera skrivstilen i en referensrapport.
    """
    if not input_file.exists():
        console.print(f"[red]✗ Filen finns inte: {input_file}[/red]")
        raise typer.Exit(1)

    text = input_file.read_text(encoding="utf-8")
    config = get_config()

    async def run_analysis():
        client = create_llm_client(config.llm)
        try:
            return await analyze_style(client, text)
        finally:
            await client.aclose()

    try:
        with console.status("[cyan]Analyserar stil..."):
            analysis = asyncio.run(run_analysis())
    except ReportGeneratorError as e:
        console.print(f"[red]✗ Stilanalysen misslyckades: {e}[/red]")
        raise typer.Exit(1)

    payload = analysis.model_dump_json(indent=2, exclude_none=True)
    if output:
        output.write_text(payload, encoding="utf-8")
        console.print(f"[green]✓ Stilanalys sparad: {output}[/green]")
    else:
        typer.echo(payload)


@app.command("count-tokens")
def count_tokens_command(
    files: List[Path] = typer.Argument(
        ...,
        help="Textfiler eller YAML-förfrågningar att räkna"
    )
):
    """
    Uppskatta antalet tokens i filer.

    YAML-förfrågningar räknas på det sammanfogade underlaget.
    """
    counter = get_token_counter()
    limit = get_config().generation.safe_input_limit

    table = Table(title="Tokenuppskattning")
    table.add_column("Fil", style="cyan")
    table.add_column("Tecken", justify="right")
    table.add_column("Tokens", justify="right", style="green")
    table.add_column("Ett anrop", justify="center")

    for path in files:
        if not path.exists():
            console.print(f"[red]✗ Filen finns inte: {path}[/red]")
            raise typer.Exit(1)

        if path.suffix in (".yaml", ".yml"):
            try:
                request = load_request(path)
            except (yaml.YAMLError, ValidationError) as e:
                console.print(f"[red]✗ Ogiltig indatafil {path}: {e}[/red]")
                raise typer.Exit(1)
            text = render_sections(collect_section_inputs(request.template, request.sections_content))
        else:
            text = path.read_text(encoding="utf-8")

        tokens = counter.count(text)
        table.add_row(str(path), str(len(text)), str(tokens), "ja" if tokens <= limit else "nej")

    console.print(table)
    if not counter.exact:
        console.print("[dim]Approximation: 1 token ≈ 4 tecken (tokenizer ej tillgänglig)[/dim]")


@app.command("info")
def info():
    """
    Visa konfiguration.
    """
    console.print(Panel.fit(
        f"[bold]Narrative Report Generator[/bold]\n"
        f"Version: {__version__}",
        border_style="blue"
    ))

    config = get_config()
    provider = config.llm.active_provider

    table = Table(title="Konfiguration")
    table.add_column("Parameter", style="cyan")
    table.add_column("Värde", style="green")

    table.add_row("LLM-leverantör", provider.value if provider else "-")
    if provider is not None:
        model = config.llm.anthropic_model if provider.value == "anthropic" else config.llm.openai_model
        table.add_row("LLM-modell", model)
    table.add_row("Säker indatagräns", str(config.generation.safe_input_limit))
    table.add_row("Max tokens per del", str(config.generation.max_tokens_per_chunk))
    table.add_row("Tokenizer", config.tokenizer.encoding or "approximation")

    console.print(table)
    if provider is None:
        console.print("[yellow]⚠ Ingen API-nyckel: sätt ANTHROPIC_API_KEY eller OPENAI_API_KEY[/yellow]")


def main():
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
