#!/usr/bin/env python3
"""
ConvertMorph - CLI Interface

Analyze, route and compress PDFs, and run merge/split/convert jobs on the
background worker pool.

Usage:
    convertmorph analyze input.pdf
    convertmorph compress input.pdf --level strong --output small.pdf
    convertmorph compress input.pdf --preference privacy
    convertmorph merge a.pdf b.pdf c.pdf
    convertmorph split input.pdf --ranges 1-3,5
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    TaskProgressColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from convertmorph import (
    CompressionOptions,
    JobError,
    PDFAnalyzer,
    PDFCompressor,
    choose_compression_method,
    get_compression_method_explanation,
    validate_compression_method,
    worker_manager,
)
from convertmorph.config import settings
from convertmorph.messages import OutputFiles
from convertmorph.router import CLIENT_SIDE, METHODS, PREFERENCES
from convertmorph.utils import format_size, get_output_path

console = Console()
log_console = Console(stderr=True)


def create_progress_bar():
    """Create a rich progress bar."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        TaskProgressColumn(),
        TimeElapsedColumn(),
        console=console,
    )


def setup_logging(verbose: bool):
    level = logging.DEBUG if verbose else settings.LOG_LEVEL
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=log_console, show_path=False)],
    )


def run_pool_job(description: str, submit, json_output: bool):
    """Submit a pool job with a progress bar and wait for its output."""
    try:
        if json_output:
            return submit(None).result()

        with create_progress_bar() as progress:
            task = progress.add_task(description, total=100)
            future = submit(lambda percent: progress.update(task, completed=percent))
            output = future.result()
            progress.update(task, completed=100, description="Complete")
        return output
    except (JobError, ValueError) as e:
        console.print(f"[bold red]Error: {e}[/bold red]")
        sys.exit(1)
    finally:
        worker_manager.shutdown()


def print_output_files(output, json_output: bool):
    if json_output:
        click.echo(json.dumps(output.to_dict(), indent=2))
        return

    if isinstance(output, OutputFiles):
        paths = output.output_paths
    else:
        paths = [output.output_path]

    if not paths:
        console.print("[yellow]No output files were written[/yellow]")
    for path in paths:
        console.print(f"[green]{path}[/green]")
    console.print(f"\n[bold green]{len(paths)} file(s) written in {output.duration_ms} ms[/bold green]")


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def cli(ctx, verbose: bool):
    """ConvertMorph - PDF compression and conversion tools."""
    setup_logging(verbose)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--preference", "-p",
    type=click.Choice(PREFERENCES),
    default=None,
    help="Routing preference (default: automatic)",
)
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output as JSON",
)
def analyze(input_file: str, preference: Optional[str], json_output: bool):
    """Analyze a PDF file and recommend a compression method."""
    input_path = Path(input_file)

    analysis = PDFAnalyzer.from_path(input_path).analyze()
    decision = choose_compression_method(analysis, preference)
    validation = validate_compression_method(analysis, decision.method)

    if json_output:
        click.echo(json.dumps({
            "analysis": analysis.to_dict(),
            "decision": decision.to_dict(),
            "validation": validation.to_dict(),
            "explanation": get_compression_method_explanation(decision).to_dict(),
        }, indent=2))
        return

    table = Table(title=f"PDF Analysis: {input_path.name}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Current Size", format_size(analysis.size_bytes))
    table.add_row("Pages", str(analysis.pages) + (" (estimated)" if analysis.used_fallback else ""))
    table.add_row("Image Heavy", "Yes" if analysis.is_image_heavy else "No")
    table.add_row("Text Heavy", "Yes" if analysis.is_text_heavy else "No")
    table.add_row("Complexity", analysis.complexity)
    table.add_row("Method", decision.method)
    table.add_row("Reason", decision.reason)
    table.add_row("Estimated Time", decision.estimated_time)

    console.print(table)
    console.print(f"[bold]{decision.recommendation}[/bold]")
    if validation.warning:
        style = "yellow" if validation.valid else "red"
        console.print(f"[{style}]{validation.warning}[/{style}]")


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--level", "-l",
    type=click.Choice(["light", "medium", "strong"]),
    default="medium",
    help="Compression level (default: medium)",
)
@click.option(
    "--output", "-o",
    type=click.Path(),
    help="Output file path (default: input_compressed.pdf)",
)
@click.option(
    "--preference", "-p",
    type=click.Choice(PREFERENCES),
    default=None,
    help="Routing preference (default: automatic)",
)
@click.option(
    "--method", "-m",
    type=click.Choice(METHODS),
    default=None,
    help="Force a compression method instead of choosing one",
)
@click.option("--keep-metadata", is_flag=True, help="Keep document metadata")
@click.option("--no-images", is_flag=True, help="Do not re-encode embedded images")
@click.option("--no-font-subset", is_flag=True, help="Do not subset embedded fonts")
@click.option(
    "--json-output", "-j",
    is_flag=True,
    help="Output results as JSON",
)
def compress(
    input_file: str,
    level: str,
    output: Optional[str],
    preference: Optional[str],
    method: Optional[str],
    keep_metadata: bool,
    no_images: bool,
    no_font_subset: bool,
    json_output: bool,
):
    """Compress a PDF file, in-process or on a background worker."""
    input_path = Path(input_file)
    output_path = Path(output) if output else get_output_path(input_path)

    analysis = PDFAnalyzer.from_path(input_path).analyze()
    decision = choose_compression_method(analysis, preference)
    method = method or decision.method

    validation = validate_compression_method(analysis, method)
    if not validation.valid:
        console.print(f"[bold red]Error: {validation.warning}[/bold red]")
        sys.exit(1)

    if not json_output:
        console.print(Panel(
            f"[bold blue]ConvertMorph[/bold blue]\n"
            f"Input: {input_path.name}\n"
            f"Method: {method} ({decision.estimated_time})\n"
            f"Level: {level}",
            title="Compression Job",
        ))
        if validation.warning:
            console.print(f"[yellow]{validation.warning}[/yellow]")

    if method == CLIENT_SIDE:
        options = CompressionOptions(
            level=level,
            remove_metadata=not keep_metadata,
            optimize_images=not no_images,
            subset_fonts=not no_font_subset,
        )

        data = input_path.read_bytes()
        if json_output:
            result = PDFCompressor(options).compress(data)
        else:
            with create_progress_bar() as progress:
                task = progress.add_task("Initializing...", total=100)

                def progress_callback(update):
                    progress.update(task, description=update.message, completed=update.progress)

                result = PDFCompressor(options, progress_callback).compress(data)

        if result.success:
            output_path.write_bytes(result.compressed_pdf)
        report = result.to_dict()
        error = result.error
    else:
        def submit(on_progress):
            return worker_manager.compress_pdf(
                str(input_path),
                level,
                on_progress,
                remove_metadata=not keep_metadata,
                optimize_images=not no_images,
                subset_fonts=not no_font_subset,
            )

        job_output = run_pool_job("Compressing on worker...", submit, json_output)
        if Path(job_output.output_path) != output_path:
            Path(job_output.output_path).replace(output_path)
        report = {
            "success": True,
            "original_size": job_output.original_size,
            "compressed_size": job_output.compressed_size,
            "duration_ms": job_output.duration_ms,
        }
        error = None

    report["method"] = method
    report["output_path"] = str(output_path) if report["success"] else None

    if json_output:
        click.echo(json.dumps(report, indent=2))
        if error:
            sys.exit(1)
        return

    table = Table(title="Compression Results")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")

    table.add_row("Method", method)
    table.add_row("Original Size", format_size(report["original_size"]))
    table.add_row("Compressed Size", format_size(report["compressed_size"]))
    if "compression_ratio" in report:
        table.add_row("Reduction", f"{report['compression_ratio']}%")
        table.add_row("Images Optimized", str(report["images_optimized"]))
    console.print(table)

    for warning in report.get("warnings", []):
        console.print(f"[yellow]{warning}[/yellow]")

    if error:
        console.print(f"\n[bold red]Error: {error}[/bold red]")
        sys.exit(1)
    console.print(f"\n[bold green]Saved to: {output_path}[/bold green]")


@cli.command()
@click.argument("input_files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--json-output", "-j", is_flag=True, help="Output results as JSON")
def merge(input_files: tuple, json_output: bool):
    """Merge PDF files into merged.pdf beside the first input."""
    output = run_pool_job(
        "Merging...",
        lambda on_progress: worker_manager.merge_pdfs(list(input_files), on_progress),
        json_output,
    )
    print_output_files(output, json_output)


@cli.command()
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--ranges", "-r", required=True, help="Pages to extract (e.g., 1-3,5,7-9)")
@click.option("--json-output", "-j", is_flag=True, help="Output results as JSON")
def split(input_file: str, ranges: str, json_output: bool):
    """Split selected pages of a PDF into one file per page."""
    output = run_pool_job(
        "Splitting...",
        lambda on_progress: worker_manager.split_pdf(input_file, ranges, on_progress),
        json_output,
    )
    print_output_files(output, json_output)


@cli.command("images-to-pdf")
@click.argument("image_files", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--mode",
    type=click.Choice(["single", "multiple"]),
    default="single",
    help="One combined PDF or one PDF per image (default: single)",
)
@click.option("--json-output", "-j", is_flag=True, help="Output results as JSON")
def images_to_pdf_cmd(image_files: tuple, mode: str, json_output: bool):
    """Convert images to PDF."""
    output = run_pool_job(
        "Converting images...",
        lambda on_progress: worker_manager.images_to_pdf(list(image_files), mode, on_progress),
        json_output,
    )
    print_output_files(output, json_output)


@cli.command("pdf-to-images")
@click.argument("input_file", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--format", "-f", "image_format",
    type=click.Choice(["png", "jpg"]),
    default="png",
    help="Image format (default: png)",
)
@click.option("--json-output", "-j", is_flag=True, help="Output results as JSON")
def pdf_to_images_cmd(input_file: str, image_format: str, json_output: bool):
    """Render every page of a PDF to an image."""
    output = run_pool_job(
        "Rendering pages...",
        lambda on_progress: worker_manager.pdf_to_images(input_file, image_format, on_progress),
        json_output,
    )
    print_output_files(output, json_output)


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
