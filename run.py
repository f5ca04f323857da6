"""Entry point for the smoke-free regulations Q&A application."""

import asyncio
import logging
from pathlib import Path
from typing import Optional

import typer

from smokefree_qa.app import build_service
from smokefree_qa.config import load_config
from smokefree_qa.ingestion.preprocess import (
    CorpusBuilder,
    compression_stats,
    validate_compression,
    write_artifact,
)
from smokefree_qa.storage.database import initialize_database

app = typer.Typer(name="smokefree-qa", help="금연구역 규정 Q&A", add_completion=False)

EXIT_COMMANDS = {"exit", "quit", "종료"}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command()
def chat(
    config_path: Path = typer.Option(Path("config.yaml"), "--config", help="YAML config file"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
) -> None:
    """Ask questions interactively; answers stream to the console."""
    _setup_logging(verbose)
    config = load_config(config_path)

    # Ensure required directories exist
    Path(config.storage.pdf_dir).mkdir(parents=True, exist_ok=True)
    initialize_database(config.storage.sqlite_path)

    service = build_service(config)
    session = service.new_session()

    async def loop() -> None:
        await asyncio.to_thread(service.store.initialize)
        while True:
            question = (await asyncio.to_thread(input, "\n질문> ")).strip()
            if not question:
                continue
            if question.lower() in EXIT_COMMANDS:
                return
            if question == "/reset":
                session.reset()
                continue
            async for fragment in session.ask_streaming(question):
                typer.echo(fragment, nl=False)
            typer.echo()

    try:
        asyncio.run(loop())
    except (KeyboardInterrupt, EOFError):
        typer.echo()


@app.command()
def preprocess(
    config_path: Path = typer.Option(Path("config.yaml"), "--config", help="YAML config file"),
    pdf_dir: Optional[Path] = typer.Option(None, help="Source directory (defaults to config)"),
    output: Optional[Path] = typer.Option(None, help="Artifact path (defaults to config)"),
) -> None:
    """Parse the source PDFs and write the precomputed corpus artifact."""
    _setup_logging(False)
    config = load_config(config_path)
    source_dir = pdf_dir or Path(config.storage.pdf_dir)
    target = output or Path(config.storage.corpus_path)

    artifact = CorpusBuilder(config.chunking).build_from_directory(source_dir)
    if not artifact.chunks:
        typer.echo(f"No text could be extracted from {source_dir}", err=True)
        raise typer.Exit(code=1)

    write_artifact(artifact, target)
    meta = artifact.metadata
    typer.echo(
        f"Wrote {target}: {meta.chunk_count} chunks from {len(meta.sources)} documents, "
        f"ratio {meta.compression_ratio:.2f}, quality {meta.quality_score:.1f}"
    )

    for warning in validate_compression(compression_stats(meta)):
        typer.echo(f"warning: {warning}", err=True)


@app.command()
def stats(
    config_path: Path = typer.Option(Path("config.yaml"), "--config", help="YAML config file"),
) -> None:
    """Show today's API key usage."""
    config = load_config(config_path)
    service = build_service(config)
    rpd = service.quota.stats()

    typer.echo(f"{rpd.reset_time}: {rpd.total_used}/{rpd.total_max} used, {rpd.remaining} left")
    for key in rpd.api_keys:
        percentage = service.quota.usage_percentage(key.used_today, key.max_per_day)
        state = "active" if key.is_active else "inactive"
        typer.echo(
            f"  {key.key_name} {key.masked_key}: {key.used_today}/{key.max_per_day} "
            f"({percentage:.0f}%, {service.quota.usage_status(percentage)}, {state})"
        )
    typer.echo(f"Reset in {service.quota.time_until_reset()}")


if __name__ == "__main__":
    app()
