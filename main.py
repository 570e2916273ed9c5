#!/usr/bin/env python3
"""
ragetl Command Line Interface

Ingest markdown into the SQLite vector store, search it with metadata
filters, and inspect or prune its contents.
"""

import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import click
import yaml
from rich.console import Console
from rich.table import Table
from rich import print as rprint

from ragetl.config_manager import ConfigManager, RagOptions
from ragetl.embedding_service import create_embedding_model
from ragetl.exceptions import ConfigurationError
from ragetl.rag_module import create_fingerprint_store, create_markdown_module
from ragetl.retriever import VectorStoreDocumentRetriever
from ragetl.vector_database import SqliteVectorStore, read_stored_dimension


# Global configuration
console = Console()
DEFAULT_CONFIG_PATH = "config/ragetl.yaml"
PREVIEW_CHARS = 160


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO

    handlers = [logging.StreamHandler()]
    try:
        Path('logs').mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler('logs/ragetl.log'))
    except OSError:
        # Read-only working directory: console logging only
        pass

    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=handlers,
    )


def parse_metadata_value(raw: str) -> Any:
    """Interpret a CLI value as a YAML scalar so that 3, true and null match typed metadata."""
    try:
        value = yaml.safe_load(raw)
    except yaml.YAMLError:
        return raw
    if isinstance(value, (dict, list)):
        return raw
    return value


def parse_filters(filters: Tuple[str, ...]) -> Dict[str, Any]:
    """Turn repeated ``key=value`` options into a filter mapping."""
    parsed = {}
    for item in filters:
        key, sep, raw = item.partition('=')
        if not sep or not key.strip():
            raise click.BadParameter(f"Expected key=value, got '{item}'", param_hint='--filter')
        parsed[key.strip()] = parse_metadata_value(raw)
    return parsed


def load_options(ctx) -> RagOptions:
    config_manager: ConfigManager = ctx.obj['config_manager']
    options = config_manager.get_options()
    errors = config_manager.validator.validate(options)
    if errors:
        raise ConfigurationError("; ".join(errors))
    if options.vector_store_backend != "sqlite":
        raise ConfigurationError(
            f"CLI needs the sqlite backend, got '{options.vector_store_backend}'"
        )
    return options


def open_store(options: RagOptions, embedding_dimension: Optional[int] = None) -> SqliteVectorStore:
    dimension = embedding_dimension or read_stored_dimension(options.db_path) or options.embedding_dimension
    return SqliteVectorStore(options.db_path, dimension)


@click.group()
@click.option('--config', 'config_path', default=DEFAULT_CONFIG_PATH, help='Path to YAML configuration')
@click.option('--db-path', default=None, help='Path to vector database (overrides config)')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.pass_context
def cli(ctx, config_path: str, db_path: Optional[str], verbose: bool):
    """ragetl - Document ETL and retrieval over a local vector store"""
    setup_logging(verbose)

    try:
        config_manager = ConfigManager(config_path)
        if db_path:
            config_manager.override_param('db_path', db_path)
    except Exception as e:
        rprint(f"[red]❌ Failed to load configuration: {e}[/red]")
        sys.exit(1)

    ctx.ensure_object(dict)
    ctx.obj['config_manager'] = config_manager
    ctx.obj['verbose'] = verbose


# ========== INGESTION COMMANDS ==========

@cli.group()
def ingest():
    """Markdown ingestion commands"""
    pass


def _run_ingestion(ctx, paths: Tuple[Path, ...], incremental: bool):
    mode = "incremental" if incremental else "full"
    try:
        options = load_options(ctx)
        module = create_markdown_module(list(paths), options, embedding_model=create_embedding_model(options))

        with console.status(f"[bold blue]Running {mode} ingestion..."):
            if incremental:
                count = module.ingestion_service.ingest_incremental()
            else:
                count = module.ingestion_service.ingest_all()

        if incremental and count == 0:
            rprint("[yellow]No changes detected[/yellow]")
        else:
            rprint(f"[green]✓ Ingested {count} chunks ({mode})[/green]")
        rprint(f"🔑 Tracked fingerprints: {module.ingestion_service.fingerprint_count()}")

    except Exception as e:
        rprint(f"[red]❌ Ingestion failed: {e}[/red]")
        sys.exit(1)


@ingest.command('full')
@click.argument('paths', nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.pass_context
def ingest_full(ctx, paths: Tuple[Path, ...]):
    """Embed and store every chunk of the given markdown files or directories"""
    _run_ingestion(ctx, paths, incremental=False)


@ingest.command('incremental')
@click.argument('paths', nargs=-1, required=True, type=click.Path(exists=True, path_type=Path))
@click.pass_context
def ingest_incremental(ctx, paths: Tuple[Path, ...]):
    """Embed and store only chunks that changed since the last run"""
    _run_ingestion(ctx, paths, incremental=True)


# ========== RETRIEVAL COMMANDS ==========

@cli.command()
@click.argument('query')
@click.option('--top-k', type=int, default=None, help='Maximum number of results')
@click.option('--threshold', type=float, default=None, help='Minimum similarity score (0 accepts all)')
@click.option('--filter', 'filters', multiple=True, help='Metadata filter as key=value (repeatable)')
@click.option('--citations/--no-citations', default=None, help='Show the source of each result')
@click.pass_context
def search(ctx, query: str, top_k: Optional[int], threshold: Optional[float],
           filters: Tuple[str, ...], citations: Optional[bool]):
    """Search the vector store"""
    runtime_filters = parse_filters(filters)
    try:
        options = load_options(ctx)
        embedding_model = create_embedding_model(options)
        store = open_store(options, embedding_model.dimensions())
        retriever = VectorStoreDocumentRetriever(
            store,
            embedding_model,
            similarity_threshold=options.similarity_threshold if threshold is None else threshold,
            top_k=options.top_k if top_k is None else top_k,
            default_filters=options.default_filters
        )
        results = retriever.retrieve(query, runtime_filters)
    except Exception as e:
        rprint(f"[red]❌ Search failed: {e}[/red]")
        sys.exit(1)

    if not results:
        rprint("[yellow]No matching documents[/yellow]")
        return

    show_source = options.include_source_citation_by_default if citations is None else citations

    table = Table(title=f"Results for: {query}")
    table.add_column("#", justify="right")
    table.add_column("Score", justify="right", style="cyan")
    if show_source:
        table.add_column("Source", style="green")
    table.add_column("Text", style="white")

    for rank, doc in enumerate(results, 1):
        preview = doc.text if len(doc.text) <= PREVIEW_CHARS else doc.text[:PREVIEW_CHARS] + "..."
        row = [str(rank), f"{doc.score:.3f}"]
        if show_source:
            row.append(f"{doc.metadata.get('source', '?')}#{doc.metadata.get('chunk_index', '?')}")
        row.append(preview)
        table.add_row(*row)

    console.print(table)


# ========== MAINTENANCE COMMANDS ==========

@cli.command()
@click.argument('key')
@click.argument('value')
@click.option('--confirm', is_flag=True, help='Skip confirmation prompt')
@click.pass_context
def delete(ctx, key: str, value: str, confirm: bool):
    """Delete every document whose metadata KEY equals VALUE"""
    if not confirm:
        if not click.confirm(f"Delete all documents where {key}={value}?"):
            rprint("[yellow]Deletion cancelled[/yellow]")
            return

    try:
        options = load_options(ctx)
        store = open_store(options)
        deleted = store.delete_by_metadata(key, parse_metadata_value(value))

        if deleted:
            # Fingerprints are keyed by chunk, not by metadata; drop them all
            create_fingerprint_store(options).clear()
            rprint(f"[green]✓ Deleted {deleted} documents[/green]")
            rprint("[yellow]Fingerprints cleared; the next incremental run re-embeds everything[/yellow]")
        else:
            rprint("[yellow]No documents matched[/yellow]")

    except Exception as e:
        rprint(f"[red]❌ Delete failed: {e}[/red]")
        sys.exit(1)


@cli.command()
@click.pass_context
def stats(ctx):
    """Show vector store statistics"""
    try:
        options = load_options(ctx)
        store_stats = open_store(options).get_stats()
        fingerprint_count = len(create_fingerprint_store(options))
    except Exception as e:
        rprint(f"[red]❌ Failed to get stats: {e}[/red]")
        sys.exit(1)

    table = Table(title="Vector Store")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right")
    table.add_row("Database", str(options.db_path))
    table.add_row("Documents", str(store_stats['documents']))
    table.add_row("Embeddings", str(store_stats['embeddings']))
    table.add_row("Embedding dimension", str(store_stats['embedding_dimension']))
    table.add_row("Size (MB)", f"{store_stats['database_size_mb']:.2f}")
    table.add_row("sqlite-vec", "enabled" if store_stats['sqlite_vec_enabled'] else "numpy fallback")
    table.add_row("Fingerprints", str(fingerprint_count))

    console.print(table)


if __name__ == '__main__':
    cli()
