#!/usr/bin/env python3
"""
Agentic Graph RAG - analysis-driven retrieval over vector, graph and attribute stores
"""

import asyncio
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
import yaml
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from graphrag_service.service import GraphRAGService

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = (".txt", ".md", ".json")


def load_env_file():
    """Load environment variables from .env file if it exists."""
    env_file = Path(".env")
    if env_file.exists():
        with open(env_file, 'r') as f:
            for line in f:
                line = line.strip()
                if line and not line.startswith('#') and '=' in line:
                    key, value = line.split('=', 1)
                    os.environ.setdefault(key.strip(), value.strip())


def load_config(config_path: str = "config/config.yaml") -> dict:
    """Load configuration from YAML file."""
    try:
        with open(config_path, 'r') as f:
            config = yaml.safe_load(f)
        return config or {}
    except FileNotFoundError:
        print(f"❌ Configuration file not found: {config_path}")
        sys.exit(1)
    except yaml.YAMLError as e:
        print(f"❌ Error parsing configuration file: {e}")
        sys.exit(1)


def setup_logging(config: dict):
    """Setup logging configuration."""
    log_config = config.get("logging", {})
    log_level = getattr(logging, log_config.get("level", "INFO"))
    log_format = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    log_file = log_config.get("file", "logs/graphrag_service.log")
    Path(log_file).parent.mkdir(parents=True, exist_ok=True)

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[
            logging.FileHandler(log_file),
            logging.StreamHandler()
        ]
    )


def load_documents(data_path: str) -> List[Dict[str, Any]]:
    """
    Read ingestable documents from a file or directory.

    Text and markdown files become one document each. A JSON file holds either
    a single ``{content, metadata}`` object or a list of them.
    """
    path = Path(data_path)
    if path.is_dir():
        files = sorted(p for p in path.rglob("*") if p.suffix.lower() in SUPPORTED_EXTENSIONS)
    elif path.exists():
        files = [path]
    else:
        raise click.BadParameter(f"Path not found: {data_path}")

    documents = []
    for file_path in files:
        if file_path.suffix.lower() == ".json":
            with open(file_path, 'r', encoding='utf-8') as f:
                payload = json.load(f)
            documents.extend(payload if isinstance(payload, list) else [payload])
        else:
            content = file_path.read_text(encoding='utf-8')
            documents.append({
                "content": content,
                "metadata": {"id": file_path.stem, "source": str(file_path)}
            })
    return documents


class GraphRAGCLI:
    """Console front end over GraphRAGService."""

    def __init__(self, config: dict):
        self.config = config
        self.console = Console()
        self.service = GraphRAGService(config)
        self.debug_mode = config.get("debug", {}).get("enabled", False)

    async def query(self, user_query: str, domain: Optional[str] = None) -> dict:
        context = {"domain": domain} if domain else None
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self.console
        ) as progress:
            task = progress.add_task("Retrieving...", total=None)
            response = await self.service.query(user_query, context)
            progress.update(task, description="Query complete")
        return response

    async def stream_query(self, user_query: str, domain: Optional[str] = None):
        """Print stream events as they arrive."""
        context = {"domain": domain} if domain else None
        stream = await self.service.query(user_query, context, stream=True)
        if isinstance(stream, dict):
            self.display_result(stream)
            return

        async for event in stream:
            if event.type == "result":
                self.display_result({"success": True, "data": event.data})
            elif event.type == "error":
                self.console.print(f"[red]❌ {event.content}[/red]")
            else:
                self.console.print(f"[dim]{event.type}:[/dim] {event.content}")

    def display_result(self, response: dict):
        """Display a response envelope."""
        if not response.get("success"):
            error = response.get("error", {})
            self.console.print(Panel(
                f"{error.get('message', 'Unknown error')}",
                title=f"[bold red]{error.get('kind', 'error')} ({error.get('component', 'unknown')})[/bold red]",
                border_style="red"
            ))
            return

        data = response["data"]
        analysis = data["query_analysis"]

        routing_table = Table(title="Query Analysis")
        routing_table.add_column("Property", style="cyan")
        routing_table.add_column("Value", style="white")

        routing_table.add_row("Strategy", data["strategy"])
        routing_table.add_row("Intent", ", ".join(analysis["intent"]))
        routing_table.add_row("Complexity", analysis["complexity"])
        routing_table.add_row("Entities", ", ".join(analysis["entities"]) or "-")
        routing_table.add_row("Confidence", f"{data['results']['retrieval_metadata'].get('confidence', 0):.2f}")
        routing_table.add_row("Latency", f"{data.get('latency_ms', 0):.0f} ms")
        self.console.print(routing_table)

        self.console.print(Panel(
            data["results"]["answer"],
            title="[bold blue]Answer[/bold blue]",
            border_style="blue"
        ))

        if self.debug_mode:
            chain = data["reasoning_chain"]
            debug_table = Table(title="Reasoning Chain")
            debug_table.add_column("Step", style="cyan")
            debug_table.add_column("Details", style="white")
            for i, step in enumerate(chain["steps"], 1):
                debug_table.add_row(str(i), step)
            debug_table.add_row("Decision", chain["final_decision"])
            self.console.print(debug_table)

            docs_table = Table(title="Supporting Documents")
            docs_table.add_column("ID", style="cyan")
            docs_table.add_column("Source", style="magenta")
            docs_table.add_column("Score", style="white")
            for doc in data["results"]["supporting_documents"]:
                docs_table.add_row(doc["id"], doc.get("source", ""), f"{doc.get('score', 0):.3f}")
            self.console.print(docs_table)

    async def ingest_documents(self, data_path: str, domain: str):
        self.console.print(f"[yellow]Processing documents from {data_path}...[/yellow]")
        documents = load_documents(data_path)
        if not documents:
            self.console.print("[green]No documents to process.[/green]")
            return

        response = await self.service.ingest(documents, domain)
        self.display_ingestion_result(response)

    def display_ingestion_result(self, response: dict):
        if not response.get("success"):
            error = response.get("error", {})
            self.console.print(f"[red]❌ Ingestion failed: {error.get('message')}[/red]")
            return

        data = response["data"]
        table = Table(title="Ingestion Results")
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")

        table.add_row("Documents Processed", str(data["documents_processed"]))
        table.add_row("Entities Extracted", str(data["entities_extracted"]))
        table.add_row("Nodes Created", str(data["nodes_created"]))
        table.add_row("Relationships Created", str(data["relationships_created"]))
        table.add_row("Chunks Indexed", str(data["chunks_indexed"]))
        table.add_row("Entity Types", str(len(data["ontology"].get("entities", []))))
        table.add_row("Relationship Types", str(len(data["ontology"].get("relationships", []))))
        self.console.print(table)

        for error in data.get("errors", []):
            self.console.print(f"  • [red]{error}[/red]")

    def show_stats(self):
        """Display system statistics."""
        stats = self.service.get_stats()
        performance = stats["performance"]

        perf_table = Table(title="Retrieval Performance")
        perf_table.add_column("Metric", style="cyan")
        perf_table.add_column("Value", style="white")
        perf_table.add_row("Total Queries", str(performance["total_queries"]))
        perf_table.add_row("Average Latency", f"{performance['average_latency_ms']:.0f} ms")
        perf_table.add_row("Success Rate", f"{performance['success_rate']:.1f}%")
        for strategy, effectiveness in performance["strategy_distribution"].items():
            perf_table.add_row(
                f"Strategy: {strategy}",
                f"{effectiveness['usage_count']} queries, {effectiveness['success_rate']:.0%} success"
            )

        cache = stats["analyzer_cache"]
        perf_table.add_row("Analysis Cache", f"{cache['size']} entries, {cache['hit_rate']:.0%} hit rate")

        graph = stats["graph"]
        kg_table = Table(title="Knowledge Graph Statistics")
        kg_table.add_column("Metric", style="cyan")
        kg_table.add_column("Value", style="white")
        kg_table.add_row("Total Entities", str(graph["total_entities"]))
        kg_table.add_row("Total Relationships", str(graph["total_relationships"]))
        kg_table.add_row("Entity Types", str(len(graph["entity_types"])))
        kg_table.add_row("Relationship Types", str(len(graph["relationship_types"])))

        vector = stats["vector"]
        vector_table = Table(title="Vector Index Statistics")
        vector_table.add_column("Metric", style="cyan")
        vector_table.add_column("Value", style="white")
        if "error" not in vector:
            vector_table.add_row("Index Name", vector.get("index_name", "Unknown"))
            vector_table.add_row("Total Vectors", str(vector.get("total_vector_count", 0)))
            vector_table.add_row("Dimension", str(vector.get("dimension", 0)))
        else:
            vector_table.add_row("Status", f"Error: {vector['error']}")
        vector_table.add_row("Stored Documents", str(stats["documents"]["total_documents"]))

        self.console.print(perf_table)
        self.console.print(kg_table)
        self.console.print(vector_table)

    async def interactive_mode(self):
        """Run the system in interactive mode."""
        self.console.print(Panel(
            "[bold blue]Agentic Graph RAG[/bold blue]\n"
            "Ask a question and the system will pick a retrieval strategy for it.\n"
            "Type 'quit' to exit, 'stats' for system statistics, 'help' for commands.",
            border_style="blue"
        ))

        while True:
            try:
                query = click.prompt("\nQuery")

                if query.lower() in ['quit', 'exit', 'q']:
                    break
                elif query.lower() == 'stats':
                    self.show_stats()
                    continue
                elif query.lower() == 'help':
                    self.console.print("""
                    [bold]Available Commands:[/bold]
                    • Ask any question about the ingested documents
                    • 'stats' - Show system statistics
                    • 'help' - Show this help message
                    • 'quit' - Exit the system
                    """)
                    continue
                elif not query.strip():
                    continue

                response = await self.query(query)
                self.display_result(response)

            except KeyboardInterrupt:
                self.console.print("\n[yellow]Exiting...[/yellow]")
                break

    def close(self):
        self.service.close()


@click.group()
@click.option('--config', '-c', default='config/config.yaml', help='Configuration file path')
@click.option('--debug', '-d', is_flag=True, help='Enable debug mode')
@click.pass_context
def cli(ctx, config, debug):
    """Agentic Graph RAG CLI."""
    load_env_file()

    ctx.ensure_object(dict)
    ctx.obj['config'] = load_config(config)
    ctx.obj['debug'] = debug

    setup_logging(ctx.obj['config'])

    if debug:
        ctx.obj['config'].setdefault('debug', {})['enabled'] = True


@cli.command()
@click.argument('query')
@click.option('--stream', '-s', is_flag=True, help='Print progress events as they happen')
@click.option('--domain', help='Restrict retrieval to a domain')
@click.pass_context
def query(ctx, query, stream, domain):
    """Ask a question."""
    system = GraphRAGCLI(ctx.obj['config'])

    async def run_query():
        if stream:
            await system.stream_query(query, domain)
        else:
            response = await system.query(query, domain)
            system.display_result(response)

    try:
        asyncio.run(run_query())
    finally:
        system.close()


@cli.command()
@click.argument('data_path', required=False, default='data/documents')
@click.option('--domain', default='general', help='Domain hint for ontology generation')
@click.pass_context
def ingest(ctx, data_path, domain):
    """Build the knowledge graph from .txt, .md and .json documents."""
    system = GraphRAGCLI(ctx.obj['config'])
    try:
        asyncio.run(system.ingest_documents(data_path, domain))
    finally:
        system.close()


@cli.command()
@click.pass_context
def stats(ctx):
    """Show system statistics."""
    system = GraphRAGCLI(ctx.obj['config'])
    try:
        system.show_stats()
    finally:
        system.close()


@cli.command()
@click.pass_context
def interactive(ctx):
    """Start interactive query mode."""
    system = GraphRAGCLI(ctx.obj['config'])
    try:
        asyncio.run(system.interactive_mode())
    finally:
        system.close()


if __name__ == "__main__":
    cli()
