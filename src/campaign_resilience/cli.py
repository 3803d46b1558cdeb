"""CLI interface for campaign-resilience."""

import asyncio
import json
from typing import List, Optional

import typer
from rich.console import Console
from rich.syntax import Syntax
from rich.table import Table
from rich.tree import Tree

from campaign_resilience import __version__
from campaign_resilience.config.schemas import ServiceConfig
from campaign_resilience.types import DispatchSummary

app = typer.Typer(
    name="campaign-resilience",
    help="Resilient delivery of conversion events to external ingestion APIs",
    add_completion=False
)
console = Console()
console_err = Console(stderr=True)

INGESTION_DEPENDENCY = "ingestion-api"


async def run_dispatch(config: ServiceConfig) -> DispatchSummary:
    """Compose the dispatcher graph from a ServiceConfig and run one pass."""
    from campaign_resilience.delivery import (
        ConversionEventDispatcher,
        GuardedIngestionClient,
        HttpIngestionClient,
        PostgresEventRepository,
    )
    from campaign_resilience.resilience import ResilienceServices

    resilience = ResilienceServices(config.resilience)
    repository = PostgresEventRepository(config.storage)
    await repository.initialize()
    try:
        async with HttpIngestionClient(config.ingestion) as http_client:
            ingestion = GuardedIngestionClient(
                http_client, resilience.breakers.get_breaker(INGESTION_DEPENDENCY)
            )
            dispatcher = ConversionEventDispatcher(repository, ingestion, config.dispatch)
            return await dispatcher.run()
    finally:
        await repository.close()


def _load(config_path: Optional[str], profile: Optional[str], overrides: Optional[List[str]]):
    from campaign_resilience.config.manager import ConfigManager

    return ConfigManager().load_config(
        config_path=config_path,
        profile=profile,
        overrides=overrides or None,
    )


@app.command()
def dispatch(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file (defaults to config/defaults/config.yaml)"
    ),
    profile: Optional[str] = typer.Option(
        None,
        "--profile",
        "-p",
        help="Config profile to use (e.g., production)"
    ),
    overrides: Optional[List[str]] = typer.Option(
        None,
        "--override",
        "-o",
        help="Dotlist override, repeatable (e.g., dispatch.batch_limit=500)"
    ),
    as_json: bool = typer.Option(
        False,
        "--json",
        help="Print the summary as JSON"
    ),
):
    """Run one dispatch pass over pending conversion events.

    Partition failures are reported in the summary and do not change the exit
    code; the command exits 1 only when the run itself cannot proceed.

    Examples:
        campaign-resilience dispatch
        campaign-resilience dispatch --profile production
        campaign-resilience dispatch -o dispatch.batch_limit=200 --json
    """
    try:
        from campaign_resilience.logging_config import configure_from_config

        config = _load(config_path, profile, overrides)
        configure_from_config(config.logging)

        summary = asyncio.run(run_dispatch(config))

    except Exception as e:
        console_err.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)

    if as_json:
        console.print_json(json.dumps(summary.model_dump()))
        return

    table = Table(title="Dispatch summary")
    table.add_column("Processed", justify="right")
    table.add_column("Sent", justify="right", style="green")
    table.add_column("Expired", justify="right", style="yellow")
    table.add_column("Failed", justify="right", style="red")
    table.add_row(
        str(summary.processed),
        str(summary.sent),
        str(summary.expired),
        str(summary.failed),
    )
    console.print(table)
    for error in summary.errors:
        console.print(f"[red]-[/red] {error}")


@app.command()
def config(
    config_path: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file"
    ),
    profile: Optional[str] = typer.Option(
        None,
        "--profile",
        "-p",
        help="Config profile to use"
    ),
    overrides: Optional[List[str]] = typer.Option(
        None,
        "--override",
        help="Dotlist override, repeatable"
    ),
    output_format: str = typer.Option(
        "yaml",
        "--output",
        "-o",
        help="Output format: yaml, json, or tree"
    ),
):
    """Display the resolved configuration.

    Examples:
        campaign-resilience config
        campaign-resilience config --profile production
        campaign-resilience config --output tree
    """
    try:
        from campaign_resilience.config.manager import ConfigManager

        config_mgr = ConfigManager()
        cfg = config_mgr.load_config(
            config_path=config_path,
            profile=profile,
            overrides=overrides or None,
        )

        if output_format == "json":
            console.print_json(json.dumps(ConfigManager.to_dict(cfg), default=str))

        elif output_format == "tree":
            tree = Tree(f"[bold]{cfg.project}[/bold] ({cfg.environment})")

            resilience_tree = tree.add("[cyan]Resilience")
            resilience_tree.add(f"Retry: max_retries={cfg.resilience.retry.max_retries}")
            resilience_tree.add(
                f"Circuit Breaker: threshold={cfg.resilience.circuit_breaker.failure_threshold}, "
                f"recovery={cfg.resilience.circuit_breaker.recovery_timeout}s"
            )
            resilience_tree.add(f"Fallback tiers: {', '.join(cfg.resilience.fallback.enabled_tiers)}")

            dispatch_tree = tree.add("[cyan]Dispatch")
            dispatch_tree.add(f"Batch limit: {cfg.dispatch.batch_limit}")
            dispatch_tree.add(f"Stale after: {cfg.dispatch.stale_after_days} days")
            dispatch_tree.add(f"Max retry count: {cfg.dispatch.max_retry_count}")

            ingestion_tree = tree.add("[cyan]Ingestion")
            ingestion_tree.add(f"Endpoint: {cfg.ingestion.base_url}/{cfg.ingestion.api_version}")
            ingestion_tree.add(f"Timeout: {cfg.ingestion.timeout}s")

            console.print(tree)

        else:
            console.print(Syntax(config_mgr.to_yaml(cfg), "yaml", theme="monokai"))

    except Exception as e:
        console_err.print(f"[bold red]Error:[/bold red] {e}")
        raise typer.Exit(code=1)


@app.command()
def version():
    """Show campaign-resilience version."""
    console.print(f"[bold]campaign-resilience[/bold] v{__version__}")


if __name__ == "__main__":
    app()
