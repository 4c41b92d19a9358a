"""CLI entry point using Typer."""

import json
import logging
from pathlib import Path

import structlog
import typer
import yaml  # type: ignore[import-untyped]
from rich.console import Console
from rich.table import Table

from voyagerscope.config import settings

app = typer.Typer(
    name="voyagerscope",
    help="VoyagerScope - Capture, classify and resolve entities from SPA traffic.",
)
console = Console()


def configure_logging(level: str) -> None:
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="%H:%M:%S"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(logging.getLevelName(level.upper())),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
    )


@app.callback()
def main(
    log_level: str = typer.Option(settings.log_level, "--log-level", help="Minimum log level"),
) -> None:
    configure_logging(log_level)


def _load_payload(path: str) -> object:
    try:
        return json.loads(Path(path).expanduser().read_text(encoding="utf-8"))
    except (OSError, ValueError) as exc:
        console.print(f"[red]Cannot read payload:[/red] {exc}")
        raise typer.Exit(1) from exc


def _load_active_tables(tables_path: str | None):
    from voyagerscope.classify.tables import load_tables
    from voyagerscope.errors import TablesError

    try:
        return load_tables(tables_path or settings.tables_path)
    except TablesError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(1) from exc


def _entity_label(data: dict) -> str:
    kind = data.get("kind")
    if kind == "profile":
        return data.get("name") or ""
    if kind == "analytics":
        period = f" ({data['period_label']})" if data.get("period_label") else ""
        subject = f" on {data['subject_ref']}" if data.get("subject_ref") else ""
        return f"{data['metric_name']} = {data['value']}{period}{subject}"
    if kind == "connection":
        member = data.get("member") or {}
        return f"{data.get('relation')}: {member.get('name') or data.get('member_ref') or ''}"
    author = (data.get("author") or {}).get("name") or ""
    text = (data.get("text") or "").replace("\n", " ")
    if len(text) > 60:
        text = text[:57] + "..."
    return f"{author}: {text}" if author else text


def _print_entities(entities: list) -> None:
    from voyagerscope.resolve.entities import entity_to_dict

    if not entities:
        console.print("[yellow]No entities resolved.[/yellow]")
        return
    table = Table(title="Entities")
    table.add_column("Kind", style="magenta")
    table.add_column("Identity", style="cyan")
    table.add_column("Summary", style="white")
    for entity in entities:
        data = entity_to_dict(entity)
        table.add_row(data["kind"], str(data.get("identity") or ""), _entity_label(data))
    console.print(table)


@app.command()
def classify(
    url: str = typer.Argument(..., help="Request address"),
    payload: str | None = typer.Option(None, "--payload", "-p", help="Saved JSON payload"),
    tables_path: str | None = typer.Option(None, "--tables", help="Classifier tables YAML"),
) -> None:
    """Classify an address (and optionally its payload)."""
    from voyagerscope.classify.classifier import Classifier, extract_query_id

    tables = _load_active_tables(tables_path)
    body = _load_payload(payload) if payload else None
    result = Classifier(tables).classify(url, body)

    table = Table(title="Classification")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Category", result.category.value)
    table.add_row("Matched By", result.matched_by.value if result.matched_by else "")
    table.add_row("Query Id", extract_query_id(url) or "")
    table.add_row("Captured", "yes" if tables.is_capture_address(url) else "no")
    console.print(table)


@app.command()
def resolve(
    payload: str = typer.Argument(..., help="Saved JSON payload"),
    url: str | None = typer.Option(None, "--url", "-u", help="Address the payload came from"),
    category: str | None = typer.Option(None, "--category", "-c", help="Skip classification"),
    tables_path: str | None = typer.Option(None, "--tables", help="Classifier tables YAML"),
    as_json: bool = typer.Option(False, "--json", help="Print entities as JSON"),
) -> None:
    """Classify and resolve a saved payload."""
    from voyagerscope.classify.categories import Category
    from voyagerscope.classify.classifier import Classifier
    from voyagerscope.resolve.entities import entity_to_dict
    from voyagerscope.resolve.resolver import EntityResolver

    body = _load_payload(payload)
    if category:
        try:
            chosen = Category(category)
        except ValueError as exc:
            console.print(f"[red]Unknown category:[/red] {category}")
            raise typer.Exit(1) from exc
    else:
        chosen = Classifier(_load_active_tables(tables_path)).classify(url, body).category
        console.print(f"[bold]Category:[/bold] {chosen.value}")

    entities = EntityResolver().resolve(body, chosen, url)
    if as_json:
        console.print_json(json.dumps([entity_to_dict(entity) for entity in entities], default=str))
    else:
        _print_entities(entities)


@app.command()
def replay(
    har_path: str = typer.Argument(..., help="HAR file to replay"),
    output: str | None = typer.Option(None, "--output", "-o", help="Write events as JSONL"),
    tables_path: str | None = typer.Option(None, "--tables", help="Classifier tables YAML"),
    include_payload: bool = typer.Option(False, "--include-payload", help="Keep raw payloads in JSONL"),
) -> None:
    """Run recorded HAR traffic through the pipeline."""
    from voyagerscope.ingest.events import EventBus
    from voyagerscope.outbound.jsonl import JsonlSink
    from voyagerscope.replay.har import replay_har

    tables = _load_active_tables(tables_path)
    bus = EventBus()
    sink = JsonlSink(output, include_payload=include_payload) if output else None
    if sink is not None:
        bus.subscribe(sink)

    console.print(f"[bold blue]Replaying {har_path}...[/bold blue]")
    try:
        result = replay_har(har_path, tables=tables, bus=bus)
    except (OSError, ValueError) as exc:
        console.print(f"[red]Replay failed:[/red] {exc}")
        raise typer.Exit(1) from exc
    finally:
        if sink is not None:
            sink.close()

    stats = Table(title="Replay")
    stats.add_column("Metric", style="cyan")
    stats.add_column("Count", style="white")
    for key, value in result.stats.items():
        stats.add_row(key, str(value))
    console.print(stats)

    categories = Table(title="Categories")
    categories.add_column("Category", style="magenta")
    categories.add_column("Exchanges", style="white")
    for name, count in sorted(result.category_counts.items(), key=lambda item: (-item[1], item[0])):
        categories.add_row(name, str(count))
    console.print(categories)

    if sink is not None:
        console.print(f"[green]Events saved:[/green] {sink.path}")


@app.command()
def watch(
    url: str = typer.Argument("https://www.linkedin.com/feed/", help="Page to open"),
    seconds: float = typer.Option(60.0, "--seconds", "-s", help="How long to observe"),
    output: str | None = typer.Option(None, "--output", "-o", help="JSONL output (default: settings.events_path)"),
    tables_path: str | None = typer.Option(None, "--tables", help="Classifier tables YAML"),
) -> None:
    """Open the SPA in a browser and capture its traffic."""
    from voyagerscope.browser.capture import BrowserCapture
    from voyagerscope.ingest.pipeline import CapturePipeline
    from voyagerscope.outbound.jsonl import JsonlSink

    pipeline = CapturePipeline.from_settings(_load_active_tables(tables_path))
    sink = JsonlSink(output or settings.events_path)
    pipeline.bus.subscribe(sink)
    pipeline.bus.subscribe(lambda event: console.print(f"[green]{event.summary()}[/green]"))

    try:
        result = BrowserCapture(pipeline).watch(url, seconds=seconds)
    finally:
        pipeline.close()
        sink.close()

    if result.error:
        console.print(f"[red]Capture failed:[/red] {result.error}")
        raise typer.Exit(1)
    console.print(
        f"[bold]Responses:[/bold] {result.responses}  [bold]Exchanges:[/bold] {result.exchanges}  "
        f"[bold]Events:[/bold] {sink.count}"
    )
    console.print(f"[green]Events saved:[/green] {sink.path}")


@app.command()
def tables(
    output: str | None = typer.Option(None, "--output", "-o", help="Write tables YAML here"),
    tables_path: str | None = typer.Option(None, "--tables", help="Classifier tables YAML"),
) -> None:
    """Dump the active classifier tables."""
    from voyagerscope.classify.tables import save_tables

    active = _load_active_tables(tables_path)
    if output:
        save_tables(active, output)
        console.print(f"[green]Tables saved:[/green] {output}")
        return
    console.print(yaml.safe_dump(active.model_dump(mode="json"), sort_keys=False))


if __name__ == "__main__":
    app()
