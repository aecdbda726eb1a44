"""
CLI for translate-mirror.

Admin surface for the language registry, the translation job queue and the
resolution engine.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from translate_mirror.config import Settings, create_default_config, load_config
from translate_mirror.content import DuckDBContentStore
from translate_mirror.database import Database
from translate_mirror.executors import DuplicateExecutor, LLMExecutor, TranslationExecutor
from translate_mirror.languages import Language, LanguageConfigError, LanguageRegistry
from translate_mirror.llm import OpenRouterProvider
from translate_mirror.logging_setup import setup_logging
from translate_mirror.pipeline import (
    BacklogAnalyzer,
    DelayQueue,
    FieldSnapshotStore,
    InvalidTransitionError,
    JobFilter,
    JobNotFoundError,
    JobStatus,
    JobTriggers,
    JobType,
    QueueWorker,
    TranslationQueue,
)
from translate_mirror.resolution import (
    EntityTranslationMap,
    LanguageContextResolver,
    RelationRemapper,
    RequestContext,
)

app = typer.Typer(
    name="translate-mirror",
    help="Multilingual content mirrors: translation job queue and language-aware resolution.",
    add_completion=False,
)

console = Console()

STATUS_STYLES = {
    JobStatus.PENDING: "yellow",
    JobStatus.PROCESSING: "cyan",
    JobStatus.COMPLETED: "green",
    JobStatus.FAILED: "red",
}


@dataclass
class Services:
    """Objects shared by the commands, wired from settings."""

    settings: Settings
    db: Database
    store: DuckDBContentStore
    registry: LanguageRegistry
    queue: TranslationQueue

    def triggers(self) -> JobTriggers:
        pipeline = self.settings.pipeline
        return JobTriggers(
            self.store,
            self.queue,
            self.registry,
            FieldSnapshotStore(self.store, pipeline.watched_fields, pipeline.watch_custom_fields),
            scheduler=DelayQueue(self.db),
            edit_debounce=timedelta(seconds=pipeline.edit_debounce_seconds),
        )

    def context_resolver(self) -> LanguageContextResolver:
        return LanguageContextResolver(
            self.registry,
            self.store,
            self.settings.routing,
            self.settings.paths.document_root,
        )

    def remapper(self) -> RelationRemapper:
        return RelationRemapper(EntityTranslationMap(self.store), self.context_resolver())

    def worker(self, executor: TranslationExecutor) -> QueueWorker:
        return QueueWorker(self.db, self.queue, self.store, self.registry, executor)


def get_settings(config_path: Path | None = None) -> Settings:
    """Load settings, turning validation errors into a console message."""
    try:
        return load_config(config_path)
    except ValidationError as e:
        console.print(f"[red]Invalid configuration: {e}[/red]")
        raise typer.Exit(1) from None


def get_services(config_path: Path | None = None) -> Services:
    settings = get_settings(config_path)
    setup_logging(settings.logging, console=Console(stderr=True))
    db = Database(settings.paths.database_path)
    pipeline = settings.pipeline
    queue = TranslationQueue(
        db,
        staleness=timedelta(minutes=pipeline.staleness_minutes),
        processing_delay=timedelta(minutes=pipeline.processing_delay_minutes),
    )
    registry = LanguageRegistry.load(db)
    if not len(registry) and settings.languages:
        # First run: seed the stored registry from the config file
        try:
            registry = LanguageRegistry.from_config(settings.languages)
        except LanguageConfigError as e:
            db.close()
            console.print(f"[red]Invalid languages in config: {e}[/red]")
            raise typer.Exit(1) from None
        registry.save(db)
    return Services(
        settings=settings,
        db=db,
        store=DuckDBContentStore(db),
        registry=registry,
        queue=queue,
    )


def _parse_job_type(value: str | None) -> JobType | None:
    if not value:
        return None
    try:
        return JobType(value.upper())
    except ValueError:
        console.print(f"[red]Invalid job type: {value}[/red] (use NEW, EDIT or OLD)")
        raise typer.Exit(1) from None


def _executor(services: Services, dry_run: bool) -> TranslationExecutor:
    if dry_run:
        return DuplicateExecutor(services.store, services.remapper())
    try:
        provider = OpenRouterProvider.from_config(services.settings.translation)
    except ValueError as e:
        console.print(f"[red]{e}[/red]")
        console.print("[dim]Use --dry-run to copy content without translating[/dim]")
        raise typer.Exit(1) from None
    return LLMExecutor(services.store, provider, services.settings.translation, services.remapper())


def _languages_table(registry: LanguageRegistry) -> Table:
    table = Table(title="Languages")
    table.add_column("#", style="dim", justify="right")
    table.add_column("Prefix", style="cyan")
    table.add_column("Name")
    table.add_column("URL segment", style="green")
    table.add_column("Description", style="dim")
    for index, lang in enumerate(registry, start=1):
        table.add_row(str(index), lang.prefix, lang.name, lang.url_segment, lang.description)
    return table


# ==================== Setup ====================


@app.command()
def init(
    config: Path = typer.Option(Path("config.yaml"), "--config", "-c", help="Config file to create"),
    force: bool = typer.Option(False, "--force", "-f", help="Overwrite an existing config file"),
) -> None:
    """Write a default config file and seed the language registry."""
    if config.exists() and not force:
        console.print(f"[yellow]Config file exists, keeping it:[/yellow] {config}")
    else:
        create_default_config(config)
        console.print(f"[green]Created config file:[/green] {config}")

    services = get_services(config)
    try:
        console.print(
            Panel(
                f"Database: {services.settings.paths.database_path}\n"
                f"Languages: {', '.join(services.registry.prefixes()) or '-'}",
                title="[bold blue]translate-mirror[/bold blue]",
                border_style="blue",
            )
        )
    finally:
        services.db.close()


# ==================== Languages ====================


@app.command()
def languages(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """List configured languages."""
    services = get_services(config)
    try:
        if not len(services.registry):
            console.print("[yellow]No languages configured[/yellow]")
            return
        console.print(_languages_table(services.registry))
    finally:
        services.db.close()


@app.command("language-add")
def language_add(
    name: str = typer.Option(..., "--name", "-n", help="Display name"),
    prefix: str = typer.Option(..., "--prefix", "-p", help="Stable storage key, e.g. fr-CA"),
    path: str = typer.Option("", "--path", help="URL segment (defaults to the prefix)"),
    description: str = typer.Option("", "--description", "-d", help="Notes for translators"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Add a language."""
    services = get_services(config)
    try:
        language = services.registry.add(
            Language(prefix=prefix, name=name, path=path, description=description)
        )
        services.registry.save(services.db)
        console.print(f"[green]Added {language.name} ({language.prefix}) at /{language.url_segment}/[/green]")
    except LanguageConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None
    finally:
        services.db.close()


@app.command("language-update")
def language_update(
    prefix: str = typer.Argument(..., help="Current prefix of the language"),
    name: str | None = typer.Option(None, "--name", "-n", help="New display name"),
    new_prefix: str | None = typer.Option(None, "--new-prefix", help="New prefix"),
    path: str | None = typer.Option(None, "--path", help="New URL segment"),
    description: str | None = typer.Option(None, "--description", "-d", help="New description"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Edit a language; omitted values are kept."""
    services = get_services(config)
    try:
        language = services.registry.update(
            prefix, name=name, new_prefix=new_prefix, path=path, description=description
        )
        services.registry.save(services.db)
        console.print(f"[green]Updated {language.name} ({language.prefix})[/green]")
    except LanguageConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None
    finally:
        services.db.close()


@app.command("language-remove")
def language_remove(
    prefix: str = typer.Argument(..., help="Prefix of the language to remove"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Remove a language. Existing translations and jobs are left in place."""
    services = get_services(config)
    try:
        language = services.registry.remove(prefix)
        services.registry.save(services.db)
        console.print(f"[green]Removed {language.name} ({language.prefix})[/green]")
    except LanguageConfigError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None
    finally:
        services.db.close()


# ==================== Pipeline ====================


@app.command()
def enqueue(
    entity_id: int = typer.Argument(..., help="Published original to queue"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Queue NEW jobs for a published original (skips existing pairs)."""
    services = get_services(config)
    try:
        jobs = services.triggers().enqueue_new(entity_id)
        if not jobs:
            console.print("[yellow]No jobs created (not a published original, or already queued)[/yellow]")
            return
        console.print(f"[green]Queued {len(jobs)} NEW job(s): {', '.join(str(j.id) for j in jobs)}[/green]")
    finally:
        services.db.close()


@app.command()
def analyze(
    kinds: list[str] | None = typer.Option(None, "--kind", "-k", help="Content kind (repeatable)"),
    start: datetime | None = typer.Option(None, "--start", formats=["%Y-%m-%d"], help="Published on or after"),
    end: datetime | None = typer.Option(None, "--end", formats=["%Y-%m-%d"], help="Published on or before"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Queue OLD jobs for existing content without translations."""
    services = get_services(config)
    pipeline = services.settings.pipeline
    analyzer = BacklogAnalyzer(
        services.store,
        services.queue,
        services.registry,
        batch_size=pipeline.analyze_batch_size,
        default_kinds=pipeline.default_kinds,
    )
    if end is not None:
        # Date-only bound covers the whole day
        end = end.replace(hour=23, minute=59, second=59)
    try:
        with console.status("Analyzing content..."):
            result = analyzer.analyze(kinds, start, end)
    except ValueError as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None
    finally:
        services.db.close()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Key", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Analysis", result.analysis_id)
    table.add_row("Kinds", ", ".join(result.kinds))
    table.add_row("Scanned", str(result.scanned))
    table.add_row("Queued", str(result.added))
    table.add_row("Already queued", str(result.skipped_existing_job))
    table.add_row("Already translated", str(result.skipped_translated))
    console.print(Panel(table, title="[bold]Backlog analysis[/bold]", border_style="cyan"))


@app.command()
def process(
    limit: int = typer.Option(1, "--limit", "-n", help="Maximum jobs to process"),
    job_type: str | None = typer.Option(None, "--type", "-t", help="Only NEW, EDIT or OLD jobs"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Copy content instead of calling the LLM"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Claim and process pending jobs."""
    selected = _parse_job_type(job_type)
    services = get_services(config)
    try:
        worker = services.worker(_executor(services, dry_run))
        processed = asyncio.run(worker.run(limit=limit, job_type=selected))
        if not processed:
            console.print("[yellow]No claimable jobs[/yellow]")
            return
        for job in processed:
            style = STATUS_STYLES.get(job.status, "white")
            detail = f" -> {job.translated_entity_id}" if job.translated_entity_id else ""
            error = f" [dim]{job.error_message}[/dim]" if job.error_message else ""
            console.print(
                f"[{style}]#{job.id} {job.type.value} {job.parent_entity_id}/{job.language}: "
                f"{job.status.value}{detail}[/{style}]{error}"
            )
    finally:
        services.db.close()


@app.command()
def jobs(
    status: str | None = typer.Option(None, "--status", "-s", help="pending, processing, completed or failed"),
    job_types: list[str] | None = typer.Option(None, "--type", "-t", help="Job type (repeatable)"),
    language: str | None = typer.Option(None, "--language", "-l", help="Language prefix"),
    search: str | None = typer.Option(None, "--search", "-q", help="Search parent titles"),
    page: int = typer.Option(1, "--page", "-p", help="Page number"),
    per_page: int = typer.Option(50, "--per-page", help="Jobs per page"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """List translation jobs."""
    try:
        status_filter = JobStatus(status.lower()) if status else None
    except ValueError:
        console.print(f"[red]Invalid status: {status}[/red]")
        raise typer.Exit(1) from None
    types = [t for t in (_parse_job_type(v) for v in job_types or []) if t is not None]

    services = get_services(config)
    try:
        result = services.queue.list_jobs(
            JobFilter(status=status_filter, types=types, language=language, search=search),
            page=page,
            per_page=per_page,
            store=services.store,
        )
        if not result.jobs:
            console.print("[yellow]No jobs found[/yellow]")
            return

        titles = {job.parent_entity_id: None for job in result.jobs}
        for entity_id, entity in services.store.get_many(titles).items():
            titles[entity_id] = entity.title

        table = Table(title=f"Jobs (page {result.page}/{result.pages}, {result.total} total)")
        table.add_column("ID", style="dim", justify="right")
        table.add_column("Type")
        table.add_column("Entity", justify="right")
        table.add_column("Title", max_width=40)
        table.add_column("Lang", style="cyan")
        table.add_column("Status")
        table.add_column("Translation", justify="right")
        table.add_column("Created", style="dim")
        table.add_column("Error", style="red", max_width=40)
        for job in result.jobs:
            style = STATUS_STYLES.get(job.status, "white")
            table.add_row(
                str(job.id),
                job.type.value,
                str(job.parent_entity_id),
                titles.get(job.parent_entity_id) or "-",
                job.language,
                f"[{style}]{job.status.value}[/{style}]",
                str(job.translated_entity_id or "-"),
                job.created_at.strftime("%Y-%m-%d %H:%M") if job.created_at else "-",
                job.error_message or "",
            )
        console.print(table)
    finally:
        services.db.close()


@app.command()
def retry(
    job_id: int = typer.Argument(..., help="Failed job to resubmit"),
    now: bool = typer.Option(False, "--now", help="Process the job immediately"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Copy content instead of calling the LLM"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Resubmit a failed job."""
    services = get_services(config)
    try:
        job = services.queue.retry(job_id)
        console.print(f"[green]Job {job.id} is pending again[/green]")
        if now:
            job = asyncio.run(services.worker(_executor(services, dry_run)).process_job(job.id))
            style = STATUS_STYLES.get(job.status, "white")
            console.print(f"[{style}]Job {job.id}: {job.status.value}[/{style}]")
            if job.error_message:
                console.print(f"[red]{job.error_message}[/red]")
    except (JobNotFoundError, InvalidTransitionError) as e:
        console.print(f"[red]Error: {e}[/red]")
        raise typer.Exit(1) from None
    finally:
        services.db.close()


@app.command("reset-stale")
def reset_stale(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Reset jobs stuck in processing back to pending."""
    services = get_services(config)
    try:
        count = services.queue.reset_stale()
        console.print(f"[green]Reset {count} stale job(s)[/green]")
    finally:
        services.db.close()


@app.command("reset-failed")
def reset_failed(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Resubmit every failed job."""
    services = get_services(config)
    try:
        count = services.queue.reset_all_failed()
        console.print(f"[green]Reset {count} failed job(s)[/green]")
    finally:
        services.db.close()


@app.command("check-edits")
def check_edits(
    entity_id: int | None = typer.Option(None, "--entity", "-e", help="Schedule a check for this entity"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Run due edit checks, optionally scheduling one for an entity first."""
    services = get_services(config)
    try:
        triggers = services.triggers()
        if entity_id is not None:
            if triggers.schedule_edit_check(entity_id):
                console.print(f"[dim]Scheduled edit check for {entity_id}[/dim]")
            else:
                console.print(f"[dim]Edit check for {entity_id} already scheduled[/dim]")
        created = triggers.run_due_checks()
        console.print(f"[green]{len(created)} EDIT job(s) created[/green]")
    finally:
        services.db.close()


# ==================== Resolution ====================


@app.command()
def detect(
    path: str = typer.Argument(..., help="Request path, e.g. /fr/hello-world/"),
    token: str | None = typer.Option(None, "--token", help="Routing token bound to the request"),
    entity_id: int | None = typer.Option(None, "--entity", help="Entity bound to the request"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Show the language detected for a request path."""
    services = get_services(config)
    try:
        resolver = services.context_resolver()
        ctx = RequestContext(path=path, routing_token=token, entity_id=entity_id)
        if token is None:
            route = resolver.match_route(path)
            if route is not None:
                ctx.bind_language(route.prefix)
                console.print(f"[dim]Route: {route.prefix} / {route.slug} page={route.page}[/dim]")
        language = resolver.resolve_for_request(ctx)
        if resolver.is_ignored(path):
            console.print("[yellow]Ignored path (file, asset, system, feed or excluded)[/yellow]")
        elif language is None:
            console.print("Default language")
        else:
            console.print(f"[green]{language}[/green]")
            routed_id = resolver.resolve_route_entity(path)
            if routed_id is not None:
                console.print(f"Entity: #{routed_id}")
    finally:
        services.db.close()


@app.command()
def resolve(
    entity_id: int = typer.Argument(..., help="Original entity id"),
    language: str = typer.Argument(..., help="Language prefix"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Show the published translation of an entity."""
    services = get_services(config)
    try:
        translation_map = EntityTranslationMap(services.store)
        original_id = translation_map.resolve_original(entity_id)
        translated = translation_map.resolve_entity(original_id, language)
        if translated is None:
            console.print(f"[yellow]No published {language} translation of {original_id}[/yellow]")
            raise typer.Exit(1)
        console.print(f"[green]{original_id} -> {translated.id}[/green] {translated.title}")
    finally:
        services.db.close()


# ==================== Reporting ====================


@app.command()
def stats(
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Show queue statistics."""
    services = get_services(config)
    try:
        statistics = services.queue.statistics()
    finally:
        services.db.close()

    table = Table(title="Translation queue", show_header=False)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right")
    table.add_row("Total", str(statistics["total"]))
    for status_name, count in statistics["by_status"].items():
        table.add_row(f"  {status_name}", str(count))
    for type_name, count in statistics["by_type"].items():
        table.add_row(f"  {type_name}", str(count))
    table.add_row("Stale", str(statistics["stale"]))
    console.print(table)


@app.command()
def logs(
    level: str | None = typer.Option(None, "--level", help="Filter by level"),
    stage: str | None = typer.Option(None, "--stage", help="Filter by stage"),
    job_id: int | None = typer.Option(None, "--job", "-j", help="Filter by job"),
    limit: int = typer.Option(50, "--limit", "-n", help="Entries to show"),
    config: Path | None = typer.Option(None, "--config", "-c", help="Config file"),
) -> None:
    """Show the processing log."""
    services = get_services(config)
    try:
        entries = services.db.get_logs(level=level, stage=stage, job_id=job_id, limit=limit)
    finally:
        services.db.close()

    if not entries:
        console.print("[yellow]No log entries[/yellow]")
        return

    table = Table(title="Processing log")
    table.add_column("Time", style="dim")
    table.add_column("Level")
    table.add_column("Stage", style="cyan")
    table.add_column("Job", justify="right")
    table.add_column("Message")
    level_styles = {"ERROR": "red", "WARNING": "yellow", "INFO": "green", "DEBUG": "dim"}
    for entry in entries:
        style = level_styles.get(entry["level"], "white")
        table.add_row(
            entry["created_at"].strftime("%Y-%m-%d %H:%M:%S") if entry["created_at"] else "-",
            f"[{style}]{entry['level']}[/{style}]",
            entry["stage"],
            str(entry["job_id"] or "-"),
            entry["message"],
        )
    console.print(table)


def main() -> None:
    """Main entry point."""
    app()


if __name__ == "__main__":
    main()
