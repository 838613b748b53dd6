"""Command-line interface for the fiscal document sync service."""

from collections.abc import Iterator
from datetime import datetime
from pathlib import Path

import click

from fiscal_sync.config.settings import Settings
from fiscal_sync.database.connection import Database
from fiscal_sync.database.models import TenantRecord
from fiscal_sync.ingestion.exceptions import IngestionError
from fiscal_sync.ingestion.models import RawDocument
from fiscal_sync.logging.logger import Log
from fiscal_sync.main import Services, build_services
from fiscal_sync.sync.exceptions import SyncError


def _services(ctx: click.Context) -> Services:
    settings: Settings = ctx.obj
    db = Database.from_settings(settings)
    ctx.call_on_close(db.close)
    return build_services(settings, db)


def _load_tenant(services: Services, tenant_id: int) -> TenantRecord:
    tenant = services.tenant_repo.find_by_id(tenant_id)
    if tenant is None:
        raise click.ClickException(f"Tenant {tenant_id} not found")
    return tenant


def _batches(paths: list[Path], size: int) -> Iterator[list[Path]]:
    for start in range(0, len(paths), size):
        yield paths[start:start + size]


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Fiscal document sync command-line interface"""
    settings = Settings()
    Log.configure(settings.log_level)
    ctx.obj = settings


@cli.command()
@click.pass_context
def worker(ctx: click.Context) -> None:
    """Run the scheduler loop until interrupted."""
    _services(ctx).scheduler.run()


@cli.command(name="import")
@click.argument("path", type=click.Path(exists=True, file_okay=False, path_type=Path))
@click.option("--tenant", "tenant_id", type=int, required=True, help="Tenant ID")
@click.pass_context
def import_documents(ctx: click.Context, path: Path, tenant_id: int) -> None:
    """Import every file of a directory through the upload pipeline."""
    services = _services(ctx)
    settings: Settings = ctx.obj
    _load_tenant(services, tenant_id)

    files = sorted(p for p in path.iterdir() if p.is_file())
    if not files:
        click.echo(f"No files found in {path}")
        return

    imported = failed = 0
    for batch in _batches(files, settings.max_upload_files):
        documents = [RawDocument(name=p.name, content=p.read_bytes()) for p in batch]
        try:
            result = services.pipeline.ingest(tenant_id, documents)
        except IngestionError as exc:
            raise click.ClickException(str(exc)) from exc
        imported += len(result.succeeded)
        failed += len(result.failed)
        for failure in result.failed:
            click.echo(f"  {failure.name}: {failure.reason}", err=True)

    click.echo(f"Imported {imported} of {len(files)} files ({failed} failed)")


@cli.command()
@click.option("--tenant", "tenant_id", type=int, required=True, help="Tenant ID")
@click.pass_context
def sync(ctx: click.Context, tenant_id: int) -> None:
    """Sync one tenant now, outside the hourly schedule."""
    services = _services(ctx)
    tenant = _load_tenant(services, tenant_id)
    try:
        outcomes = services.scheduler.trigger(tenant)
    except SyncError as exc:
        raise click.ClickException(str(exc)) from exc

    for outcome in outcomes:
        line = (
            f"{outcome.provider_kind.value}: {outcome.status.value}, {outcome.new} new, "
            f"{outcome.updated} existing, {len(outcome.failed)} failed"
        )
        if outcome.error:
            line += f" ({outcome.error})"
        click.echo(line)


@cli.command()
@click.option("--tenant", "tenant_id", type=int, required=True, help="Tenant ID")
@click.option(
    "--since",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Earliest issue date known to be missing",
)
@click.pass_context
def recover(ctx: click.Context, tenant_id: int, since: datetime | None) -> None:
    """Reset the tenant's cursors so the next sync replays history."""
    services = _services(ctx)
    _load_tenant(services, tenant_id)
    target = services.cursor_manager.mark_for_recovery(tenant_id, since)
    click.echo(f"Tenant {tenant_id}: NSU reset, window restarts at {target.date().isoformat()}")


@cli.command()
@click.option("--tenant", "tenant_id", type=int, required=True, help="Tenant ID")
@click.option("--limit", type=int, default=20, show_default=True, help="Number of runs")
@click.pass_context
def history(ctx: click.Context, tenant_id: int, limit: int) -> None:
    """Show the latest sync runs of a tenant."""
    services = _services(ctx)
    for log in services.sync_log_repo.recent(tenant_id, limit):
        started = log.started_at.isoformat() if log.started_at else "-"
        line = (
            f"#{log.id} {started} {log.provider_kind.value} {log.status.value} "
            f"new={log.new_docs} updated={log.updated_docs} failed={log.failed_docs}"
        )
        if log.error_message:
            line += f" error={log.error_message}"
        click.echo(line)


@cli.command()
@click.pass_context
def health(ctx: click.Context) -> None:
    """Check that the database is reachable."""
    services = _services(ctx)
    if not services.db.ping():
        raise click.ClickException("database: unreachable")
    click.echo("database: ok")


if __name__ == "__main__":
    cli()
