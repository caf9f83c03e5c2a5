"""rulesync CLI — drive rule synchronization for the tenants in a tenants file."""

import sys
import time

import click
from rich.console import Console
from rich.panel import Panel
from rich.syntax import Syntax
from rich.table import Table

from rulesync import __version__

console = Console()

LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR"]


@click.group()
@click.version_option(version=__version__)
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(LOG_LEVELS, case_sensitive=False),
    help="Logging level (default: LOG_LEVEL or INFO)",
)
@click.pass_context
def main(ctx: click.Context, log_level: str | None):
    """rulesync — keep a multi-tenant ruler in sync with rule documents.

    Selects PrometheusRule documents from a pool by label selector, applies
    each tenant's overrides and external labels, and makes the tenant's
    remote rule namespaces match the result.
    """
    from rulesync.config import Settings
    from rulesync.exceptions import ConfigurationError
    from rulesync.logging_setup import setup_logging

    try:
        settings = Settings.from_env()
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e

    setup_logging(log_level or settings.log_level)
    ctx.obj = settings


# ── Helpers ──────────────────────────────────────────────────────────


def _settings(ctx: click.Context, rules: str | None = None, transport: str | None = None):
    from dataclasses import replace

    from rulesync.exceptions import ConfigurationError

    settings = ctx.obj
    changes = {}
    if rules:
        changes["rules_location"] = rules
    if transport:
        changes["transport"] = transport
    try:
        return replace(settings, **changes) if changes else settings
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e


def _tenants(path: str, tenant_id: str | None = None):
    from rulesync.config import load_tenants
    from rulesync.exceptions import ConfigurationError

    try:
        tenants = load_tenants(path)
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e

    if tenant_id:
        tenants = [t for t in tenants if t.id == tenant_id]
        if not tenants:
            raise click.ClickException(f"tenant '{tenant_id}' not found in {path}")
    return tenants


def _reconciler(settings, source):
    from rulesync.auth.credentials import DirectorySecretStore
    from rulesync.sync.reconciler import TenantReconciler
    from rulesync.transport.factory import transport_factory

    return TenantReconciler(
        source,
        transport_factory(settings),
        secrets=DirectorySecretStore(settings.secrets_dir) if settings.secrets_dir else None,
        status=_status_store(settings),
    )


def _status_store(settings):
    from rulesync.exceptions import ConfigurationError
    from rulesync.sync.status import StatusStore

    try:
        return StatusStore(settings.status_file)
    except ConfigurationError as e:
        raise click.ClickException(e.message) from e


def _open_source(settings):
    from rulesync.sources.git import open_document_source

    if not settings.rules_location:
        raise click.ClickException("no rule pool configured (use --rules or RULESYNC_RULES)")
    return open_document_source(settings.rules_location)


def _print_results(results, title: str = "Sync results"):
    table = Table(title=title)
    table.add_column("Tenant", style="cyan")
    table.add_column("Status")
    table.add_column("State", style="dim")
    table.add_column("Applied", justify="right")
    table.add_column("Deleted", justify="right")
    table.add_column("Alertmanager", justify="center")
    table.add_column("Reason")

    for result in results:
        colour = "green" if result.ok else "red"
        status = f"[{colour}]{result.status.value}[/]"
        table.add_row(
            result.tenant_id,
            status,
            result.state.value,
            str(len(result.applied)),
            str(len(result.deleted)),
            "yes" if result.alertmanager else "-",
            result.reason[:80],
        )

    console.print(table)


rules_option = click.option("--rules", "-r", default=None, help="Rule pool directory or Git URL")
tenant_option = click.option(
    "--tenant", "-t", "tenant_id", default=None, help="Only this tenant id"
)
transport_option = click.option(
    "--transport", default=None, type=click.Choice(["http", "mimirtool"]), help="Transport"
)


# ── Sync ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("tenants_file", type=click.Path(exists=True, dir_okay=False))
@tenant_option
@rules_option
@transport_option
@click.pass_context
def sync(
    ctx: click.Context,
    tenants_file: str,
    tenant_id: str | None,
    rules: str | None,
    transport: str | None,
):
    """Run one reconciliation round for the tenants in TENANTS_FILE.

    Tenants marked for deletion have all their remote namespaces removed.
    Exits with status 1 if any tenant failed.
    """
    settings = _settings(ctx, rules, transport)
    tenants = _tenants(tenants_file, tenant_id)

    console.print(f"\n[bold blue]rulesync[/] — Syncing {len(tenants)} tenant(s)\n")

    with _open_source(settings) as source:
        results = _reconciler(settings, source).reconcile_all(tenants, settings.max_workers)

    _print_results(results)
    if not all(r.ok for r in results):
        sys.exit(1)


# ── Plan ─────────────────────────────────────────────────────────────


@main.command()
@click.argument("tenants_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant id")
@rules_option
@transport_option
@click.pass_context
def plan(
    ctx: click.Context, tenants_file: str, tenant_id: str, rules: str | None, transport: str | None
):
    """Show what a sync would change for one tenant, without writing."""
    from rulesync.auth.credentials import resolve_credentials
    from rulesync.exceptions import RuleSyncError

    settings = _settings(ctx, rules, transport)
    tenant = _tenants(tenants_file, tenant_id)[0]

    console.print(f"\n[bold blue]rulesync[/] — Plan for tenant: {tenant.id}\n")

    with _open_source(settings) as source:
        reconciler = _reconciler(settings, source)
        try:
            credentials = resolve_credentials(tenant.auth, reconciler.secrets)
            with reconciler.transport_factory(tenant, credentials) as remote:
                sync_plan = reconciler.plan(tenant, remote)
        except RuleSyncError as e:
            console.print(f"  [red]Plan failed:[/] {e}")
            sys.exit(1)
        except Exception as e:
            console.print(f"  [red]Plan failed:[/] unexpected error: {e}")
            sys.exit(1)

    if not (sync_plan.desired or sync_plan.to_delete or sync_plan.alertmanager):
        console.print("[yellow]Nothing selected and nothing held remotely.[/]")
        return

    for namespace in sync_plan.created:
        console.print(f"  [green]+[/] {namespace}")
    for namespace in sync_plan.replaced:
        console.print(f"  [yellow]~[/] {namespace}")
    for namespace in sync_plan.deleted:
        console.print(f"  [red]-[/] {namespace}")
    if sync_plan.alertmanager is not None:
        console.print("  [yellow]~[/] Alertmanager configuration")

    console.print(
        f"\n  {len(sync_plan.created)} to create, {len(sync_plan.replaced)} to replace, "
        f"{len(sync_plan.deleted)} to delete"
    )


# ── Render ───────────────────────────────────────────────────────────


@main.command()
@click.argument("tenants_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant id")
@rules_option
@click.pass_context
def render(ctx: click.Context, tenants_file: str, tenant_id: str, rules: str | None):
    """Print the rule groups and Alertmanager configuration for one tenant.

    Nothing is sent to the ruler.
    """
    from rulesync.exceptions import RuleSyncError
    from rulesync.sync.alertmanager import verify

    settings = _settings(ctx, rules)
    tenant = _tenants(tenants_file, tenant_id)[0]

    with _open_source(settings) as source:
        try:
            packed = _reconciler(settings, source).render(tenant)
            if tenant.alertmanager is not None:
                verify(tenant.alertmanager)
        except RuleSyncError as e:
            console.print(f"[red]Render failed:[/] {e}")
            sys.exit(1)

    if not packed and tenant.alertmanager is None:
        console.print("[yellow]No rule documents selected.[/]")
        return

    for namespace in sorted(packed):
        console.print(
            Panel(
                Syntax(packed[namespace].decode("utf-8"), "yaml"),
                title=namespace,
                title_align="left",
            )
        )

    if tenant.alertmanager is not None:
        console.print(
            Panel(Syntax(tenant.alertmanager.config, "yaml"), title="alertmanager", title_align="left")
        )
        for name in sorted(tenant.alertmanager.templates):
            console.print(f"  [dim]template:[/] {name}")


# ── Delete ───────────────────────────────────────────────────────────


@main.command()
@click.argument("tenants_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--tenant", "-t", "tenant_id", required=True, help="Tenant id")
@transport_option
@click.option("--yes", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def delete(ctx: click.Context, tenants_file: str, tenant_id: str, transport: str | None, yes: bool):
    """Delete every rule namespace one tenant holds remotely.

    A declared Alertmanager configuration is deleted as well.
    """
    from rulesync.models.tenant import TenantState, TenantSyncResult
    from rulesync.sources.pool import InMemoryDocumentSource

    settings = _settings(ctx, transport=transport)
    tenant = _tenants(tenants_file, tenant_id)[0]

    if not yes:
        click.confirm(f"Delete all rule namespaces of tenant '{tenant.id}'?", abort=True)

    # A deletion pass never reads the pool
    reconciler = _reconciler(settings, InMemoryDocumentSource())
    try:
        result = reconciler.delete(tenant)
    except Exception as e:
        result = TenantSyncResult.failed(
            tenant.id, f"unexpected error: {e}", state=TenantState.DELETING
        )
        reconciler.status.report(tenant.id, result)
    _print_results([result], title="Deletion result")
    if not result.ok:
        sys.exit(1)


# ── Watch ────────────────────────────────────────────────────────────


@main.command()
@click.argument("tenants_file", type=click.Path(exists=True, dir_okay=False))
@rules_option
@transport_option
@click.option("--interval", "-i", default=None, type=int, help="Seconds between rounds")
@click.option("--rounds", default=0, type=int, help="Stop after this many rounds (0: run forever)")
@click.pass_context
def watch(
    ctx: click.Context,
    tenants_file: str,
    rules: str | None,
    transport: str | None,
    interval: int | None,
    rounds: int,
):
    """Resync all tenants periodically.

    TENANTS_FILE is re-read every round, so edits (including deletion
    markers) take effect without a restart.
    """
    settings = _settings(ctx, rules, transport)
    interval = interval or settings.resync_interval

    console.print(f"\n[bold blue]rulesync[/] — Watching {tenants_file} every {interval}s\n")

    completed = 0
    while True:
        try:
            tenants = _tenants(tenants_file)
        except click.ClickException as e:
            console.print(f"[red]Skipping round:[/] {e.message}")
        else:
            # Fresh source per round so a Git pool is re-cloned
            with _open_source(settings) as source:
                results = _reconciler(settings, source).reconcile_all(tenants, settings.max_workers)
            _print_results(results)

        completed += 1
        if rounds and completed >= rounds:
            return
        time.sleep(interval)


# ── Status ───────────────────────────────────────────────────────────


@main.command()
@click.pass_context
def status(ctx: click.Context):
    """Show the last recorded result of every tenant."""
    results = _status_store(ctx.obj).list_all()
    if not results:
        console.print("[yellow]No tenant has been synced yet.[/]")
        return

    _print_results(results, title=f"Tenant status ({len(results)} tenants)")
