# Overview: Flask CLI command groups for tenant bootstrap, day control and stock files.

# backend/stockledger/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app stockledger <group> <command> [options]
#   (the examples below drop the "python -m" and "--app stockledger" prefix)
#
# Tenants:
# - flask tenants create --name "Corner Bar" --code BAR --timezone Africa/Nairobi
# - flask tenants list
# - flask tenants add-user --tenant-id 1 --username manager
#
# Master data:
# - flask counters create --tenant-id 1 --name "Main Bar"
# - flask counters list --tenant-id 1
# - flask items create --tenant-id 1 --name "Tusker 500ml" --code TSK500 --cost 180 --selling 250 --reorder-level 24
# - flask items list --tenant-id 1
#
# Daily session:
# - flask day status --tenant-id 1
# - flask day open --tenant-id 1 --user-id 1 [--date 2026-01-31]
# - flask day close --tenant-id 1 --user-id 1 [--date 2026-01-31]
# - flask day close-previous --tenant-id 1 --user-id 1
#
# Stock:
# - flask stock import --tenant-id 1 --user-id 1 --type sales sales.csv
# - flask stock current --tenant-id 1
# - flask stock export-reorder --tenant-id 1 [--output reorder.csv]
# - flask stock sales-template --tenant-id 1 [--output template.csv]
# - flask stock variance --tenant-id 1 [--date 2026-01-31] [--csv]

import click
from flask.cli import with_appcontext

from .services import catalog_service, daily_session_service, export_service, import_service, stock_service
from .services.concurrency import StorageError
from .services.daily_session_service import DailySessionError
from .services.export_service import ExportError
from .services.import_schemas import import_types
from .services.import_service import StockImportError
from .services.movement_service import tenant_today
from .services.variance_service import variance_summary
from .validation import ConflictError, ValidationError, parse_date_param, to_cents


def _fail(message: str) -> None:
    raise click.ClickException(f"FAIL {message}")


def _write_output(text: str, output: str | None, label: str) -> None:
    if output:
        with open(output, "w", encoding="utf-8", newline="") as fh:
            fh.write(text)
        click.echo(f"PASS Wrote {label} to {output}")
    else:
        click.echo(text, nl=False)


def _date_option(value):
    try:
        return parse_date_param(value, "date")
    except ValidationError as e:
        raise click.BadParameter(str(e))


# -----------------------------------------------------------------------------
# tenants
# -----------------------------------------------------------------------------

@click.group('tenants')
def tenants_group():
    """Tenant (shop) management commands."""


@tenants_group.command('create')
@click.option('--name', required=True, help='Tenant name')
@click.option('--code', default=None, help='Short code (unique)')
@click.option('--timezone', 'tz', default='UTC', help='IANA timezone for the business date')
@with_appcontext
def create_tenant_cli(name, code, tz):
    """Create a new tenant."""
    try:
        tenant = catalog_service.create_tenant(name=name, code=code, timezone=tz)
    except (ValidationError, ConflictError) as e:
        _fail(str(e))
    click.echo(f"PASS Created tenant: {tenant.name} (ID: {tenant.id}, Code: {tenant.code or '-'})")


@tenants_group.command('list')
@with_appcontext
def list_tenants_cli():
    """List all tenants."""
    tenants = catalog_service.list_tenants()
    if not tenants:
        click.echo("No tenants found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Name':<30} {'Code':<12} {'Timezone':<16} {'Active'}")
    click.echo("="*70)
    for t in tenants:
        active_str = "Yes" if t.is_active else "No"
        click.echo(f"{t.id:<5} {t.name:<30} {t.code or '-':<12} {t.timezone:<16} {active_str}")
    click.echo("="*70 + "\n")


@tenants_group.command('add-user')
@click.option('--tenant-id', type=int, required=True)
@click.option('--username', required=True)
@with_appcontext
def add_user_cli(tenant_id, username):
    """Create an actor for a tenant."""
    try:
        user = catalog_service.create_user(tenant_id=tenant_id, username=username)
    except (ValidationError, ConflictError) as e:
        _fail(str(e))
    click.echo(f"PASS Created user: {user.username} (ID: {user.id})")


# -----------------------------------------------------------------------------
# counters
# -----------------------------------------------------------------------------

@click.group('counters')
def counters_group():
    """Counter (stock location) commands."""


@counters_group.command('create')
@click.option('--tenant-id', type=int, required=True)
@click.option('--name', required=True)
@with_appcontext
def create_counter_cli(tenant_id, name):
    try:
        counter = catalog_service.create_counter(tenant_id=tenant_id, name=name)
    except (ValidationError, ConflictError) as e:
        _fail(str(e))
    click.echo(f"PASS Created counter: {counter.name} (ID: {counter.id})")


@counters_group.command('list')
@click.option('--tenant-id', type=int, required=True)
@with_appcontext
def list_counters_cli(tenant_id):
    counters = catalog_service.list_counters(tenant_id, include_inactive=True)
    if not counters:
        click.echo("No counters found.")
        return
    for c in counters:
        click.echo(f"{c.id:<5} {c.name:<30} {'active' if c.is_active else 'inactive'}")


# -----------------------------------------------------------------------------
# items
# -----------------------------------------------------------------------------

@click.group('items')
def items_group():
    """Item master data commands."""


@items_group.command('create')
@click.option('--tenant-id', type=int, required=True)
@click.option('--name', required=True)
@click.option('--code', default=None, help='SKU (unique per tenant)')
@click.option('--brand', default=None)
@click.option('--category', default=None)
@click.option('--unit', default=None)
@click.option('--cost', default=None, help='Cost price, e.g. 180 or 180.50')
@click.option('--selling', default=None, help='Selling price')
@click.option('--reorder-level', type=int, default=0)
@with_appcontext
def create_item_cli(tenant_id, name, code, brand, category, unit, cost, selling, reorder_level):
    payload = {"name": name, "reorder_level": reorder_level}
    for key, value in (("code", code), ("brand", brand), ("category", category), ("unit", unit)):
        if value:
            payload[key] = value
    try:
        if cost is not None:
            payload["cost_price_cents"] = to_cents(cost)
        if selling is not None:
            payload["selling_price_cents"] = to_cents(selling)
        item = catalog_service.create_item(tenant_id=tenant_id, payload=payload)
    except (ValidationError, ConflictError) as e:
        _fail(str(e))
    click.echo(f"PASS Created item: {item.name} (ID: {item.id}, Code: {item.code or '-'})")


@items_group.command('list')
@click.option('--tenant-id', type=int, required=True)
@click.option('--all', 'include_inactive', is_flag=True, help='Include inactive items')
@with_appcontext
def list_items_cli(tenant_id, include_inactive):
    items = catalog_service.list_items(tenant_id, include_inactive=include_inactive)
    if not items:
        click.echo("No items found.")
        return

    click.echo(f"{'ID':<5} {'Code':<12} {'Name':<30} {'Unit':<6} {'Cost':>10} {'Selling':>10} {'Reorder':>8}")
    for i in items:
        click.echo(
            f"{i.id:<5} {i.code or '-':<12} {i.name:<30} {i.unit:<6} "
            f"{i.cost_price_cents / 100:>10.2f} {i.selling_price_cents / 100:>10.2f} {i.reorder_level:>8}"
        )


# -----------------------------------------------------------------------------
# day
# -----------------------------------------------------------------------------

@click.group('day')
def day_group():
    """Daily session open / close commands."""


@day_group.command('status')
@click.option('--tenant-id', type=int, required=True)
@click.option('--date', 'on_date', default=None)
@with_appcontext
def day_status_cli(tenant_id, on_date):
    try:
        status = daily_session_service.get_day_status(tenant_id, _date_option(on_date))
    except ValidationError as e:
        _fail(str(e))
    click.echo(f"Date: {status.today.isoformat()}")
    if status.session is None:
        click.echo("Session: none")
    else:
        click.echo(f"Session: {'OPEN' if status.session.is_open else 'CLOSED'} (ID: {status.session.id})")
    if status.unfinished is not None:
        click.echo(f"Unfinished: {status.unfinished.session_date.isoformat()}")
    click.echo(f"Next action: {status.available_action}")


@day_group.command('open')
@click.option('--tenant-id', type=int, required=True)
@click.option('--user-id', type=int, default=None)
@click.option('--date', 'on_date', default=None)
@with_appcontext
def open_day_cli(tenant_id, user_id, on_date):
    try:
        session = daily_session_service.open_day(tenant_id, user_id, _date_option(on_date))
    except (DailySessionError, ValidationError, StorageError) as e:
        _fail(str(e))
    click.echo(f"PASS Opened {session.session_date.isoformat()} (session {session.id})")


@day_group.command('close')
@click.option('--tenant-id', type=int, required=True)
@click.option('--user-id', type=int, default=None)
@click.option('--date', 'on_date', default=None)
@with_appcontext
def close_day_cli(tenant_id, user_id, on_date):
    try:
        session = daily_session_service.close_day(tenant_id, user_id, _date_option(on_date))
    except (DailySessionError, ValidationError, StorageError) as e:
        _fail(str(e))
    if session is None:
        click.echo("No session for that date; nothing to close.")
        return
    click.echo(f"PASS Closed {session.session_date.isoformat()} (session {session.id})")


@day_group.command('close-previous')
@click.option('--tenant-id', type=int, required=True)
@click.option('--user-id', type=int, default=None)
@with_appcontext
def close_previous_day_cli(tenant_id, user_id):
    try:
        session = daily_session_service.close_previous_day(tenant_id, user_id)
    except (DailySessionError, ValidationError, StorageError) as e:
        _fail(str(e))
    if session is None:
        click.echo("No unfinished earlier day.")
        return
    click.echo(f"PASS Closed {session.session_date.isoformat()} (session {session.id})")


# -----------------------------------------------------------------------------
# stock
# -----------------------------------------------------------------------------

@click.group('stock')
def stock_group():
    """Stock imports, levels and exports."""


@stock_group.command('import')
@click.argument('path', type=click.Path(exists=True, dir_okay=False))
@click.option('--tenant-id', type=int, required=True)
@click.option('--user-id', type=int, default=None)
@click.option('--type', 'import_type', type=click.Choice(import_types()), required=True)
@click.option('--lenient-counter', is_flag=True, help='Physical count: blank counter means no counter')
@with_appcontext
def import_cli(path, tenant_id, user_id, import_type, lenient_counter):
    """Import a CSV / JSON / Excel file as one all-or-nothing batch."""
    options = {"strict_counter": False} if lenient_counter else {}
    try:
        with open(path, "rb") as fh:
            result = import_service.import_file(
                fh, path, tenant_id=tenant_id, user_id=user_id, import_type=import_type, **options
            )
    except (ValidationError, StockImportError, DailySessionError, StorageError) as e:
        _fail(str(e))

    click.echo(f"PASS {result.recorded} movements from {result.total_rows} rows ({result.skipped} skipped)")
    for row_number, reason in result.skipped_rows:
        click.echo(f"  row {row_number}: {reason}")


@stock_group.command('current')
@click.option('--tenant-id', type=int, required=True)
@with_appcontext
def current_stock_cli(tenant_id):
    rows = stock_service.list_current_stock(tenant_id)
    if not rows:
        click.echo("No items found.")
        return
    click.echo(f"{'Item':<30} {'Received':>9} {'Sold':>7} {'Current':>8} {'Reorder':>8}  Status")
    for r in rows:
        click.echo(
            f"{r['name']:<30} {r['total_received']:>9} {r['total_sold']:>7} "
            f"{r['current_stock']:>8} {r['reorder_level']:>8}  {r['status']}"
        )


@stock_group.command('export-reorder')
@click.option('--tenant-id', type=int, required=True)
@click.option('--output', default=None, help='File to write (default: stdout)')
@with_appcontext
def export_reorder_cli(tenant_id, output):
    text = "".join(export_service.export_below_reorder_csv(tenant_id))
    _write_output(text, output, "reorder sheet")


@stock_group.command('sales-template')
@click.option('--tenant-id', type=int, required=True)
@click.option('--output', default=None, help='File to write (default: stdout)')
@with_appcontext
def sales_template_cli(tenant_id, output):
    try:
        text = export_service.sales_template_csv(tenant_id)
    except ExportError as e:
        _fail(str(e))
    _write_output(text, output, "sales template")


@stock_group.command('variance')
@click.option('--tenant-id', type=int, required=True)
@click.option('--date', 'on_date', default=None)
@click.option('--csv', 'as_csv', is_flag=True, help='Print the stock report CSV')
@with_appcontext
def variance_cli(tenant_id, on_date, as_csv):
    try:
        day = _date_option(on_date) or tenant_today(tenant_id)
    except ValidationError as e:
        _fail(str(e))
    if as_csv:
        click.echo(export_service.variance_report_csv(tenant_id, day), nl=False)
        return

    summary = variance_summary(tenant_id, day)
    click.echo(f"Variance for {summary['date']}")
    for line in summary["lines"]:
        counted = line["closing"] if line["counted"] else "not counted"
        click.echo(
            f"{line['item_name']:<30} expected {line['expected']:>6}  counted {counted!s:>11}  "
            f"variance {line['variance']:>5}  value {line['variance_value_cents'] / 100:>10.2f}"
        )
    totals = summary["totals"]
    click.echo(f"TOTAL variance {totals['variance']} value {totals['variance_value_cents'] / 100:.2f}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(tenants_group)
    app.cli.add_command(counters_group)
    app.cli.add_command(items_group)
    app.cli.add_command(day_group)
    app.cli.add_command(stock_group)
