# Overview: Flask CLI commands for inventory bootstrap, import and inspection.

# backend/locksmith/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to "locksmith:create_app" (PowerShell: $env:FLASK_APP="locksmith:create_app").
# - Use: python -m flask inventory <command> [options]
#
# - python -m flask inventory init-db
#   Create all tables (dev/test; use `flask db upgrade` for migrated databases).
# - python -m flask inventory import-csv vendor.csv
#   Parse a vendor listing and print the staged rows. Nothing is written.
# - python -m flask inventory import-csv vendor.csv --commit
#   Parse and commit; prints created / conflict / error counts.
# - python -m flask inventory list --status low
#   List items, optionally only one stock status (out, low, in_stock).
# - python -m flask inventory job-cost JOB-1042
#   Print the material cost recorded against a job.

import click
from flask import current_app
from flask.cli import with_appcontext

from .errors import InventoryError
from .extensions import db
from .services import csv_normalizer, inventory_service, usage_service
from .services.stock_status import StockStatus, classify_item
from .time_utils import run_stamp as make_run_stamp


def _cents(value) -> str:
    if value is None:
        return "-"
    return f"${value / 100:,.2f}"


@click.group("inventory")
def inventory_group():
    """Inventory bootstrap, import and inspection commands."""


@inventory_group.command("init-db")
@with_appcontext
def init_db_command():
    """Create all tables."""
    db.create_all()
    click.echo("Inventory tables created.")


@inventory_group.command("import-csv")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.option("--commit", "do_commit", is_flag=True, help="Write the staged rows.")
@click.option("--run-stamp", default=None, help="Reuse a run stamp for synthesized SKUs.")
@with_appcontext
def import_csv_command(path, do_commit, run_stamp):
    """Stage (and optionally commit) a vendor CSV or XLSX file."""
    if path.lower().endswith(".xlsx"):
        with open(path, "rb") as fh:
            text = csv_normalizer.xlsx_to_csv_text(fh)
    else:
        with open(path, encoding="utf-8-sig") as fh:
            text = fh.read()

    stamp = run_stamp or make_run_stamp()
    staged = csv_normalizer.parse(
        text,
        run_stamp=stamp,
        default_make=current_app.config.get("CSV_DEFAULT_MAKE", csv_normalizer.DEFAULT_MAKE),
    )
    click.echo(f"Run stamp: {stamp}")
    for row in staged:
        flag = "WARN" if row.warnings else "OK  "
        click.echo(f"[{flag}] {row.row_number:>4}  {row.sku:<28} qty={row.quantity:<4} {_cents(row.cost_cents):>10}  {row.description}")
        for message in row.warnings:
            click.echo(f"         - {message}")

    if not do_commit:
        click.echo(f"{len(staged)} row(s) staged. Re-run with --commit --run-stamp {stamp} to write them.")
        return

    result = inventory_service.commit_staged(staged)
    counts = result.to_dict()["counts"]
    click.echo(f"Created: {counts['created']}  Conflicts: {counts['conflicts']}  Errors: {counts['errors']}")
    for conflict in result.conflicts:
        click.echo(f"  conflict row {conflict['row_number']}: {conflict['error']} ({conflict['sku']})")
    for error in result.errors:
        click.echo(f"  error row {error['row_number']}: {error['error']}")


@inventory_group.command("list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in StockStatus]),
    default=None,
    help="Only items with this stock status.",
)
@with_appcontext
def list_command(status):
    """List inventory items."""
    items = inventory_service.list_items()
    shown = 0
    for item in items:
        item_status = classify_item(item)
        if status and item_status.value != status:
            continue
        shown += 1
        click.echo(
            f"{item.id:>5}  {item.sku:<28} qty={item.quantity:<5} {item_status.value:<8} "
            f"{_cents(item.cost_cents):>10}  {item.description or ''}"
        )
    click.echo(f"{shown} item(s).")


@inventory_group.command("job-cost")
@click.argument("job_id")
@with_appcontext
def job_cost_command(job_id):
    """Material cost recorded against JOB_ID."""
    try:
        summary = usage_service.job_material_cost(job_id)
    except InventoryError as exc:
        raise click.ClickException(exc.message)
    for line in summary["lines"]:
        click.echo(
            f"  {line['used_at']}  {line['sku_at_use'] or '-':<28} x{line['quantity_used']:<4} "
            f"{_cents(line['total_cost_cents_at_use']):>10}"
        )
    click.echo(f"Job {summary['job_id']}: {summary['line_count']} line(s), material cost {_cents(summary['material_cost_cents'])}")


def register_commands(app):
    app.cli.add_command(inventory_group)
