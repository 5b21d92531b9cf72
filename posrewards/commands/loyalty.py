"""
CLI commands for loyalty maintenance.

These can be run manually or from cron instead of the in-process scheduler:

# Points expiration (daily at 3 AM)
0 3 * * * cd /app && flask loyalty expire-points

# Ledger consistency check
flask loyalty verify-balances --store-id=1
"""

import sys

import click
from flask.cli import with_appcontext
from ..extensions import db
from ..models import StoreInfo, LoyaltySettings
from ..services.loyalty_engine import LoyaltyEngine


@click.group('loyalty')
def loyalty_cli():
    """Loyalty points commands."""
    pass


def _stores(store_id):
    if store_id:
        store = db.session.get(StoreInfo, store_id)
        if store is None:
            click.echo(f"Store {store_id} not found")
            return []
        return [store]
    return StoreInfo.query.order_by(StoreInfo.id).all()


@loyalty_cli.command('expire-points')
@click.option('--store-id', type=int, help='Specific store ID (or all if not specified)')
@click.option('--dry-run', is_flag=True, help='Preview without expiring points')
@with_appcontext
def expire_points(store_id, dry_run):
    """Expire points older than each store's expiry period."""
    total = 0
    for store in _stores(store_id):
        settings = LoyaltySettings.query.filter_by(store_id=store.id).first()
        if settings is None or not settings.points_expiry_months:
            click.echo(f"Store {store.id} ({store.name}): no expiry configured, skipped")
            continue

        result = LoyaltyEngine(store.id, store.currency_code).expire_store(dry_run=dry_run)
        click.echo(
            f"{'[DRY RUN] ' if dry_run else ''}Store {store.id} ({store.name}): "
            f"{result['points_expired']} points across {result['accounts_affected']} accounts "
            f"({result['customers_checked']} checked)"
        )
        total += result['points_expired']

    click.echo(f"\n{'[DRY RUN] ' if dry_run else ''}TOTAL: {total} points expired")


@loyalty_cli.command('verify-balances')
@click.option('--store-id', type=int, help='Specific store ID (or all if not specified)')
@with_appcontext
def verify_balances(store_id):
    """Check every points account against its totals and ledger."""
    problems = 0
    for store in _stores(store_id):
        mismatches = LoyaltyEngine(store.id, store.currency_code).verify_balances()
        for row in mismatches:
            click.echo(
                f"Store {store.id} customer {row['customer_id']}: balance {row['balance']}, "
                f"totals say {row['expected_from_totals']}, ledger says {row['ledger_total']}"
            )
        problems += len(mismatches)

    if problems:
        click.echo(f"\n{problems} inconsistent accounts")
        sys.exit(1)
    click.echo("All balances consistent")


def init_app(app):
    """Register loyalty commands with the app."""
    app.cli.add_command(loyalty_cli)
