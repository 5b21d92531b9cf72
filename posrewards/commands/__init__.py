"""
CLI Commands for POS Rewards.

Usage:
    flask loyalty expire-points [--store-id 1] [--dry-run]
    flask loyalty verify-balances [--store-id 1]
"""
from .loyalty import init_app as init_loyalty_commands


def init_app(app):
    """Register all CLI commands with the Flask app."""
    init_loyalty_commands(app)
