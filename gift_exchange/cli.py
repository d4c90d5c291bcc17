from __future__ import annotations

import click
from flask import Flask

from .extensions import db
from .services.groups import purge_expired_groups


def register_cli(app: Flask) -> None:
    @app.cli.command("init-db")
    def init_db():
        """Create every table that does not exist yet."""
        db.create_all()
        click.echo("Database initialised.")

    @app.cli.command("purge-expired")
    def purge_expired():
        """Delete groups whose expiry date has passed."""
        count = purge_expired_groups()
        click.echo(f"Purged {count} expired group(s).")
