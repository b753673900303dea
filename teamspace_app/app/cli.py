from __future__ import annotations

import click
from flask import current_app
from flask.cli import AppGroup
from . import db
from .models import User
from .utils.transaction import atomic

members_cli = AppGroup("members", help="User and membership administration.")


@members_cli.command("create-user")
@click.argument("email")
@click.option("--name", default=None, help="Full name")
@click.option("--super-admin", is_flag=True, help="Grant platform-wide super-admin")
def create_user(email: str, name: str | None, super_admin: bool):
    """Create a user account. Identity is issued elsewhere; this seeds the store."""
    email = email.strip().lower()
    if User.query.filter_by(email=email).first() is not None:
        raise click.ClickException(f"user {email} already exists")
    with atomic(f"user {email} already exists"):
        user = User(email=email, full_name=name, role="SUPER_ADMIN" if super_admin else "USER")
        db.session.add(user)
    current_app.logger.info("user %s created via CLI (role=%s)", user.id, user.role)
    click.echo(f"created user {user.id} <{email}>")


@members_cli.command("grant-super-admin")
@click.argument("email")
def grant_super_admin(email: str):
    user = User.query.filter_by(email=email.strip().lower()).first()
    if user is None:
        raise click.ClickException(f"no user with email {email}")
    with atomic():
        user.role = "SUPER_ADMIN"
    current_app.logger.info("user %s granted SUPER_ADMIN via CLI", user.id)
    click.echo(f"{user.email} is now a super admin")
