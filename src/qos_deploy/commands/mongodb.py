"""MongoDB commands."""

from typing import Optional

import click

from qos_deploy.commands.common import AppContext, fatal_errors, pass_app


@click.command(name="validate-mongodb")
@pass_app
def validate_mongodb(app: AppContext):
    """Check the MongoDB StatefulSet end to end."""
    toolkit = app.toolkit()
    with fatal_errors(toolkit.reporter):
        report = toolkit.mongodb.validate()
    if not report.passed:
        raise click.exceptions.Exit(1)


@click.command(name="mongodb-secret")
@click.option("--user", default=None, help="Database user stored in the secret.")
@click.option("--replace", is_flag=True, help="Delete and regenerate an existing secret.")
@pass_app
def mongodb_secret(app: AppContext, user: Optional[str], replace: bool):
    """Create the MongoDB secret with a generated password."""
    toolkit = app.toolkit()
    settings = toolkit.settings
    with fatal_errors(toolkit.reporter):
        outcome = toolkit.secrets.create_secure(
            settings.mongodb_secret_name,
            user_key=settings.mongodb_user_key,
            password_key=settings.mongodb_password_key,
            user=user or settings.mongodb_default_user,
            replace=replace,
        )
    if not outcome.ok:
        raise click.exceptions.Exit(1)
