"""Deployment commands."""

import click

from qos_deploy.commands.common import AppContext, fatal_errors, pass_app
from qos_deploy.workflow import DeploymentWorkflow


@click.command()
@click.option(
    "-v",
    "--verify",
    "verify_only",
    is_flag=True,
    help="Only verify an existing deployment.",
)
@click.option("-c", "--clean", is_flag=True, help="Delete the existing cluster before deploying.")
@click.option("-f", "--force", is_flag=True, help="Recreate an existing cluster without asking.")
@pass_app
def deploy(app: AppContext, verify_only: bool, clean: bool, force: bool):
    """Create the kind cluster and deploy every manifest."""
    toolkit = app.toolkit()
    with fatal_errors(toolkit.reporter):
        DeploymentWorkflow(toolkit).run(verify_only=verify_only, clean=clean, force=force)


@click.command()
@pass_app
def verify(app: AppContext):
    """Check an existing deployment without changing it."""
    toolkit = app.toolkit()
    with fatal_errors(toolkit.reporter):
        DeploymentWorkflow(toolkit).run(verify_only=True)
