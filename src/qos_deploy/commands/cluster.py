"""Cluster maintenance commands."""

import click

from qos_deploy.commands.common import AppContext, fatal_errors, pass_app
from qos_deploy.workflow import DeploymentWorkflow


@click.command()
@click.option("-f", "--force", is_flag=True, help="Skip quick recovery and recreate the cluster.")
@pass_app
def recover(app: AppContext, force: bool):
    """Bring the cluster back after a host restart."""
    toolkit = app.toolkit()
    reporter = toolkit.reporter
    reporter.info(f"Kind Cluster Recovery Tool for: {toolkit.settings.cluster_name}")

    def redeploy() -> None:
        DeploymentWorkflow(toolkit).run(force=True)

    with fatal_errors(reporter):
        toolkit.cluster.recover(recreate=redeploy, force=force)


@click.command(name="auto-restart")
@pass_app
def auto_restart(app: AppContext):
    """Make the cluster containers restart with the container engine."""
    toolkit = app.toolkit()
    reporter = toolkit.reporter
    reporter.info(f"Configuring auto-restart for Kind cluster: {toolkit.settings.cluster_name}")
    with fatal_errors(reporter):
        toolkit.cluster.enable_auto_restart()
