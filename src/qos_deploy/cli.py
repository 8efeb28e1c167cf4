"""Main CLI entry point for qos-deploy."""

from pathlib import Path
from typing import Optional

import click

from qos_deploy import __version__
from qos_deploy.commands import cluster, deploy, mongodb
from qos_deploy.commands.common import AppContext
from qos_deploy.config import load_settings
from qos_deploy.console import Reporter
from qos_deploy.errors import ConfigError
from qos_deploy.logging_config import configure_logging


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="qos-deploy")
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="YAML settings file.",
)
@click.option("--verbose", is_flag=True, help="Show debug logs on stderr.")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path], verbose: bool):
    """qos-deploy - deploy the Quick Order System to a local kind cluster."""
    if ctx.obj is None:
        try:
            settings = load_settings(
                config_path,
                console_logging=True if verbose else None,
                log_level="DEBUG" if verbose else None,
            )
        except ConfigError as exc:
            Reporter(mirror_to_log=False).error(str(exc))
            ctx.exit(1)
        ctx.obj = AppContext(settings=settings)
    configure_logging(ctx.obj.settings)


# Deployment commands
main.add_command(deploy.deploy)
main.add_command(deploy.verify)

# Cluster commands
main.add_command(cluster.recover)
main.add_command(cluster.auto_restart)

# MongoDB commands
main.add_command(mongodb.validate_mongodb)
main.add_command(mongodb.mongodb_secret)


if __name__ == "__main__":
    main()
