"""AWS Operator CLI (awso).

Usage:
    awso validate cluster.yaml            # Validate a cluster object
    awso reconcile cluster.yaml           # Run one create pass
    awso reconcile cluster.yaml --delete  # Run one delete pass
    awso run                              # Run the controller loop

Operator settings come from the same environment variables as the
deployed operator (INSTALLATION_NAME, AWS_REGION, ...).
"""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path

import click

from . import key
from .config import Config, ConfigurationError
from .controller import Controller
from .credential import StaticCredentialsError, enforce_no_static_credentials
from .errors import InvalidConfigError
from .loader import ClusterLoadError, load_cluster
from .main import build_resource_set, build_setup_set, setup_logging
from .main import main as operator_main
from .models import AWSConfig


def _load(path: str) -> AWSConfig:
    try:
        return load_cluster(Path(path))
    except ClusterLoadError as e:
        raise click.ClickException(str(e)) from e


def _mark_deleted(cluster: AWSConfig) -> AWSConfig:
    metadata = cluster.metadata.model_copy(update={"deletion_timestamp": datetime.now(UTC)})
    return cluster.model_copy(update={"metadata": metadata})


@click.group()
@click.version_option(version="0.1.0", prog_name="awso")
def cli() -> None:
    """AWS Operator CLI (awso).

    Reconciles tenant cluster objects against AWS.

    \b
    Quick Start:
        awso validate cluster.yaml   # Check a cluster object
        awso reconcile cluster.yaml  # Converge it once
    """
    pass


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
def validate(file: str) -> None:
    """Validate a cluster object and show the names derived from it."""
    cluster = _load(file)

    click.echo(f"Cluster object valid: {file}")
    click.echo(f"  Cluster ID: {key.cluster_id(cluster)}")
    click.echo(f"  Region: {key.region(cluster)}")
    click.echo(f"  Intermediate zone: {key.intermediate_zone_name(cluster)}")
    click.echo(f"  Final zone: {key.final_zone_name(cluster)}")
    click.echo(f"  Initializer stack: {key.main_host_pre_stack_name(cluster)}")
    click.echo(f"  Account role: {key.tenant_role_arn(cluster) or 'not set'}")
    click.echo(f"  Marked for deletion: {'yes' if key.is_deleted(cluster) else 'no'}")


@cli.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False))
@click.option("--delete", is_flag=True, help="Run a delete pass instead of a create pass")
@click.option("--verbose", "-v", is_flag=True, help="Debug logging")
def reconcile(file: str, delete: bool, verbose: bool) -> None:
    """Run a single pass over one cluster object.

    \b
    Examples:
        awso reconcile clusters/c1.yaml
        awso reconcile clusters/c1.yaml --delete
    """
    cluster = _load(file)
    if delete:
        cluster = _mark_deleted(cluster)

    setup_logging(logging.DEBUG if verbose else logging.INFO)

    try:
        config = Config.from_env()
        enforce_no_static_credentials()
        controller = Controller(
            config,
            build_resource_set(config),
            setup=build_setup_set(config),
        )
    except (ConfigurationError, StaticCredentialsError, InvalidConfigError) as e:
        raise click.ClickException(str(e)) from e

    result = asyncio.run(controller.reconcile(cluster))

    if result.error is not None:
        raise click.ClickException(
            f"{result.operation.value} pass for {result.cluster_id} failed: {result.error}"
        )

    if result.canceled_by is not None:
        click.echo(
            f"{result.operation.value} pass for {result.cluster_id} canceled by "
            f"{result.canceled_by}; run again once its preconditions are met"
        )
    else:
        click.echo(
            f"{result.operation.value} pass for {result.cluster_id} completed "
            f"in {result.duration_seconds:.1f}s"
        )


@cli.command()
def run() -> None:
    """Run the controller loop until SIGTERM/SIGINT."""
    sys.exit(asyncio.run(operator_main()))


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
