"""CLI entry point for the ethm tool."""

import logging
import sys
import time

import click

from ethm.config import ConfigError, EthmConfig, load_config
from ethm.output import render_table, write_results
from ethm.process import NodeExitedError
from ethm.rpc import RpcError
from ethm.runner import (
    Runner,
    RunnerError,
    check_data_dir,
    make_output_dir,
    resolve_binary,
)

logger = logging.getLogger(__name__)

_STEPS = 4


@click.command()
@click.option(
    "--bin",
    "-b",
    "bin_path",
    required=True,
    metavar="BINARY",
    help="The binary of the ETH-node to run.",
)
@click.option(
    "--data",
    "-d",
    "data_path",
    required=True,
    metavar="FOLDER",
    help="The path of the data folder to use.",
)
@click.option(
    "--name",
    "-n",
    required=True,
    help="The name of this analysis.",
)
@click.option(
    "--output",
    "-o",
    "output_path",
    required=True,
    metavar="FOLDER",
    help="The folder where the outputs go.",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    default=None,
    type=click.Path(exists=False),
    help="Path to YAML config file (default: ~/.ethm/config.yaml).",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def main(
    bin_path: str,
    data_path: str,
    name: str,
    output_path: str,
    config_path: str | None,
    verbose: bool,
) -> None:
    """Run an ETH-node and collect some metrics."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
    )

    try:
        cfg = load_config(config_path)
    except (ConfigError, FileNotFoundError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)

    logger.debug("Config loaded: %s", cfg)

    try:
        _run(bin_path, data_path, name, output_path, cfg)
    except (RunnerError, NodeExitedError, RpcError, OSError) as exc:
        click.echo(f"Error: {exc}", err=True)
        sys.exit(1)


def _run(
    bin_path: str,
    data_path: str,
    name: str,
    output_path: str,
    cfg: EthmConfig,
) -> None:
    """Validate inputs, run the node ``cfg.num_runs`` times, then report.

    Pipeline: start → wait until ready → collect → stop (per run), then
    analyse → results.md → plot.
    """
    binary = resolve_binary(bin_path)
    chains = check_data_dir(data_path)
    run_dir = make_output_dir(output_path, name)

    started = time.monotonic()

    with Runner(binary, chains, name, run_dir, cfg) as runner:
        click.echo(f"Running metrics for {name}\n")

        for run_idx in range(1, cfg.num_runs + 1):
            _step(1, f"Starting the node for run #{run_idx}...")
            runner.start()

            _step(2, "Waiting for the node to be ready...")
            runner.wait_until_ready()

            _step(3, "Collecting data...")
            runner.collect_data()

            _step(4, "Stopping the node...")
            runner.stop()
            click.echo("")

        report = runner.analyse()
        write_results(report, run_dir)
        render_table(report)
        runner.plot()

    click.echo(f"Done in {_human_duration(time.monotonic() - started)}")
    click.echo(f"Outputs written to {run_dir}")


def _step(index: int, message: str) -> None:
    label = click.style(f"[{index}/{_STEPS}]", bold=True, dim=True)
    click.echo(f"{label} {message}")


def _human_duration(seconds: float) -> str:
    """Format *seconds* in its largest whole unit, e.g. ``"31 minutes"``.

    Smaller units are truncated: 1h59m gives ``"1 hour"``.
    """
    seconds = int(seconds)
    for unit, size in (("hour", 3600), ("minute", 60)):
        if seconds >= size:
            count = seconds // size
            return f"{count} {unit}{'s' if count != 1 else ''}"
    return f"{seconds} second{'s' if seconds != 1 else ''}"
