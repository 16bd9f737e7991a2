"""Node runner: input checks, node lifecycle, data collection."""

import logging
import os
import re
import shutil
import subprocess
import tempfile
import time
from datetime import datetime
from pathlib import Path

from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeRemainingColumn,
)

from ethm.analysis import AnalysisReport, analyse, block_speeds
from ethm.config import EthmConfig
from ethm.models import RunSeries, Sample
from ethm.plotter import Plotter
from ethm.ports import get_available_ports
from ethm.process import NodeProcess
from ethm.rpc import RpcClient, RpcError

logger = logging.getLogger(__name__)

CHAINS_DIRNAME = "chains"
NODE_DATA_DIRNAME = "parity-data"

_VERSION_RE = re.compile(r"version (?P<version>\S+)")


class RunnerError(Exception):
    """Raised for invalid inputs or a misuse of the ``Runner`` lifecycle."""


# ---------------------------------------------------------------------------
# Input validation
# ---------------------------------------------------------------------------


def resolve_binary(bin_path: str) -> str:
    """Return the path of the node binary to run.

    *bin_path* may be a filesystem path or a bare name looked up on
    ``$PATH``.

    Raises:
        RunnerError: If the binary cannot be found or is not a file.
    """
    path = Path(bin_path).expanduser()
    if path.exists():
        if not path.is_file():
            raise RunnerError(f"The given binary path is not a file: {bin_path}")
        return str(path)

    found = shutil.which(bin_path)
    if found is None:
        raise RunnerError(f"Binary not found: {bin_path}")
    return found


def check_data_dir(data_path: str | Path) -> Path:
    """Validate the node data folder and return its ``chains`` subdirectory.

    Raises:
        RunnerError: If *data_path* is not a directory or has no ``chains``
            subdirectory.
    """
    data = Path(data_path).expanduser()
    if not data.is_dir():
        raise RunnerError(f"The given data path is not a directory: {data}")

    chains = data / CHAINS_DIRNAME
    if not chains.is_dir():
        raise RunnerError(
            f"The data folder {data} has no '{CHAINS_DIRNAME}' subdirectory"
        )
    return chains


def make_output_dir(
    output_path: str | Path,
    name: str,
    now: datetime | None = None,
) -> Path:
    """Create ``<output>/<name>_<timestamp>`` and return it.

    Raises:
        RunnerError: If the folder cannot be created or written to.
    """
    now = now or datetime.now()
    root = Path(output_path).expanduser()
    run_dir = root / f"{name}_{now.strftime('%Y-%m-%dT%H:%M:%S')}"

    try:
        run_dir.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RunnerError(f"Could not create output folder {run_dir}: {exc}") from exc

    if not os.access(run_dir, os.W_OK):
        raise RunnerError(f"The output folder {run_dir} is not writable")
    return run_dir


def binary_version(bin_path: str) -> str:
    """Run ``<bin> --version`` and extract the version string.

    Raises:
        RunnerError: If the binary cannot be run or prints no version.
    """
    try:
        proc = subprocess.run(
            [bin_path, "--version"],
            capture_output=True,
            text=True,
            timeout=30,
        )
    except (OSError, subprocess.TimeoutExpired) as exc:
        raise RunnerError(f"Could not run {bin_path} --version: {exc}") from exc

    match = _VERSION_RE.search(proc.stdout)
    if match is None:
        raise RunnerError("Could not find version of the binary.")
    return match.group("version")


# ---------------------------------------------------------------------------
# Runner
# ---------------------------------------------------------------------------


class Runner:
    """Runs the node several times and accumulates its metrics.

    Typical use::

        with Runner(bin_path, chains, name, output, cfg) as runner:
            for _ in range(cfg.num_runs):
                runner.start()
                runner.wait_until_ready()
                runner.collect_data()
                runner.stop()
            runner.analyse()
            runner.plot()

    Args:
        bin_path: Node binary (already resolved).
        data_path: The ``chains`` directory to copy for every run.
        name: Name of the analysis, used in chart titles.
        output_path: Folder receiving the charts and ``results.md``.
        config: Loaded configuration.
        show_progress: Whether ``collect_data`` draws a progress bar.
    """

    def __init__(
        self,
        bin_path: str,
        data_path: Path,
        name: str,
        output_path: Path,
        config: EthmConfig,
        *,
        show_progress: bool = True,
    ) -> None:
        self.bin_path = bin_path
        self.data_path = Path(data_path)
        self.name = name
        self.output_path = Path(output_path)
        self.config = config
        self.show_progress = show_progress
        self.version = binary_version(bin_path)

        self.runs: list[RunSeries] = []
        self._tmp_dir: tempfile.TemporaryDirectory | None = None
        self._child: NodeProcess | None = None
        self._rpc: RpcClient | None = None

    def __enter__(self) -> "Runner":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    @property
    def running(self) -> bool:
        return self._child is not None

    # -- Lifecycle ----------------------------------------------------------

    def start(self) -> None:
        """Copy the chain data to a temp dir and spawn the node on it.

        Raises:
            RunnerError: If a node is already running, the data cannot be
                copied, or no free ports are found.
        """
        if self.running:
            raise RunnerError("The Runner is already started.")

        cfg = self.config
        tmp_dir = tempfile.TemporaryDirectory(prefix="eth-metrics")
        try:
            node_data = Path(tmp_dir.name) / NODE_DATA_DIRNAME
            node_data.mkdir(parents=True)
            logger.debug("Copying %s into %s", self.data_path, node_data)
            try:
                shutil.copytree(self.data_path, node_data / self.data_path.name)
            except (OSError, shutil.Error) as exc:
                raise RunnerError(f"Could not copy the data directory: {exc}") from exc

            ports = get_available_ports(2, cfg.port_range_min, cfg.port_range_max)
            if len(ports) < 2:
                raise RunnerError("Could not find any available port.")
            port, rpc_port = ports

            args = [
                self.bin_path,
                "-d", str(node_data),
                "--chain", cfg.chain,
                "--min-peers", str(cfg.min_peers),
                "--port", str(port),
                "--jsonrpc-port", str(rpc_port),
                "--no-warp",
                "--no-ws",
                "--no-ipc",
                "--no-secretstore",
                *cfg.extra_args,
            ]
            try:
                child = NodeProcess(
                    args,
                    log_path=Path(tmp_dir.name) / "node.log",
                    terminate_timeout=cfg.terminate_timeout,
                )
            except OSError as exc:
                raise RunnerError(f"Could not start {self.bin_path}: {exc}") from exc
        except BaseException:
            tmp_dir.cleanup()
            raise

        logger.info("Node started (pid=%d, port=%d, rpc=%d)", child.pid, port, rpc_port)
        self._tmp_dir = tmp_dir
        self._child = child
        self._rpc = RpcClient(f"http://localhost:{rpc_port}", timeout=cfg.rpc_timeout)

    def wait_until_ready(self) -> None:
        """Block until the node answers ``eth_blockNumber``.

        Raises:
            RunnerError: If not started, or not ready within ``ready_timeout``.
            NodeExitedError: If the node dies while we wait.
        """
        child, rpc = self._require_started()
        timeout = self.config.ready_timeout
        deadline = time.monotonic() + timeout

        while True:
            child.check()
            if time.monotonic() >= deadline:
                raise RunnerError(f"Node was not ready even after {timeout:g}s.")
            try:
                rpc.block_number()
            except RpcError as exc:
                logger.debug("Node not ready yet: %s", exc)
                time.sleep(self.config.ready_poll_interval)
            else:
                return

    def collect_data(self) -> RunSeries:
        """Poll block height and peer count for ``collection_duration``.

        Returns:
            The series of the run, also appended to ``self.runs``.

        Raises:
            RunnerError: If not started, or a metric cannot be fetched.
            NodeExitedError: If the node dies during collection.
        """
        child, rpc = self._require_started()
        cfg = self.config
        series = RunSeries(run_index=len(self.runs) + 1)

        progress = Progress(
            SpinnerColumn(),
            BarColumn(bar_width=40),
            TextColumn("{task.description}", markup=False),
            TimeRemainingColumn(),
            disable=not self.show_progress,
            transient=True,
        )

        with progress:
            task = progress.add_task("", total=cfg.collection_duration)
            start = time.monotonic()
            elapsed = 0.0

            while elapsed < cfg.collection_duration:
                child.check()
                try:
                    block_number = rpc.block_number()
                except RpcError as exc:
                    raise RunnerError(f"Could not fetch block number: {exc}") from exc
                try:
                    peer_count = rpc.peer_count()
                except RpcError as exc:
                    raise RunnerError(f"Could not fetch peer count: {exc}") from exc

                try:
                    series.append(
                        Sample(
                            elapsed=elapsed,
                            peer_count=peer_count,
                            block_height=block_number,
                        )
                    )
                except ValueError as exc:
                    raise RunnerError(f"Invalid sample: {exc}") from exc
                progress.update(
                    task,
                    completed=elapsed,
                    description=f"[#{block_number:,} ; {peer_count:2}/{cfg.min_peers}]",
                )

                time.sleep(cfg.collection_interval)
                elapsed = time.monotonic() - start

        logger.info(
            "Run #%d: collected %d sample(s) over %.1fs",
            series.run_index,
            len(series),
            elapsed,
        )
        self.runs.append(series)
        return series

    def stop(self) -> None:
        """Terminate the node and drop its temporary data.

        Raises:
            RunnerError: If the runner has not been started.
        """
        if self._child is None:
            raise RunnerError("The Runner has not been started yet.")

        if self._rpc is not None:
            self._rpc.close()
            self._rpc = None

        child, self._child = self._child, None
        child.terminate()
        self._cleanup_tmp_dir()

    def close(self) -> None:
        """Kill any running node and remove temporary data."""
        if self._rpc is not None:
            self._rpc.close()
            self._rpc = None
        if self._child is not None:
            child, self._child = self._child, None
            child.kill()
        self._cleanup_tmp_dir()

    # -- Results ------------------------------------------------------------

    def analyse(self) -> AnalysisReport:
        """Compute statistics over all completed runs.

        Raises:
            RunnerError: If no run has been collected or a run is unusable.
        """
        if not self.runs:
            raise RunnerError("No data have been collected.")

        cfg = self.config
        try:
            return analyse(
                self.runs,
                name=self.name,
                version=self.version,
                interval=cfg.collection_interval,
                skip=cfg.analysis_skip,
                window=cfg.block_speed_window,
            )
        except ValueError as exc:
            raise RunnerError(f"Analysis failed: {exc}") from exc

    def plot(self) -> list[Path]:
        """Write one chart per metric into the output folder.

        Returns:
            Paths of the written charts.

        Raises:
            RunnerError: If no run has been collected.
        """
        if not self.runs:
            raise RunnerError("No data have been collected.")

        plotter = Plotter(self.name, self.output_path)
        window = self.config.block_speed_window
        return [
            plotter.block_height([s.block_height_line() for s in self.runs]),
            plotter.block_speeds([block_speeds(s, window) for s in self.runs]),
            plotter.peer_count([s.peer_count_line() for s in self.runs]),
        ]

    # -- Internal helpers -----------------------------------------------------

    def _require_started(self) -> tuple[NodeProcess, RpcClient]:
        if self._child is None or self._rpc is None:
            raise RunnerError("The Runner has not been started yet.")
        return self._child, self._rpc

    def _cleanup_tmp_dir(self) -> None:
        if self._tmp_dir is not None:
            tmp_dir, self._tmp_dir = self._tmp_dir, None
            tmp_dir.cleanup()
