"""Analysis: block speeds and per-run peer-count / block-height statistics."""

import logging
import statistics
from dataclasses import dataclass, field

from ethm.models import Line, RunSeries

logger = logging.getLogger(__name__)


@dataclass
class PeerCountStats:
    """Peer-count statistics of one run, after the warm-up skip."""

    run_index: int
    min: float
    max: float
    mean: float
    std_dev: float


@dataclass
class BlockHeightStats:
    """Block-height statistics of one run.

    Attributes:
        run_index: 1-based number of the run.
        max: Last block height seen during the run.
        mean_speed: Mean of the windowed block speeds, in blocks/second.
        std_dev: Standard deviation of those block speeds.
    """

    run_index: int
    max: float
    mean_speed: float
    std_dev: float


@dataclass
class AnalysisReport:
    """Everything that ends up in ``results.md`` and the console tables."""

    name: str
    version: str
    peer_counts: list[PeerCountStats] = field(default_factory=list)
    block_heights: list[BlockHeightStats] = field(default_factory=list)


def block_speeds(series: RunSeries, window: float) -> Line:
    """Average the block import speed over windows of *window* seconds.

    The window is converted into a sample stride from the observed sample
    rate, so the result is independent of how long each poll took.  The
    line always starts at ``(0, 0)``.

    Args:
        series: Samples of one run.
        window: Averaging window in seconds.

    Returns:
        ``(times, speeds)`` with speeds in blocks per second.
    """
    times = series.times
    heights = series.block_heights

    speed_times = [0.0]
    speeds = [0.0]

    if len(times) < 2 or times[-1] <= 0:
        return (speed_times, speeds)

    duration = times[-1]
    stride = max(1, int(len(times) / duration * window))

    for index in range(1, (len(times) - 1) // stride):
        cur = index * stride
        prev = (index - 1) * stride
        elapsed = times[cur] - times[prev]
        if elapsed <= 0:
            continue
        speeds.append((heights[cur] - heights[prev]) / elapsed)
        speed_times.append(times[cur])

    return (speed_times, speeds)


def analyse(
    runs: list[RunSeries],
    *,
    name: str,
    version: str,
    interval: float,
    skip: float,
    window: float,
) -> AnalysisReport:
    """Compute the per-run statistics for *runs*.

    Args:
        runs: Collected series, one per node run.
        name: Name of the analysis.
        version: Version string of the node binary.
        interval: Sampling interval in seconds.
        skip: Seconds of warm-up ignored at the start of each run.
        window: Block-speed averaging window in seconds.

    Returns:
        The populated ``AnalysisReport``.

    Raises:
        ValueError: If *runs* is empty.
    """
    if not runs:
        raise ValueError("No data have been collected.")

    report = AnalysisReport(name=name, version=version)

    peer_skip = int(skip / interval)
    speed_skip = int(skip / window)

    for series in runs:
        peers = _skipped(series.peer_counts, peer_skip, series.run_index, "peer count")
        report.peer_counts.append(
            PeerCountStats(
                run_index=series.run_index,
                min=min(peers),
                max=max(peers),
                mean=statistics.fmean(peers),
                std_dev=_std_dev(peers),
            )
        )

        _, speeds = block_speeds(series, window)
        speeds = _skipped(speeds, speed_skip, series.run_index, "block speed")
        report.block_heights.append(
            BlockHeightStats(
                run_index=series.run_index,
                max=series.block_heights[-1],
                mean_speed=statistics.fmean(speeds),
                std_dev=_std_dev(speeds),
            )
        )

    return report


def _skipped(values: list[float], skip: int, run_index: int, what: str) -> list[float]:
    """Drop the first *skip* values, keeping everything if nothing would remain."""
    if not values:
        raise ValueError(f"Run #{run_index} has no {what} data")
    if skip >= len(values):
        logger.warning(
            "Run #%d: warm-up skip covers all %d %s value(s); using the whole run",
            run_index,
            len(values),
            what,
        )
        return values
    return values[skip:]


def _std_dev(values: list[float]) -> float:
    if len(values) < 2:
        return 0.0
    return statistics.stdev(values)
