"""Data models: Sample and RunSeries dataclasses."""

from dataclasses import dataclass, field
from datetime import UTC, datetime

# A plotted line: (x values, y values).
Line = tuple[list[float], list[float]]


@dataclass
class Sample:
    """One poll of the node's metrics.

    Attributes:
        elapsed: Seconds since data collection started for this run.
        peer_count: Number of connected peers (``net_peerCount``).
        block_height: Latest processed block (``eth_blockNumber``).
        timestamp: Wall-clock time of the poll (UTC).
    """

    elapsed: float
    peer_count: int
    block_height: int
    timestamp: datetime = field(
        default_factory=lambda: datetime.now(UTC),
    )


@dataclass
class RunSeries:
    """Ordered samples collected during a single node run.

    Attributes:
        run_index: 1-based number of the run.
        samples: Samples in collection order.
    """

    run_index: int
    samples: list[Sample] = field(default_factory=list)

    def append(self, sample: Sample) -> None:
        """Add *sample*, refusing to go back in time.

        Ordering is enforced on ``elapsed`` (monotonic clock).  The wall-clock
        ``timestamp`` may step backwards (NTP) and is only informational.

        Raises:
            ValueError: If *sample* is older than the last recorded one.
        """
        if self.samples:
            last = self.samples[-1]
            if sample.elapsed < last.elapsed:
                raise ValueError(
                    f"Sample at {sample.elapsed:.3f}s is older than the "
                    f"previous one at {last.elapsed:.3f}s"
                )
        self.samples.append(sample)

    def __len__(self) -> int:
        return len(self.samples)

    @property
    def times(self) -> list[float]:
        return [s.elapsed for s in self.samples]

    @property
    def peer_counts(self) -> list[float]:
        return [float(s.peer_count) for s in self.samples]

    @property
    def block_heights(self) -> list[float]:
        return [float(s.block_height) for s in self.samples]

    def peer_count_line(self) -> Line:
        return (self.times, self.peer_counts)

    def block_height_line(self) -> Line:
        return (self.times, self.block_heights)
