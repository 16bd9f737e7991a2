"""Chart rendering for the collected metrics (matplotlib, PNG output)."""

import logging
from dataclasses import dataclass
from pathlib import Path

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt  # noqa: E402
from matplotlib.ticker import StrMethodFormatter  # noqa: E402

from ethm.models import Line  # noqa: E402

logger = logging.getLogger(__name__)

COLORS = ("#5899DA", "#E8743B", "#19A979", "#ED4A7B")

# 1366x768 px canvas.
_FIG_SIZE = (13.66, 7.68)
_DPI = 100


@dataclass
class PlotParams:
    """Per-chart settings.

    ``y_max`` of ``None`` lets matplotlib scale the axis to the data.
    """

    filename: str
    title: str
    y_label: str
    y_min: float = 0.0
    y_max: float | None = None


BLOCK_HEIGHTS = PlotParams(
    filename="block_heights.png",
    title="Block heights",
    y_label="Block Height",
)
BLOCK_SPEEDS = PlotParams(
    filename="block_speeds.png",
    title="Block speed",
    y_label="Block speed (bps)",
    y_max=6_000.0,
)
PEER_COUNTS = PlotParams(
    filename="peer_counts.png",
    title="Peer count",
    y_label="Number of peers",
    y_max=100.0,
)


class Plotter:
    """Writes one PNG per metric into *output_path*."""

    def __init__(self, name: str, output_path: Path) -> None:
        self.name = name
        self.output_path = Path(output_path)

    def block_height(self, lines: list[Line]) -> Path:
        return self.plot(BLOCK_HEIGHTS, lines)

    def block_speeds(self, lines: list[Line]) -> Path:
        return self.plot(BLOCK_SPEEDS, lines)

    def peer_count(self, lines: list[Line]) -> Path:
        return self.plot(PEER_COUNTS, lines)

    def plot(self, params: PlotParams, lines: list[Line]) -> Path:
        """Draw *lines* (one per run) and save the chart.

        Returns:
            Path of the written PNG.
        """
        fig, ax = plt.subplots(figsize=_FIG_SIZE, dpi=_DPI)
        try:
            ax.set_title(f"{params.title} for {self.name}")
            ax.set_xlabel("Time (s)")
            ax.set_ylabel(params.y_label)

            for index, (times, data) in enumerate(lines, start=1):
                ax.plot(
                    times,
                    data,
                    label=f"Run #{index}",
                    linewidth=1.5,
                    color=COLORS[(index - 1) % len(COLORS)],
                )

            ax.set_xlim(left=0.0)
            if params.y_max is None:
                ax.set_ylim(bottom=params.y_min)
            else:
                ax.set_ylim(params.y_min, params.y_max)
            ax.yaxis.set_major_formatter(StrMethodFormatter("{x:,.0f}"))
            if lines:
                ax.legend()
            ax.grid(True, alpha=0.3)

            filepath = self.output_path / params.filename
            fig.savefig(filepath)
        finally:
            plt.close(fig)

        logger.debug("Wrote %s", filepath)
        return filepath
