"""Output renderer: rich console tables and the ``results.md`` report."""

import logging
import sys
from io import StringIO
from pathlib import Path

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ethm.analysis import AnalysisReport

logger = logging.getLogger(__name__)

RESULTS_FILENAME = "results.md"


def render_table(
    report: AnalysisReport,
    *,
    file: object | None = None,
    width: int | None = None,
) -> None:
    """Render *report* as two ``rich`` tables to *file*.

    Args:
        report: Analysis to render.
        file: Writable file object (default: ``sys.stdout``).
        width: Explicit console width (default: auto-detect).
    """
    out = file or sys.stdout
    console = Console(file=out, highlight=False, width=width)

    console.print(f"\n[bold]Analysis results for {escape(report.name)}[/bold]")
    console.print(f"  Version: {escape(report.version)}\n")

    # -- Peer count --
    t = Table(title="Peer count")
    t.add_column("Run")
    for header in ("Min", "Max", "Mean", "Std dev"):
        t.add_column(header, justify="right")
    for stats in report.peer_counts:
        t.add_row(
            f"#{stats.run_index}",
            f"{stats.min:.0f}",
            f"{stats.max:.0f}",
            f"{stats.mean:.2f}",
            f"{stats.std_dev:.2f}",
        )
    console.print(t)

    # -- Block height --
    t = Table(title="Block height")
    t.add_column("Run")
    for header in ("Max", "Mean speed (bps)", "Std dev"):
        t.add_column(header, justify="right")
    for stats in report.block_heights:
        t.add_row(
            f"#{stats.run_index}",
            f"{stats.max:,.0f}",
            f"{stats.mean_speed:.2f}",
            f"{stats.std_dev:.2f}",
        )
    console.print(t)


def render_markdown(report: AnalysisReport) -> str:
    """Return the plain-text analysis stored in ``results.md``."""
    lines = ["Analysis results:", f"  - Version: {report.version}", ""]

    for stats in report.peer_counts:
        lines.append(
            f"  - [Peer Count] Run #{stats.run_index}: "
            f"min={stats.min:.0f} ; max={stats.max:.0f} ; "
            f"mean={stats.mean:.2f} ; std_dev={stats.std_dev:.2f}"
        )
    lines.append("")

    for stats in report.block_heights:
        lines.append(
            f"  - [Block Height] Run #{stats.run_index}: "
            f"max={stats.max:.0f} ; mean_speed={stats.mean_speed:.2f}bps ; "
            f"std_dev={stats.std_dev:.2f}"
        )
    lines.append("")

    return "\n".join(lines) + "\n"


def write_results(report: AnalysisReport, output_path: Path) -> Path:
    """Write ``results.md`` into *output_path* and return its path."""
    filepath = Path(output_path) / RESULTS_FILENAME
    filepath.write_text(render_markdown(report), encoding="utf-8")
    logger.debug("Wrote %s", filepath)
    return filepath


def render_to_string(report: AnalysisReport, *, width: int = 200) -> str:
    """Render the tables to a string instead of stdout, for testing."""
    buf = StringIO()
    render_table(report, file=buf, width=width)
    return buf.getvalue()
