import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
from loguru import logger
from matplotlib.ticker import FuncFormatter
from typing import Optional

from aggregation import Histogram, PercentileSet
from config import Config
from constants import (
    BAR_COLOR,
    BAR_EDGE_COLOR,
    TEXT_INPUT_COLOR,
    TEXT_OUTPUT_COLOR,
)
from simulation import SimulationOutcome
from utils import format_number_with_separator


def _format_bucket_size(bucket_size: float) -> str:
    if bucket_size >= 1:
        return format_number_with_separator(round(bucket_size))
    return f"{bucket_size:.6g}"


def plot_simulation_results(
    histogram: Histogram,
    outcome: SimulationOutcome,
    percentiles: PercentileSet,
    input_config: Config,
    filename: str,
    dpi_setting: int = 150,
) -> Optional[str]:
    """
    Draws the terminal capital histogram with the run's inputs and results.

    Returns the filename on success, or None when the figure could not be saved.
    """
    fig, ax = plt.subplots(figsize=(12, 7.5))

    starts = [b.range_start for b in histogram.buckets]
    counts = histogram.counts
    ax.bar(
        starts,
        counts,
        width=histogram.bucket_size,
        align="edge",
        color=BAR_COLOR,
        edgecolor=BAR_EDGE_COLOR,
        label="Final Capital",
    )

    for name, value, style in (
        ("P10", percentiles.p10, "dotted"),
        ("P50", percentiles.p50, "dashed"),
        ("P90", percentiles.p90, "dotted"),
    ):
        ax.axvline(
            value,
            color="black",
            linestyle=style,
            linewidth=1.0,
            label=f"{name}: {format_number_with_separator(round(value))}€",
        )

    p = input_config
    input_lines = [
        f"Scenario: {p.Nickname}",
        f"Iterations: {format_number_with_separator(p.iterations)}, Years: {p.years}",
        f"Initial Capital: {format_number_with_separator(round(p.initial_capital))}€",
        f"Contribution: {format_number_with_separator(round(p.annual_contribution))}€/yr, "
        f"Withdrawal: {format_number_with_separator(round(p.annual_withdrawal))}€/yr",
        f"Return: {p.mean_return * 100:.2f}% Mean, {p.std_dev_return * 100:.2f}% Vol",
    ]
    output_lines = [
        "--- Results ---",
        f"Success: {round(outcome.success_rate)}%",
        f"Bucket Size: {_format_bucket_size(histogram.bucket_size)}€",
    ]

    x_pos_text = 0.98
    y_coord_start = 0.98
    line_spacing_val = 0.035
    fontsize_text = 7

    for i, line_text in enumerate(input_lines):
        ax.text(
            x_pos_text,
            y_coord_start - i * line_spacing_val,
            line_text,
            transform=ax.transAxes,
            ha="right",
            va="top",
            fontsize=fontsize_text,
            color=TEXT_INPUT_COLOR,
            bbox=dict(
                facecolor="white",
                alpha=0.80,
                pad=2,
                edgecolor="lightgrey",
                boxstyle="round,pad=0.3",
            ),
        )

    output_y_start_offset = (len(input_lines) * line_spacing_val) + (
        line_spacing_val * 0.75
    )
    for j, line_text in enumerate(output_lines):
        ax.text(
            x_pos_text,
            y_coord_start - output_y_start_offset - (j * line_spacing_val),
            line_text,
            transform=ax.transAxes,
            ha="right",
            va="top",
            fontsize=fontsize_text,
            color=TEXT_OUTPUT_COLOR,
            fontweight="bold",
            bbox=dict(
                facecolor="white",
                alpha=0.85,
                pad=2,
                edgecolor="lightgrey",
                boxstyle="round,pad=0.3",
            ),
        )

    thousands = FuncFormatter(lambda x, _pos: format_number_with_separator(round(x)))
    ax.xaxis.set_major_formatter(thousands)
    ax.yaxis.set_major_formatter(thousands)

    ax.set_title(f"Final Capital Distribution: {p.Nickname}", fontsize=14)
    ax.set_xlabel("Final Capital (€)", fontsize=10, fontweight="bold")
    ax.set_ylabel("Number of Simulations", fontsize=10, fontweight="bold")
    ax.tick_params(labelsize=8)
    ax.legend(fontsize=7, loc="upper left", bbox_to_anchor=(0.01, 0.98))
    ax.grid(True, axis="y", linestyle=":", alpha=0.6)
    fig.tight_layout()

    saved: Optional[str] = filename
    try:
        fig.savefig(filename, dpi=dpi_setting)
        logger.info(f"Histogram plot saved to {filename}")
    except OSError as e:
        logger.opt(exception=True).error(f"Error saving histogram plot '{filename}': {e}")
        saved = None
    finally:
        plt.close(fig)
    return saved
