"""
Unit tests for plotting.py.

Uses the non-interactive Agg backend selected in plotting.py.
"""

import matplotlib.pyplot as plt

from aggregation import build_histogram, compute_percentiles
from plotting import _format_bucket_size, plot_simulation_results
from simulation import NumpyUniformSource, run_simulation


class TestPlotSimulationResults:

    def test_saves_png(self, tmp_path, config):
        outcome = run_simulation(300, config, NumpyUniformSource(seed=4))
        histogram = build_histogram(outcome.samples, config.histogram_buckets)
        filename = str(tmp_path / "hist.png")

        result = plot_simulation_results(
            histogram, outcome, compute_percentiles(outcome.samples), config, filename
        )

        assert result == filename
        assert (tmp_path / "hist.png").stat().st_size > 0

    def test_degenerate_histogram(self, tmp_path, config):
        outcome = run_simulation(10, config.model_copy(update={"years": 0}))
        histogram = build_histogram(outcome.samples)

        result = plot_simulation_results(
            histogram,
            outcome,
            compute_percentiles(outcome.samples),
            config,
            str(tmp_path / "flat.png"),
        )

        assert result is not None

    def test_unwritable_path_returns_none(self, tmp_path, config):
        outcome = run_simulation(20, config, NumpyUniformSource(seed=1))
        histogram = build_histogram(outcome.samples)
        filename = str(tmp_path / "missing_dir" / "hist.png")

        result = plot_simulation_results(
            histogram, outcome, compute_percentiles(outcome.samples), config, filename
        )

        assert result is None

    def test_figures_are_closed(self, tmp_path, config):
        outcome = run_simulation(20, config, NumpyUniformSource(seed=2))
        histogram = build_histogram(outcome.samples)
        before = len(plt.get_fignums())

        plot_simulation_results(
            histogram,
            outcome,
            compute_percentiles(outcome.samples),
            config,
            str(tmp_path / "closed.png"),
        )

        assert len(plt.get_fignums()) == before


def test_format_bucket_size():
    assert _format_bucket_size(20000.0) == "20.000"
    assert _format_bucket_size(0.30000000000000004) == "0.3"
