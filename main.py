import sys
import datetime as _dt
import multiprocessing
from loguru import logger

from aggregation import build_histogram, compute_percentiles
from config import (
    ConfigurationError,
    NumericOverflowError,
    load_config_from_json,
    parse_config,
)
from plotting import plot_simulation_results
from simulation import PortfolioMonteCarloSimulator
from utils import log_input_parameters, log_simulation_results


def configure_logging(log_filename: str) -> None:
    logger.remove()  # Remove default handler
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level="INFO",
        colorize=True,
    )
    logger.add(
        log_filename,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
        level="INFO",
        rotation="10 MB",
    )


def main(argv=None) -> int:
    """
    Main execution entry point.

    Loads configuration, runs the Monte Carlo simulation, logs the success rate
    and percentiles, and saves the final capital histogram.
    """
    argv = sys.argv[1:] if argv is None else argv
    current_timestamp_str = _dt.datetime.now().strftime("%Y%m%d_%H%M%S")
    log_filename = f"portfolio_survival_log_{current_timestamp_str}.log"

    configure_logging(log_filename)
    logger.info(f"Logging initialized. Log file: {log_filename}")

    # --- LOAD CONFIGURATION FROM JSON ---
    if argv:
        json_filename = argv[0]
    else:
        json_filename = "config.json"
        logger.info(
            f"No config file specified via argument. Defaulting to '{json_filename}'"
        )

    logger.info(f"Loading configuration from: {json_filename}")
    try:
        config = parse_config(load_config_from_json(json_filename))
        logger.info(
            f"Configuration for scenario '{config.Nickname}' loaded and validated successfully."
        )
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return 1

    log_input_parameters(config)

    simulator = PortfolioMonteCarloSimulator(config)
    logger.info(
        f"--- Running Simulation for '{config.Nickname}' ({config.iterations} paths over {config.years} years) ---"
    )
    outcome = simulator.run_monte_carlo_simulations()

    percentiles = compute_percentiles(outcome.samples)
    try:
        histogram = build_histogram(outcome.samples, config.histogram_buckets)
    except NumericOverflowError as e:
        logger.error(f"Cannot build histogram for '{config.Nickname}': {e}")
        histogram = None

    log_simulation_results(config, outcome, percentiles, histogram)

    if histogram is not None:
        safe_nickname = "".join(
            c if c.isalnum() or c in ["_", "-"] else "_" for c in config.Nickname
        )
        plot_filename_hist = (
            f"portfolio_{safe_nickname}_{current_timestamp_str}_HIST.png"
        )
        plot_simulation_results(
            histogram, outcome, percentiles, config, plot_filename_hist
        )

    logger.info(
        f"--- Main execution finished for scenario '{config.Nickname}'. Outputs in current directory. Log: {log_filename} ---"
    )
    return 0


if __name__ == "__main__":
    multiprocessing.freeze_support()
    sys.exit(main())
