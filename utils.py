import datetime as _dt
import hashlib
from typing import Union

from loguru import logger

from config import Config


def _generate_seed_from_timestamp() -> int:
    ts = _dt.datetime.now(_dt.timezone.utc).isoformat()
    return int.from_bytes(hashlib.sha256(ts.encode()).digest()[:8], "big") % (2**32 - 1)


def format_number_with_separator(value: Union[int, float, str], separator: str = ".") -> str:
    """
    Groups the integer digits of ``value`` in threes, e.g. 1234567 -> '1.234.567'.

    Any fractional part is kept unchanged after a '.'.
    """
    text = str(value)
    sign = ""
    if text.startswith("-"):
        sign, text = "-", text[1:]
    integer_part, dot, fraction = text.partition(".")
    groups = []
    while len(integer_part) > 3:
        groups.insert(0, integer_part[-3:])
        integer_part = integer_part[:-3]
    groups.insert(0, integer_part)
    return sign + separator.join(groups) + dot + fraction


def build_results_sentence(config: Config, success_rate: float) -> str:
    """Plain-language summary of a run for display next to the chart."""
    sentence = (
        f"If you invest your initial capital of "
        f"{format_number_with_separator(round(config.initial_capital))}€ "
    )
    if config.annual_contribution > 0:
        sentence += (
            f"with an annual contribution of "
            f"{format_number_with_separator(round(config.annual_contribution))}€ "
        )
    elif config.annual_withdrawal > 0:
        sentence += (
            f"with an annual withdrawal of "
            f"{format_number_with_separator(round(config.annual_withdrawal))}€ "
        )
    sentence += (
        f"at an expected return of {config.mean_return * 100:.2f}% and an annual "
        f"volatility of {config.std_dev_return * 100:.2f}% over {config.years} years, "
        f"your portfolio has a success rate of {round(success_rate)}% "
        f"of not falling to 0."
    )
    return sentence


def log_input_parameters(config: Config) -> None:
    """Logs the input parameters for the simulation."""
    logger.info(f"--- Input Parameters For Scenario: {config.Nickname} ---")
    config_as_dict_for_logging = config.model_dump(by_alias=False)
    for key, value in config_as_dict_for_logging.items():
        if key == "Nickname":
            continue
        if key in ("mean_return", "std_dev_return"):
            logger.info(f"{key.replace('_', ' ').title()}: {value * 100:.2f}%")
        elif key in ("initial_capital", "annual_contribution", "annual_withdrawal"):
            logger.info(f"{key.replace('_', ' ').title()}: {value:,.2f}€")
        else:
            logger.info(f"{key.replace('_', ' ').title()}: {value}")
    logger.info("--- End of Input Parameters ---")


def log_simulation_results(config, outcome, percentiles, histogram) -> None:
    """Logs the final results of the simulation."""
    logger.info(f"--- Final Simulation Results for Scenario: '{config.Nickname}' ---")
    logger.info(f"Simulated Paths: {outcome.iterations:,}")
    logger.info(
        f"Probability of Not Running Out of Money: {outcome.success_rate:.2f}%"
    )
    if outcome.overflow_count:
        logger.warning(f"Paths Overflowing To Infinity: {outcome.overflow_count:,}")
    summary_df = outcome.to_dataframe()
    successful_final_balances = summary_df.loc[
        summary_df["Final Balance"] > 0, "Final Balance"
    ]
    median_final_bal_successful = (
        float(successful_final_balances.median())
        if not successful_final_balances.empty
        else 0.0
    )
    logger.info(
        f"Median Final Capital (Successful Sims Only): {median_final_bal_successful:,.2f}€"
    )
    logger.info("Final Capital Percentiles (nearest rank):")
    for name, value in percentiles.model_dump().items():
        logger.info(f"  {name[1:]}th: {value:,.2f}€")
    if histogram is not None:
        logger.info(
            f"Histogram: {len(histogram.buckets)} buckets of {histogram.bucket_size:,.2f}€"
        )
    logger.info(build_results_sentence(config, outcome.success_rate))
