"""
Pytest configuration and fixtures for the portfolio survival test suite.
"""

from typing import Any, Dict

import pytest

from config import Config, SimulationParameters


# ---------------------------------------------------------------------------
# Parameter Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def deterministic_growth() -> SimulationParameters:
    """No volatility, 5% growth, no cash flows, two years."""
    return SimulationParameters(
        initial_capital=1000.0,
        annual_contribution=0.0,
        annual_withdrawal=0.0,
        mean_return=0.05,
        std_dev_return=0.0,
        years=2,
    )


@pytest.fixture
def withdrawal_params() -> SimulationParameters:
    """Withdrawal scenario with a real chance of depletion over 30 years."""
    return SimulationParameters(
        initial_capital=10_000.0,
        annual_contribution=0.0,
        annual_withdrawal=500.0,
        mean_return=0.07,
        std_dev_return=0.15,
        years=30,
    )


@pytest.fixture
def config_dict() -> Dict[str, Any]:
    """Raw configuration as it would appear in config.json."""
    return {
        "scenario": "TestScenario",
        "initial_capital": 10_000,
        "annual_contribution": 0,
        "annual_withdrawal": 500,
        "mean_return": 0.07,
        "std_dev_return": 0.15,
        "years": 30,
        "iterations": 1000,
        "seed": 42,
    }


@pytest.fixture
def config(config_dict) -> Config:
    return Config(**config_dict)
