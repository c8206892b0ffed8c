import os
import json
from typing import Any, Dict, Optional
from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)
from loguru import logger

from constants import DEFAULT_HISTOGRAM_BUCKETS, HIGH_VOLATILITY_THRESHOLD


class ConfigurationError(Exception):
    """Raised when the configuration file cannot be loaded or parsed."""


class InvalidParameterError(ConfigurationError, ValueError):
    """Raised when a simulation input is out of range, non-finite or missing."""


class NumericOverflowError(ArithmeticError):
    """Raised when non-finite terminal capitals reach the statistics layer."""


class SimulationParameters(BaseModel):
    """Inputs of the yearly cashflow-then-return recurrence for one path."""

    initial_capital: float = Field(..., ge=0, description="Capital at year 0.")
    annual_contribution: float = Field(
        0.0, ge=0, description="Amount added at the start of every year."
    )
    annual_withdrawal: float = Field(
        0.0, ge=0, description="Amount removed at the start of every year."
    )
    mean_return: float = Field(
        ..., description="Expected annual return as a decimal fraction (0.07 = 7%)."
    )
    std_dev_return: float = Field(
        ..., ge=0.0, description="Annual return volatility as a decimal fraction."
    )
    years: int = Field(..., ge=0, description="Length of the simulated horizon.")

    model_config = {"frozen": True, "allow_inf_nan": False}

    def __init__(self, **data: Any):
        try:
            super().__init__(**data)
        except ValidationError as e:
            raise InvalidParameterError(f"Invalid parameters: {e}") from e

    @field_validator("std_dev_return")
    @classmethod
    def check_volatility(cls, v: float, info: ValidationInfo) -> float:
        if v > HIGH_VOLATILITY_THRESHOLD:
            logger.warning(
                f"Return volatility ({v * 100:.1f}%) is relatively high. "
                "Values are decimal fractions, not percentages."
            )
        return v

    @model_validator(mode="after")
    def check_cash_flows(self) -> "SimulationParameters":
        if self.annual_contribution > 0 and self.annual_withdrawal > 0:
            logger.warning(
                f"Both annual contribution ({self.annual_contribution:,.2f}) and "
                f"annual withdrawal ({self.annual_withdrawal:,.2f}) are set; "
                "their net effect is applied each year."
            )
        return self

    @property
    def net_cash_flow(self) -> float:
        return self.annual_contribution - self.annual_withdrawal


class Config(SimulationParameters):
    """Main configuration model for a portfolio survival run."""

    Nickname: str = Field(
        "DefaultScenario",
        alias="scenario",
        description="A nickname for this simulation scenario.",
    )
    iterations: int = Field(..., gt=0, description="Number of simulated paths.")
    histogram_buckets: int = Field(DEFAULT_HISTOGRAM_BUCKETS, gt=0)
    seed: Optional[int] = Field(None)
    num_processes: Optional[int] = Field(1, ge=1)

    model_config = {"validate_by_name": True, "frozen": True, "allow_inf_nan": False}


def parse_config(data: Dict[str, Any]) -> Config:
    """Validates a raw configuration mapping, raising InvalidParameterError."""
    return Config(**data)


def load_config_from_json(file_path: str) -> Dict[str, Any]:
    """Loads and returns the configuration dictionary from a JSON file."""
    if not os.path.exists(file_path):
        raise ConfigurationError(f"Configuration file not found at: {file_path}")

    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(
            f"Error parsing JSON file '{file_path}': {e}"
        ) from e
    except OSError as e:
        raise ConfigurationError(
            f"Unexpected error reading config file '{file_path}': {e}"
        ) from e

    if not isinstance(data, dict):
        raise ConfigurationError(
            f"Configuration file '{file_path}' must contain a JSON object."
        )
    return data
