import math
import itertools
import multiprocessing
import threading
from typing import Iterable, List, Optional, Protocol, Tuple

import numpy as np
import pandas as pd
from loguru import logger
from pydantic import BaseModel, Field

from config import Config, InvalidParameterError, SimulationParameters
from constants import PATHS_PER_CHUNK
from utils import _generate_seed_from_timestamp


class SimulationCancelledError(Exception):
    """Raised when a run is cancelled through its cancellation event."""


# ---------------------------------------------------------------------------
# Random sources
# ---------------------------------------------------------------------------


class UniformSource(Protocol):
    def uniform(self) -> float:
        """Returns a uniform float in the open interval (0, 1)."""
        ...


class NumpyUniformSource:
    """Uniform draws from a numpy ``Generator``."""

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)

    def uniform(self) -> float:
        return float(self._rng.random())


class SequenceUniformSource:
    """Replays a fixed sequence of uniform draws, cycling when exhausted."""

    def __init__(self, values: Iterable[float]):
        values = [float(v) for v in values]
        if not values:
            raise InvalidParameterError("SequenceUniformSource needs at least one value.")
        if any(not 0.0 <= v < 1.0 for v in values):
            raise InvalidParameterError(
                f"Uniform draws must lie in [0, 1), got {values}."
            )
        if not any(v > 0.0 for v in values):
            raise InvalidParameterError(
                "At least one uniform draw must be above zero."
            )
        self._values = itertools.cycle(values)

    def uniform(self) -> float:
        return next(self._values)


def generate_normal(mean: float, std_dev: float, source: UniformSource) -> float:
    """
    Draws one normally distributed value with the Box-Muller transform.

    ``u1`` must be strictly positive for ``log(u1)`` to stay finite, so a zero
    draw is discarded and redrawn.
    """
    u1 = source.uniform()
    while u1 <= 0.0:
        u1 = source.uniform()
    u2 = source.uniform()
    z0 = math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)
    return z0 * std_dev + mean


# ---------------------------------------------------------------------------
# Paths and runs
# ---------------------------------------------------------------------------


def simulate_path(params: SimulationParameters, source: UniformSource) -> float:
    """
    Evolves one capital trajectory and returns its terminal capital.

    Each year the cash flow is applied first and the result is then scaled by
    that year's return. A path whose capital drops to zero or below is depleted
    and returns exactly 0.0.
    """
    capital = params.initial_capital
    for _ in range(params.years):
        annual_return = generate_normal(
            params.mean_return, params.std_dev_return, source
        )
        capital = (
            capital + params.annual_contribution - params.annual_withdrawal
        ) * (1 + annual_return)
        if capital <= 0:
            return 0.0
    return capital


class SimulationOutcome(BaseModel):
    """Terminal capitals of one run and the share of surviving paths."""

    samples: List[float]
    success_rate: float = Field(..., ge=0.0, le=100.0)
    overflow_count: int = Field(0, ge=0)

    model_config = {"frozen": True}

    @classmethod
    def from_samples(cls, samples: List[float]) -> "SimulationOutcome":
        if not samples:
            raise InvalidParameterError("Cannot build an outcome from zero samples.")
        successes = sum(1 for s in samples if s > 0)
        overflow_count = sum(1 for s in samples if math.isinf(s))
        if overflow_count:
            logger.warning(
                f"{overflow_count} of {len(samples)} paths overflowed to infinity. "
                "Consider a shorter horizon or smaller returns."
            )
        return cls(
            samples=samples,
            success_rate=100.0 * successes / len(samples),
            overflow_count=overflow_count,
        )

    @property
    def iterations(self) -> int:
        return len(self.samples)

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame({"Final Balance": self.samples})


def _validate_iterations(iterations: int) -> None:
    if isinstance(iterations, bool) or not isinstance(iterations, (int, np.integer)):
        raise InvalidParameterError(
            f"iterations must be a positive integer, got {iterations!r}"
        )
    if iterations <= 0:
        raise InvalidParameterError(
            f"iterations must be a positive integer, got {iterations}"
        )


def run_simulation(
    iterations: int,
    params: SimulationParameters,
    uniform_source: Optional[UniformSource] = None,
    cancel_event: Optional[threading.Event] = None,
) -> SimulationOutcome:
    """
    Runs ``iterations`` independent paths sharing one uniform source.

    Samples are kept in call order. When no source is given a fresh, unseeded
    numpy source is used.
    """
    _validate_iterations(iterations)
    source = uniform_source if uniform_source is not None else NumpyUniformSource()

    samples: List[float] = []
    for _ in range(iterations):
        if cancel_event is not None and cancel_event.is_set():
            raise SimulationCancelledError(
                f"Simulation cancelled after {len(samples)} of {iterations} paths."
            )
        samples.append(simulate_path(params, source))
    return SimulationOutcome.from_samples(samples)


def _run_chunk(params: SimulationParameters, num_paths: int, chunk_seed: int) -> List[float]:
    source = NumpyUniformSource(chunk_seed)
    return [simulate_path(params, source) for _ in range(num_paths)]


class PortfolioMonteCarloSimulator:
    """
    A Monte Carlo simulator for portfolio survival.

    Paths are grouped into fixed-size chunks and chunk ``k`` draws from a
    generator seeded with ``main_seed + k``, so a run produces the same samples
    whether it executes sequentially or across a process pool.
    """

    def __init__(self, params_model: Config, main_seed_override: Optional[int] = None):
        self.params_model = params_model

        if main_seed_override is not None:
            self.main_seed = main_seed_override
        elif self.params_model.seed is not None:
            self.main_seed = self.params_model.seed
        else:
            self.main_seed = _generate_seed_from_timestamp()
        logger.info(
            f"Simulator initialized for scenario '{self.params_model.Nickname}' with main seed: {self.main_seed}"
        )

    def _chunk_plan(self, num_simulations: int) -> List[Tuple[int, int]]:
        """Returns ``(num_paths, chunk_seed)`` pairs covering ``num_simulations``."""
        plan = []
        for k, start in enumerate(range(0, num_simulations, PATHS_PER_CHUNK)):
            plan.append((min(PATHS_PER_CHUNK, num_simulations - start), self.main_seed + k))
        return plan

    def run_monte_carlo_simulations(
        self,
        num_simulations: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> SimulationOutcome:
        """
        Runs the configured number of paths, either sequentially or in parallel.
        """
        if num_simulations is None:
            num_simulations = self.params_model.iterations
        _validate_iterations(num_simulations)

        plan = self._chunk_plan(num_simulations)
        num_procs_to_use = (
            self.params_model.num_processes
            if self.params_model.num_processes is not None
            else 1
        )

        chunk_results: List[List[float]]
        if num_procs_to_use <= 1 or len(plan) == 1:
            logger.debug(
                f"Running {num_simulations} simulations sequentially in {len(plan)} chunk(s)."
            )
            chunk_results = self._run_sequential(plan, cancel_event)
        else:
            logger.debug(
                f"Running {num_simulations} simulations in parallel using {num_procs_to_use} processes."
            )
            args_for_starmap = [
                (self.params_model, num_paths, chunk_seed) for num_paths, chunk_seed in plan
            ]
            try:
                with multiprocessing.Pool(processes=num_procs_to_use) as pool:
                    chunk_results = pool.starmap(_run_chunk, args_for_starmap)
            except (OSError, multiprocessing.ProcessError) as e:
                logger.opt(exception=True).error(
                    f"Multiprocessing pool error: {e}. Falling back to sequential execution."
                )
                chunk_results = self._run_sequential(plan, cancel_event)

        samples = [s for chunk in chunk_results for s in chunk]
        outcome = SimulationOutcome.from_samples(samples)
        logger.debug(
            f"Run finished for '{self.params_model.Nickname}': success rate {outcome.success_rate:.2f}%"
        )
        return outcome

    def _run_sequential(
        self,
        plan: List[Tuple[int, int]],
        cancel_event: Optional[threading.Event],
    ) -> List[List[float]]:
        results = []
        for num_paths, chunk_seed in plan:
            if cancel_event is not None and cancel_event.is_set():
                done = sum(len(r) for r in results)
                raise SimulationCancelledError(
                    f"Simulation cancelled after {done} paths."
                )
            results.append(_run_chunk(self.params_model, num_paths, chunk_seed))
        return results
