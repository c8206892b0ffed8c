import asyncio
import json
import math
import os
import sys
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger
from pydantic import BaseModel, Field

from aggregation import build_histogram, compute_percentiles
from config import Config, InvalidParameterError, NumericOverflowError, parse_config
from simulation import PortfolioMonteCarloSimulator
from utils import build_results_sentence


# ---------------------------------------------------------------------------
# Response models
# ---------------------------------------------------------------------------

class PercentileData(BaseModel):
    p10: Optional[float] = None
    p50: Optional[float] = None
    p90: Optional[float] = None


class SimulationSummary(BaseModel):
    iterations: int
    success_rate: float
    overflow_count: int
    percentiles: PercentileData
    results_sentence: str


class BucketData(BaseModel):
    range_start: float
    range_end: float
    count: int


class HistogramData(BaseModel):
    bucket_size: float
    buckets: List[BucketData]


class SimulationResponse(BaseModel):
    scenario: str
    summary: SimulationSummary
    histogram: HistogramData
    final_capitals: Optional[List[Optional[float]]] = None


# ---------------------------------------------------------------------------
# Request models
# ---------------------------------------------------------------------------

class SimulationRequest(BaseModel):
    config: Dict[str, Any] = Field(
        ...,
        description="Simulation configuration (same schema as config.json).",
    )
    include_samples: bool = Field(
        False,
        description="If true, the raw terminal capital of every path is returned.",
    )


# ---------------------------------------------------------------------------
# Logging setup
# ---------------------------------------------------------------------------

def _configure_logging() -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        format=(
            "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
            "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
            "<level>{message}</level>"
        ),
        level="INFO",
        colorize=True,
    )
    logger.add(
        "server.log",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level} | {message}",
        level="INFO",
        rotation="10 MB",
    )


# ---------------------------------------------------------------------------
# App lifecycle
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(_app: FastAPI):
    _configure_logging()
    logger.info("Portfolio Survival API starting up")
    yield
    logger.info("Portfolio Survival API shutting down")


app = FastAPI(
    title="Portfolio Survival Monte Carlo API",
    description="Backend API for estimating how likely a portfolio is to survive a horizon of contributions or withdrawals.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _safe_float(value: float) -> Optional[float]:
    """Convert NaN / Inf to None so JSON serialisation stays valid."""
    if math.isnan(value) or math.isinf(value):
        return None
    return value


def _run_simulation(config: Config, include_samples: bool = False) -> dict:
    """Heavy, synchronous work -- called via ``asyncio.to_thread``."""
    simulator = PortfolioMonteCarloSimulator(config)

    logger.info(
        f"Running simulation for '{config.Nickname}' "
        f"({config.iterations} paths, {config.years} years)"
    )
    outcome = simulator.run_monte_carlo_simulations()

    percentiles = compute_percentiles(outcome.samples)
    histogram = build_histogram(outcome.samples, config.histogram_buckets)

    return {
        "scenario": config.Nickname,
        "summary": {
            "iterations": outcome.iterations,
            "success_rate": outcome.success_rate,
            "overflow_count": outcome.overflow_count,
            "percentiles": {
                name: _safe_float(value)
                for name, value in percentiles.model_dump().items()
            },
            "results_sentence": build_results_sentence(config, outcome.success_rate),
        },
        "histogram": {
            "bucket_size": histogram.bucket_size,
            "buckets": [b.model_dump() for b in histogram.buckets],
        },
        "final_capitals": (
            [_safe_float(v) for v in outcome.samples] if include_samples else None
        ),
    }


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------

@app.get("/api/health")
async def health_check():
    return {"status": "ok"}


@app.get("/api/config/default")
async def get_default_config():
    """Return the bundled ``config.json`` as a ready-to-use template."""
    config_path = os.path.join(os.path.dirname(__file__), "config.json")
    if not os.path.exists(config_path):
        raise HTTPException(status_code=404, detail="Default config.json not found.")
    with open(config_path, "r", encoding="utf-8") as f:
        return json.load(f)


@app.post("/api/validate")
async def validate_config(body: SimulationRequest):
    """Validate a configuration without running any simulation."""
    try:
        config = parse_config(body.config)
    except InvalidParameterError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return {"valid": True, "scenario": config.Nickname}


@app.post("/api/simulate", response_model=SimulationResponse)
async def simulate(body: SimulationRequest):
    """Run the Monte Carlo simulation and return the success rate, percentiles and histogram."""
    try:
        config = parse_config(body.config)
    except InvalidParameterError as e:
        raise HTTPException(status_code=422, detail=str(e))

    logger.info(f"Received simulation request for scenario '{config.Nickname}'")

    try:
        result = await asyncio.to_thread(
            _run_simulation, config, body.include_samples,
        )
    except NumericOverflowError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception as e:
        logger.opt(exception=True).error(f"Simulation failed: {e}")
        raise HTTPException(status_code=500, detail=f"Simulation error: {e}")

    logger.info(f"Simulation complete for '{config.Nickname}'")
    return result


# ---------------------------------------------------------------------------
# Entrypoint
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    _configure_logging()
    uvicorn.run("server:app", host="0.0.0.0", port=8080, reload=True)
