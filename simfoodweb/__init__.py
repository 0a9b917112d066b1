# simfoodweb/__init__.py

"""
simfoodweb

A bioenergetic food-web simulator:
- FoodWebModel: the core model class (rates, integration, extinctions, rewiring)
- run_experiments: batch-runner for multiple replicates
- Network generators, rate scaling and community metrics
"""

from .config import ADBMParameters, ModelConfig, RewireConfig
from .errors import (
    EmptyWindowError,
    GenerationTimeoutError,
    IntegrationDivergedError,
    InvalidParameterError,
    SimFoodWebError,
)
from .functional_response import FunctionalResponse
from .metrics import (
    foodweb_evenness,
    population_stability,
    species_persistence,
    species_richness,
    summarize,
    total_biomass,
)
from .model import (
    ExtinctionEvent,
    FoodWebModel,
    RunState,
    SimulationRecord,
    run_experiments,
    simulate,
)
from .networks import (
    bodymass_from_trophic_rank,
    generate_adbm_network,
    generate_niche_network,
    resample_niche_network,
)
from .rates import RateTables, allometric_rates, scale_rates
from .rewiring import RewireChange, RewireEngine
from .utils import connectance, producers, trophic_rank

__all__ = [
    "ADBMParameters",
    "ModelConfig",
    "RewireConfig",
    "EmptyWindowError",
    "GenerationTimeoutError",
    "IntegrationDivergedError",
    "InvalidParameterError",
    "SimFoodWebError",
    "FunctionalResponse",
    "foodweb_evenness",
    "population_stability",
    "species_persistence",
    "species_richness",
    "summarize",
    "total_biomass",
    "ExtinctionEvent",
    "FoodWebModel",
    "RunState",
    "SimulationRecord",
    "run_experiments",
    "simulate",
    "bodymass_from_trophic_rank",
    "generate_adbm_network",
    "generate_niche_network",
    "resample_niche_network",
    "RateTables",
    "allometric_rates",
    "scale_rates",
    "RewireChange",
    "RewireEngine",
    "connectance",
    "producers",
    "trophic_rank",
]
