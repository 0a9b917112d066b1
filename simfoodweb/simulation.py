"""
simulation.py

Experiment drivers built on FoodWebModel:
- run_simulation: wrapper around run_experiments
- burn_in: settle a community before perturbing it
- run_extinction_cascade: sequential random primary extinctions
- run_harvesting: repeated harvests of the large-bodied species
"""

import numpy as np
import pandas as pd

from simfoodweb.config import ModelConfig
from simfoodweb.errors import InvalidParameterError
from simfoodweb.metrics import population_biomass, summarize
from simfoodweb.model import FoodWebModel, SimulationRecord, run_experiments
from simfoodweb.utils import make_rng


def run_simulation(runs: int,
                   S: int,
                   connectance: float,
                   config: ModelConfig = None,
                   temperature_scaled: bool = False,
                   seed=None) -> pd.DataFrame:
    """
    Run the food-web model for a given configuration.

    Parameters
    ----------
    runs : int
        Number of independent replicates.
    S : int
        Species richness of each niche web.
    connectance : float
        Target connectance of each niche web.
    config : ModelConfig
        Response, rates and integration settings shared by all runs.
    temperature_scaled : bool
        Use Boltzmann-Arrhenius rates instead of the mass-only ones.
    seed : int or numpy Generator

    Returns
    -------
    pandas.DataFrame
        One row of community metrics per run.
    """
    return run_experiments(
        runs=runs,
        S=S,
        connectance=connectance,
        config=config,
        temperature_scaled=temperature_scaled,
        seed=seed,
    )


def _window(record: SimulationRecord, window):
    if window is None:
        return max(1, len(record) // 2)
    return min(window, len(record))


def _phase_rows(record: SimulationRecord, phase, window, **extra):
    last = _window(record, window)
    community = {"phase": phase, "t_start": record.times[0], "t_stop": record.times[-1]}
    community.update(extra)
    community.update(summarize(record, last))
    community["extinct"] = int(sum(e.phase == phase for e in record.extinctions))
    species = pd.DataFrame({
        "phase": phase,
        "species": np.arange(record.S),
        "biomass": population_biomass(record, last),
        "final": record.final,
    })
    return community, species


def burn_in(model: FoodWebModel, initial_biomass, duration: float = None,
            phase="burn_in") -> SimulationRecord:
    """Simulate from `initial_biomass` over the configured window (or `duration`)."""
    t_start = model.config.t_start
    t_stop = t_start + duration if duration is not None else model.config.t_stop
    return model.simulate(initial_biomass, t_start=t_start, t_stop=t_stop, phase=phase)


def run_extinction_cascade(model: FoodWebModel, initial_biomass, stop_fraction: float = 0.5,
                           duration: float = 100.0, window=None, max_events: int = None,
                           seed=None):
    """
    Burn in, then remove one random living species at a time and let the
    community respond for `duration` after each removal, until fewer than
    `stop_fraction * S` species are alive.

    Returns
    -------
    community_df : pandas.DataFrame
        One row per phase with the community metrics.
    species_df : pandas.DataFrame
        Mean and final biomass of every species in every phase.
    """
    if not 0 <= stop_fraction <= 1:
        raise InvalidParameterError("stop_fraction must lie in [0, 1]")
    if not duration > 0:
        raise InvalidParameterError("duration must be > 0")
    rng = make_rng(seed)

    record = burn_in(model, initial_biomass)
    community, species = _phase_rows(record, "burn_in", window, removed=-1)
    communities, tables = [community], [species]

    B = record.final
    t = model.config.t_stop
    event = 0
    while model.alive.sum() >= max(stop_fraction * model.S, 1):
        if max_events is not None and event >= max_events:
            break
        target = int(rng.choice(np.flatnonzero(model.alive)))
        B[target] = 0.0
        phase = f"primary_{event}"
        record = model.simulate(B, t_start=t, t_stop=t + duration, phase=phase)
        community, species = _phase_rows(record, phase, window, removed=target)
        communities.append(community)
        tables.append(species)
        B = record.final
        t += duration
        event += 1
        print(f"Removed species {target}: {int(model.alive.sum())} of {model.S} species alive.")

    return pd.DataFrame(communities), pd.concat(tables, ignore_index=True)


def harvest(biomass, bodymass, retain: float = 0.6) -> np.ndarray:
    """Multiply the biomass of every species heavier than the median mass by `retain`."""
    if not 0 <= retain <= 1:
        raise InvalidParameterError("retain must lie in [0, 1]")
    B = np.array(biomass, dtype=float)
    bodymass = np.asarray(bodymass, dtype=float)
    B[bodymass > np.median(bodymass)] *= retain
    return B


def run_harvesting(model: FoodWebModel, equilibrium_biomass, retain: float = 0.6,
                   events: int = 1, duration: float = 100.0, window=None, t_start: float = None):
    """
    Start from an equilibrium biomass vector and apply `events` harvests,
    each followed by a recovery simulation of length `duration`.

    Returns
    -------
    community_df, species_df : pandas.DataFrame
    """
    if events < 1:
        raise InvalidParameterError("events must be >= 1")
    if not duration > 0:
        raise InvalidParameterError("duration must be > 0")

    B = np.asarray(equilibrium_biomass, dtype=float)
    t = model.config.t_start if t_start is None else t_start
    communities, tables = [], []
    for event in range(events):
        B = harvest(B, model.bodymass, retain)
        phase = f"harvest_{event}"
        record = model.simulate(B, t_start=t, t_stop=t + duration, phase=phase)
        community, species = _phase_rows(record, phase, window, retain=retain)
        communities.append(community)
        tables.append(species)
        B = record.final
        t += duration
    return pd.DataFrame(communities), pd.concat(tables, ignore_index=True)
