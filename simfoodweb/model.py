#!/usr/bin/env python3
"""
model.py

Bioenergetic food-web model: biomass dynamics on a fixed set of species,
integrated with an adaptive scipy solver one accepted step at a time so that
extinctions can be clamped, logged and answered by diet rewiring.
"""

import logging
import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from typing import Any, List, Optional

import numpy as np
import pandas as pd
import torch
from scipy.integrate import BDF, DOP853, LSODA, RK23, RK45, Radau

from simfoodweb.config import ADBMParameters, ModelConfig, RewireConfig
from simfoodweb.errors import IntegrationDivergedError, InvalidParameterError
from simfoodweb.functional_response import FunctionalResponse
from simfoodweb.metrics import summarize
from simfoodweb.networks import bodymass_from_trophic_rank, generate_niche_network
from simfoodweb.rates import RateTables, allometric_rates, assimilation_efficiency, scale_rates
from simfoodweb.rewiring import RewireChange, RewireEngine
from simfoodweb.utils import check_adjacency, default_device, make_rng, producers

logger = logging.getLogger(__name__)

SOLVERS = {
    "LSODA": LSODA,
    "BDF": BDF,
    "Radau": Radau,
    "RK45": RK45,
    "RK23": RK23,
    "DOP853": DOP853,
}


def logistic_growth(B, r, K):
    """r B (1 - B / K) for producers; zero wherever K is zero."""
    safe = torch.where(K > 0, K, torch.ones_like(K))
    return torch.where(K > 0, r * B * (1.0 - B / safe), torch.zeros_like(B))


class RunState(Enum):
    INITIALIZING = "initializing"
    RUNNING = "running"
    COMPLETED = "completed"
    ABORTED = "aborted"


@dataclass(frozen=True)
class ExtinctionEvent:
    species: int
    time: float
    phase: Any = 0


@dataclass
class SimulationRecord:
    """Biomass snapshots of one `simulate` call, plus the model's logs at its end."""

    S: int
    extinction_threshold: float
    phase: Any = 0
    times: List[float] = field(default_factory=list)
    states: List[np.ndarray] = field(default_factory=list)
    extinctions: List[ExtinctionEvent] = field(default_factory=list)
    rewirings: List[RewireChange] = field(default_factory=list)
    adjacency: Optional[np.ndarray] = None

    def append(self, t, B):
        self.times.append(float(t))
        self.states.append(np.array(B, dtype=float))

    def __len__(self):
        return len(self.times)

    @property
    def t(self) -> np.ndarray:
        return np.asarray(self.times, dtype=float)

    @property
    def biomass(self) -> np.ndarray:
        """(n_samples, S) array."""
        if not self.states:
            return np.empty((0, self.S))
        return np.vstack(self.states)

    @property
    def final(self) -> np.ndarray:
        return self.states[-1].copy()

    def to_dataframe(self) -> pd.DataFrame:
        df = pd.DataFrame(self.biomass, columns=[f"species_{i}" for i in range(self.S)])
        df.insert(0, "time", self.t)
        return df

    def extinction_table(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(e) for e in self.extinctions],
                            columns=["species", "time", "phase"])


class FoodWebModel:
    """
    One food web and the state that persists across `simulate` calls: the
    interaction matrix (owned by the model and changed only by rewiring),
    the extinct set and its log, the rewiring log and the consumers left
    without any living prey.

    Parameters
    ----------
    adjacency : array (S, S)
        A[i, j] = 1 when i eats j. Copied; producers are fixed from it.
    config : ModelConfig
    rates : RateTables, optional
        Defaults to the mass-only `allometric_rates`.
    bodymass : array (S,), optional
        Defaults to masses derived from trophic rank with `config.Z`.
    adbm_params : ADBMParameters, optional
        Used by ADBM rewiring.
    producer_growth : callable, optional
        (B, r, K) -> growth tensor. Logistic growth by default.
    device : torch.device, optional
    """

    def __init__(self, adjacency, config: ModelConfig = None, rates: RateTables = None,
                 bodymass=None, adbm_params: ADBMParameters = None,
                 producer_growth=None, device=None):
        self.device = default_device(device)
        self.config = config if config is not None else ModelConfig()
        self.A = check_adjacency(adjacency).copy()
        self.S = self.A.shape[0]
        self.is_producer = producers(self.A)

        if bodymass is None:
            bodymass = bodymass_from_trophic_rank(self.A, Z=self.config.Z)
        self.bodymass = np.asarray(bodymass, dtype=float)
        if self.bodymass.shape != (self.S,) or np.any(self.bodymass <= 0):
            raise InvalidParameterError("bodymass must hold one positive value per species")
        if rates is None:
            rates = allometric_rates(self.bodymass, self.is_producer,
                                     producer_metabolism=self.config.producer_metabolism)

        self.efficiency = assimilation_efficiency(
            self.is_producer, self.config.e_herbivore, self.config.e_carnivore
        )
        self.producer_growth = producer_growth if producer_growth is not None else logistic_growth
        self.rewirer = RewireEngine(self.config.rewire, self.bodymass, np.diag(self.A) == 1,
                                    self.is_producer, adbm_params)

        self.extinct = np.zeros(self.S, dtype=bool)
        self.extinctions: List[ExtinctionEvent] = []
        self.rewirings: List[RewireChange] = []
        self.disconnected = set()
        self.state = RunState.INITIALIZING
        self.update_rates(rates)

    @classmethod
    def from_temperature(cls, adjacency, config: ModelConfig = None, bodymass=None,
                         handling_method="power", **kwargs):
        """Model with Boltzmann-Arrhenius rates at `config.temperature`."""
        config = config if config is not None else ModelConfig()
        A = check_adjacency(adjacency)
        if bodymass is None:
            bodymass = bodymass_from_trophic_rank(A, Z=config.Z)
        rates = scale_rates(bodymass, config.temperature, producers(A), k0=config.k0,
                            producer_metabolism=config.producer_metabolism,
                            handling_method=handling_method)
        return cls(A, config=config, rates=rates, bodymass=bodymass, **kwargs)

    def _tensor(self, a):
        return torch.as_tensor(np.asarray(a, dtype=float), dtype=torch.float64, device=self.device)

    def update_rates(self, rates: RateTables):
        if rates.S != self.S:
            raise InvalidParameterError(f"rates describe {rates.S} species, model has {self.S}")
        self.rates = rates
        self._r = self._tensor(rates.growth)
        self._K = self._tensor(rates.carrying_capacity)
        self._x = self._tensor(rates.metabolism)
        cfg = self.config
        self._response = FunctionalResponse(rates, self.A, self.efficiency,
                                            kind=cfg.functional_response, h=cfg.h, c=cfg.c,
                                            device=self.device)
        self._refresh()

    def set_temperature(self, temperature: float, handling_method="power"):
        """Switch to temperature-scaled rates at `temperature` (Kelvin)."""
        self.config = replace(self.config, temperature=temperature)
        self.update_rates(scale_rates(self.bodymass, temperature, self.is_producer,
                                      k0=self.config.k0,
                                      producer_metabolism=self.config.producer_metabolism,
                                      handling_method=handling_method))

    @property
    def alive(self) -> np.ndarray:
        return ~self.extinct

    def _refresh(self):
        """Push the current edge set and extinct set into the response kernel."""
        alive = self.alive
        self._alive = self._tensor(alive)
        self._response.update_links(self.A, alive)
        living_prey = (self.A * alive[None, :]).sum(axis=1)
        starving = set(np.flatnonzero(~self.is_producer & alive & (living_prey == 0)).tolist())
        for i in sorted(starving - self.disconnected):
            logger.warning("consumer %d has no living prey left", i)
        for i in sorted(self.disconnected - starving):
            if alive[i]:
                logger.info("consumer %d has living prey again", i)
        self.disconnected = starving

    def derivative(self, t, y) -> np.ndarray:
        """dB/dt for biomass vector y; extinct species stay at zero."""
        B = self._tensor(y).clamp(min=0.0) * self._alive
        gains, losses = self._response.fluxes(B)
        dB = self.producer_growth(B, self._r, self._K) + gains - losses - self._x * B
        return (dB * self._alive).cpu().numpy()

    def consumption_rates(self, biomass) -> np.ndarray:
        return self._response.consumption_rates(biomass)

    def _clean(self, y) -> np.ndarray:
        B = np.clip(np.asarray(y, dtype=float), 0.0, None)
        B[self.extinct] = 0.0
        B[B <= self.config.extinction_threshold] = 0.0
        return B

    def _handle_extinctions(self, y, t, phase) -> np.ndarray:
        """Clamp, log and (if configured) rewire around species at or below the threshold."""
        y = np.clip(np.asarray(y, dtype=float), 0.0, None)
        y[self.extinct] = 0.0
        newly = np.flatnonzero(~self.extinct & (y <= self.config.extinction_threshold))
        if newly.size == 0:
            return y
        y[newly] = 0.0
        for j in newly:
            self.extinct[j] = True
            self.extinctions.append(ExtinctionEvent(int(j), float(t), phase))
            logger.info("species %d extinct at t=%g (phase %s)", j, t, phase)

        rewire = self.config.rewire
        if rewire.enabled and not rewire.on_interval:
            for j in newly:
                self.A, changes = self.rewirer.rewire(self.A, j, self.alive, time=float(t))
                self.rewirings.extend(changes)
        self._refresh()
        return y

    def _sample(self, record, solver, grid, k):
        t_start, dt, n = grid
        eps = 1e-9 * dt
        if k > n or t_start + k * dt > solver.t + eps:
            return k
        dense = solver.dense_output()
        while k <= n and t_start + k * dt <= solver.t + eps:
            tk = t_start + k * dt
            record.append(tk, self._clean(dense(min(tk, solver.t))))
            k += 1
        return k

    def _advance(self, record, y, t0, t_bound, k, grid, floor, phase):
        """
        Step one solver from t0 towards t_bound. Returns early, right after
        the first step that produces new extinctions, so the caller restarts
        the solver on the changed system.
        """
        cfg = self.config
        solver = SOLVERS[cfg.solver](self.derivative, t0, y, t_bound,
                                     rtol=cfg.rtol, atol=cfg.atol, max_step=cfg.max_step)
        first = True
        while solver.status == "running":
            message = solver.step()
            if solver.status == "failed":
                raise IntegrationDivergedError(
                    f"{cfg.solver} failed at t={solver.t:g}: {message}", time=solver.t
                )
            if not np.all(np.isfinite(solver.y)):
                raise IntegrationDivergedError(f"non-finite biomass at t={solver.t:g}",
                                               time=solver.t)
            if solver.status == "running" and not first and solver.step_size < floor:
                raise IntegrationDivergedError(
                    f"step size {solver.step_size:.3g} fell below {floor:.3g} at t={solver.t:g}",
                    time=solver.t,
                )
            first = False
            k = self._sample(record, solver, grid, k)
            t_now = t_bound if solver.status == "finished" else solver.t
            if np.any(~self.extinct & (solver.y <= cfg.extinction_threshold)):
                y = self._handle_extinctions(solver.y.copy(), t_now, phase)
                logger.debug("restarting %s at t=%g", cfg.solver, t_now)
                return t_now, y, k
        return t_bound, self._clean(solver.y), k

    def _integrate(self, record, y, t_start, t_stop, phase):
        cfg = self.config
        dt = cfg.sample_interval
        grid = (t_start, dt, int(np.floor((t_stop - t_start) / dt + 1e-9)))
        floor = cfg.min_step if cfg.min_step is not None else 1e-12 * (t_stop - t_start)
        interval = cfg.rewire.adbm_interval if cfg.rewire.on_interval else None
        next_rewire = t_start + interval if interval else np.inf

        k = 1
        t = t_start
        while t < t_stop:
            t, y, k = self._advance(record, y, t, min(t_stop, next_rewire), k, grid, floor, phase)
            if interval and t >= next_rewire:
                self.A, changes = self.rewirer.rewire_all(self.A, self.alive, time=t)
                self.rewirings.extend(changes)
                self._refresh()
                next_rewire += interval
        return y

    def simulate(self, initial_biomass, t_start=None, t_stop=None, phase=0) -> SimulationRecord:
        """
        Integrate from `initial_biomass` over [t_start, t_stop] (defaults from
        the config). Species already at or below the extinction threshold are
        logged at t_start. The extinction log, rewiring log and interaction
        matrix carry over to later calls; `phase` tags the events of this one.

        Raises
        ------
        IntegrationDivergedError
            When the solver fails, produces non-finite biomass or its step
            size collapses below the floor. No record is returned then.
        """
        cfg = self.config
        t_start = cfg.t_start if t_start is None else float(t_start)
        t_stop = cfg.t_stop if t_stop is None else float(t_stop)
        if not t_stop > t_start:
            raise InvalidParameterError(f"t_stop ({t_stop}) must be greater than t_start ({t_start})")
        y = np.array(initial_biomass, dtype=float)
        if y.shape != (self.S,):
            raise InvalidParameterError(f"initial biomass must have shape ({self.S},), got {y.shape}")
        if not np.all(np.isfinite(y)) or np.any(y < 0):
            raise InvalidParameterError("initial biomass must be finite and non-negative")

        self.state = RunState.INITIALIZING
        saved = self._snapshot()
        record = SimulationRecord(S=self.S, extinction_threshold=cfg.extinction_threshold, phase=phase)
        y = self._handle_extinctions(y, t_start, phase)
        record.append(t_start, y)

        self.state = RunState.RUNNING
        try:
            y = self._integrate(record, y, t_start, t_stop, phase)
        except IntegrationDivergedError:
            self._restore(saved)
            self.state = RunState.ABORTED
            logger.error("integration aborted in phase %s", phase)
            raise
        # off-grid end point, so `final` is the state at t_stop
        if record.times[-1] < t_stop - 1e-9 * cfg.sample_interval:
            record.append(t_stop, y)
        self.state = RunState.COMPLETED

        record.extinctions = list(self.extinctions)
        record.rewirings = list(self.rewirings)
        record.adjacency = self.A.copy()
        return record

    def _snapshot(self):
        return (self.A.copy(), self.extinct.copy(), list(self.extinctions),
                list(self.rewirings), set(self.disconnected))

    def _restore(self, saved):
        """Roll back everything a failed `simulate` call changed."""
        A, extinct, extinctions, rewirings, disconnected = saved
        self.A = A
        self.extinct = extinct
        self.extinctions = extinctions
        self.rewirings = rewirings
        self.disconnected = disconnected
        self._refresh()

    def extinction_table(self) -> pd.DataFrame:
        return pd.DataFrame([asdict(e) for e in self.extinctions],
                            columns=["species", "time", "phase"])


def simulate(rates: RateTables, adjacency, initial_biomass, t_start: float, t_stop: float,
             sample_interval: float, extinction_threshold: float,
             rewire_config: RewireConfig = None, config: ModelConfig = None,
             bodymass=None, phase=0, **kwargs) -> SimulationRecord:
    """One-shot simulation of a food web with the given rates."""
    config = config if config is not None else ModelConfig()
    config = replace(
        config,
        t_start=t_start,
        t_stop=t_stop,
        sample_interval=sample_interval,
        extinction_threshold=extinction_threshold,
        rewire=rewire_config if rewire_config is not None else config.rewire,
    )
    model = FoodWebModel(adjacency, config=config, rates=rates, bodymass=bodymass, **kwargs)
    return model.simulate(initial_biomass, phase=phase)


def run_experiments(runs, S=20, connectance=0.15, config: ModelConfig = None,
                    temperature_scaled=False, last=None, seed=None):
    """
    Run independent niche-web replicates of one configuration and return
    one DataFrame with the summary metrics of every run.
    """
    rng = make_rng(seed)
    rows = []
    for r in range(runs):
        t0 = time.time()
        A = generate_niche_network(S, connectance, seed=rng)
        if temperature_scaled:
            model = FoodWebModel.from_temperature(A, config=config)
        else:
            model = FoodWebModel(A, config=config)
        record = model.simulate(rng.uniform(0.0, 1.0, S))
        row = summarize(record, last if last is not None else max(1, len(record) // 2))
        row["run"] = r
        row["links"] = int(A.sum())
        row["connectance"] = A.sum() / S ** 2
        rows.append(row)
        print(f"Run {r + 1}/{runs} finished in {time.time() - t0:.1f} seconds.")
    return pd.DataFrame(rows)
