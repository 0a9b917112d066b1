"""
config.py

Typed configuration objects for the food-web engine:
- ModelConfig: functional response, scaling and integration settings
- RewireConfig: diet rewiring rule and trigger
- ADBMParameters: allometric diet breadth model constants and body masses
"""

import math
from dataclasses import dataclass, field
from typing import Optional

import numpy as np

from simfoodweb.errors import InvalidParameterError

FUNCTIONAL_RESPONSES = ("classical", "bioenergetic")
REWIRE_METHODS = ("none", "DO", "DS", "ADBM")
ADBM_TRIGGERS = ("extinction", "interval")
SOLVERS = ("LSODA", "BDF", "Radau", "RK45", "RK23", "DOP853")


@dataclass
class RewireConfig:
    """How consumers react when one of their resources goes extinct."""

    method: str = "none"
    adbm_trigger: str = "extinction"
    adbm_interval: Optional[float] = None

    def __post_init__(self):
        if self.method not in REWIRE_METHODS:
            raise InvalidParameterError(
                f"Unknown rewiring method: {self.method!r} (expected one of {REWIRE_METHODS})"
            )
        if self.adbm_trigger not in ADBM_TRIGGERS:
            raise InvalidParameterError(f"Unknown ADBM trigger: {self.adbm_trigger!r}")
        if self.adbm_trigger == "interval":
            if self.adbm_interval is None or not self.adbm_interval > 0:
                raise InvalidParameterError("adbm_interval must be > 0 when adbm_trigger='interval'")

    @property
    def enabled(self) -> bool:
        return self.method != "none"

    @property
    def on_interval(self) -> bool:
        return self.method == "ADBM" and self.adbm_trigger == "interval"


@dataclass
class ModelConfig:
    """
    Settings of one simulation run.

    Parameters
    ----------
    functional_response : str
        "classical" (attack rate / handling time) or "bioenergetic"
        (maximum consumption / half saturation).
    h : float
        Hill exponent. 1 gives a type II response, 2 a type III response.
    c : float
        Predator interference. 0 disables interference.
    temperature : float
        Temperature in Kelvin used by the Boltzmann-Arrhenius scaling.
    Z : float
        Consumer:resource body-mass ratio used to derive masses from trophic rank.
    k0 : float
        Intercept of the scaled carrying capacity.
    extinction_threshold : float
        Biomass at or below which a species is considered extinct.
    t_start, t_stop, sample_interval : float
        Integration window and spacing of the recorded snapshots.
    solver : str
        Name of a scipy.integrate OdeSolver (all of them use adaptive steps).
    min_step : float or None
        Step-size floor. None means 1e-12 times the length of the run.
    """

    functional_response: str = "bioenergetic"
    h: float = 1.0
    c: float = 0.0
    temperature: float = 293.15
    Z: float = 1.0
    k0: float = 1.0
    e_herbivore: float = 0.45
    e_carnivore: float = 0.85
    extinction_threshold: float = 1e-6
    t_start: float = 0.0
    t_stop: float = 500.0
    sample_interval: float = 0.25
    solver: str = "LSODA"
    rtol: float = 1e-6
    atol: float = 1e-10
    max_step: float = math.inf
    min_step: Optional[float] = None
    producer_metabolism: bool = False
    rewire: RewireConfig = field(default_factory=RewireConfig)

    def __post_init__(self):
        if self.functional_response not in FUNCTIONAL_RESPONSES:
            raise InvalidParameterError(
                f"Unknown functional response: {self.functional_response!r}"
            )
        if not self.h > 0:
            raise InvalidParameterError(f"Hill exponent must be > 0, got {self.h}")
        if self.c < 0:
            raise InvalidParameterError(f"Predator interference must be >= 0, got {self.c}")
        if not self.temperature > 0:
            raise InvalidParameterError(f"Temperature must be > 0 K, got {self.temperature}")
        if not self.Z > 0:
            raise InvalidParameterError(f"Z must be > 0, got {self.Z}")
        for name in ("e_herbivore", "e_carnivore"):
            value = getattr(self, name)
            if not 0 < value <= 1:
                raise InvalidParameterError(f"{name} must lie in (0, 1], got {value}")
        if self.extinction_threshold < 0:
            raise InvalidParameterError("extinction_threshold must be >= 0")
        if not self.t_stop > self.t_start:
            raise InvalidParameterError(
                f"t_stop ({self.t_stop}) must be greater than t_start ({self.t_start})"
            )
        if not self.sample_interval > 0:
            raise InvalidParameterError("sample_interval must be > 0")
        if self.solver not in SOLVERS:
            raise InvalidParameterError(f"Unknown solver: {self.solver!r} (expected one of {SOLVERS})")
        if self.min_step is not None and self.min_step < 0:
            raise InvalidParameterError("min_step must be >= 0")
        if isinstance(self.rewire, dict):
            self.rewire = RewireConfig(**self.rewire)


@dataclass
class ADBMParameters:
    """
    Constants of the allometric diet breadth model (ratio handling time).

    Attack rate is ``a * M_res**ai * M_cons**aj``, handling time is
    ``h / (b - M_res / M_cons)`` (infinite when the ratio reaches ``b``),
    prey energy is ``e * M_res`` and prey density is ``n * M_res**ni``.
    """

    M: np.ndarray
    e: float = 1.0
    a: float = 1e-7
    ai: float = 0.0
    aj: float = 0.0
    b: float = 0.5
    h: float = 1.0
    n: float = 1.0
    ni: float = -0.75
    Ea: float = -0.38
    Eh: float = 0.26

    def __post_init__(self):
        self.M = np.asarray(self.M, dtype=float)
        if self.M.ndim != 1 or self.M.size < 1:
            raise InvalidParameterError("ADBM body masses must be a non-empty vector")
        if np.any(~np.isfinite(self.M)) or np.any(self.M <= 0):
            raise InvalidParameterError("ADBM body masses must be finite and positive")
        if not self.b > 0:
            raise InvalidParameterError("ADBM handling-time threshold b must be > 0")

    @property
    def S(self) -> int:
        return int(self.M.size)
