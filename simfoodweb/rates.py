"""
rates.py

Biological rates of the bioenergetic food-web model.

Temperature-scaled rates follow the Boltzmann-Arrhenius form

    q = q0 * M**beta * exp(E * (T0 - T) / (k * T * T0))

with the constants tabulated below (rates per second, attack rate in m2/s,
handling time in s). Attack rate and handling time depend on both consumer
(rows) and resource (columns) mass.

`allometric_rates` gives the mass-only parameterisation where time is
normalised to producer growth.
"""
from dataclasses import dataclass

import numpy as np

from simfoodweb.errors import InvalidParameterError

BOLTZMANN = 8.617e-5  # eV/K
T0 = 293.15  # reference temperature, 20 C

GROWTH = dict(q0=np.exp(-15.68), beta=-0.25, E=-0.84)
METABOLISM = dict(q0=np.exp(-16.54), beta=-0.31, E=-0.69)
ATTACK = dict(q0=np.exp(-13.1), beta_resource=0.25, beta_consumer=-0.8, E=-0.38)
HANDLING = dict(q0=np.exp(9.66), beta_resource=-0.45, beta_consumer=0.47, E=0.26)
CARRYING = dict(beta=0.28, E=0.71)

# Yodzis & Innes metabolic types
METABOLIC_A = {"producer": 1.0, "invertebrate": 0.314, "vertebrate": 0.88}
MAX_CONSUMPTION = {"invertebrate": 8.0, "vertebrate": 4.0}


@dataclass
class RateTables:
    """
    Rates for one (body mass, temperature) pair.

    growth and carrying_capacity are zero for consumers; metabolism is zero
    for producers unless producer metabolism was requested. attack and
    handling are S x S with consumers as rows. max_consumption and
    half_saturation feed the bioenergetic functional response.
    """

    growth: np.ndarray
    metabolism: np.ndarray
    attack: np.ndarray
    handling: np.ndarray
    carrying_capacity: np.ndarray
    max_consumption: np.ndarray
    half_saturation: float = 0.5

    @property
    def S(self) -> int:
        return int(self.growth.size)

    def copy(self) -> "RateTables":
        return RateTables(
            growth=self.growth.copy(),
            metabolism=self.metabolism.copy(),
            attack=self.attack.copy(),
            handling=self.handling.copy(),
            carrying_capacity=self.carrying_capacity.copy(),
            max_consumption=self.max_consumption.copy(),
            half_saturation=self.half_saturation,
        )


def _check_mass(bodymass):
    M = np.asarray(bodymass, dtype=float)
    if M.ndim != 1 or M.size < 1:
        raise InvalidParameterError("bodymass must be a non-empty vector")
    if np.any(~np.isfinite(M)) or np.any(M <= 0):
        raise InvalidParameterError("body masses must be finite and positive")
    return M


def _check_inputs(bodymass, temperature):
    M = _check_mass(bodymass)
    if not temperature > 0:
        raise InvalidParameterError(f"temperature must be > 0 K, got {temperature}")
    return M


def boltzmann_factor(E: float, temperature: float) -> float:
    return float(np.exp(E * (T0 - temperature) / (BOLTZMANN * temperature * T0)))


def scale_growth(M, temperature):
    M = _check_inputs(M, temperature)
    return GROWTH["q0"] * M ** GROWTH["beta"] * boltzmann_factor(GROWTH["E"], temperature)


def scale_metabolism(M, temperature):
    M = _check_inputs(M, temperature)
    return METABOLISM["q0"] * M ** METABOLISM["beta"] * boltzmann_factor(METABOLISM["E"], temperature)


def scale_attack(M, temperature, E=ATTACK["E"]):
    M = _check_inputs(M, temperature)
    mres = M[None, :] ** ATTACK["beta_resource"]
    mcons = M[:, None] ** ATTACK["beta_consumer"]
    return ATTACK["q0"] * mres * mcons * boltzmann_factor(E, temperature)


def scale_handling(M, temperature, E=HANDLING["E"], method="power", b=0.401, h0=1.0,
                   infvalues=True):
    """
    Handling time matrix.

    method="power" uses the allometric power law. method="ratio" follows the
    ADBM: h0 / (b - M_res / M_cons), which is infinite (the prey cannot be
    handled) once the ratio reaches b when `infvalues` is set.
    """
    M = _check_inputs(M, temperature)
    if method == "power":
        mres = M[None, :] ** HANDLING["beta_resource"]
        mcons = M[:, None] ** HANDLING["beta_consumer"]
        return HANDLING["q0"] * mres * mcons * boltzmann_factor(E, temperature)
    if method == "ratio":
        ratio = M[None, :] / M[:, None]
        with np.errstate(divide="ignore"):
            ht = h0 / (b - ratio)
        if infvalues:
            ht[ratio >= b] = np.inf
        return ht
    raise InvalidParameterError(f"Wrong handling-time method {method!r}, use 'power' or 'ratio'")


def scale_carrying_capacity(M, k0, temperature):
    M = _check_inputs(M, temperature)
    if not k0 > 0:
        raise InvalidParameterError(f"k0 must be > 0, got {k0}")
    return k0 * M ** CARRYING["beta"] * boltzmann_factor(CARRYING["E"], temperature)


def max_consumption(ht, x):
    """y = 1 / (ht * x); infinite or undefined entries become 0."""
    with np.errstate(divide="ignore", invalid="ignore"):
        y = (1.0 / np.asarray(ht, dtype=float)) / np.asarray(x, dtype=float)[:, None]
    y[~np.isfinite(y)] = 0.0
    return y


def half_saturation(ht, ar):
    """B0 = 1 / (ht * ar); infinite or undefined entries become 0."""
    with np.errstate(divide="ignore", invalid="ignore"):
        hs = 1.0 / (np.asarray(ht, dtype=float) * np.asarray(ar, dtype=float))
    hs[~np.isfinite(hs)] = 0.0
    return hs


def scale_rates(bodymass, temperature, is_producer, k0=1.0, producer_metabolism=False,
                handling_method="power", Ea=ATTACK["E"], Eh=HANDLING["E"], b=0.401, h0=1.0,
                infvalues=True) -> RateTables:
    """
    Mass- and temperature-scaled rates for every species.

    Parameters
    ----------
    bodymass : array (S,)
    temperature : float
        Kelvin.
    is_producer : bool array (S,)
    k0 : float
        Intercept of the carrying capacity.
    producer_metabolism : bool
        Keep metabolic losses for producers.

    Returns
    -------
    RateTables
    """
    M = _check_inputs(bodymass, temperature)
    is_producer = np.asarray(is_producer, dtype=bool)
    if is_producer.shape != M.shape:
        raise InvalidParameterError("is_producer must have one entry per species")

    r = scale_growth(M, temperature) * is_producer
    x = scale_metabolism(M, temperature)
    if not producer_metabolism:
        x = x * ~is_producer
    ar = scale_attack(M, temperature, E=Ea)
    ht = scale_handling(M, temperature, E=Eh, method=handling_method, b=b, h0=h0,
                        infvalues=infvalues)
    K = scale_carrying_capacity(M, k0, temperature) * is_producer
    return RateTables(
        growth=r,
        metabolism=x,
        attack=ar,
        handling=ht,
        carrying_capacity=K,
        max_consumption=np.full(M.size, MAX_CONSUMPTION["invertebrate"]) * ~is_producer,
    )


def allometric_rates(bodymass, is_producer, K=1.0, growth=1.0, metabolic_type="invertebrate",
                     B0=0.5, producer_metabolism=False) -> RateTables:
    """
    Mass-only rates with time normalised to producer growth.

    Consumer metabolism is (a_x / a_r) * (M / M_ref)**-0.25 where M_ref is the
    smallest producer mass. Classical rates come from ht = 1 / y and
    ar = 1 / (B0 * ht).
    """
    M = _check_mass(bodymass)
    is_producer = np.asarray(is_producer, dtype=bool)
    if is_producer.shape != M.shape:
        raise InvalidParameterError("is_producer must have one entry per species")
    if metabolic_type not in MAX_CONSUMPTION:
        raise InvalidParameterError(f"Unknown metabolic type {metabolic_type!r}")
    if not B0 > 0:
        raise InvalidParameterError("half saturation B0 must be > 0")

    M_ref = M[is_producer].min() if is_producer.any() else M.min()
    a_ratio = METABOLIC_A[metabolic_type] / METABOLIC_A["producer"]
    x = a_ratio * (M / M_ref) ** -0.25
    if not producer_metabolism:
        x = x * ~is_producer

    y_max = MAX_CONSUMPTION[metabolic_type]
    ht = np.full((M.size, M.size), 1.0 / y_max)
    ar = 1.0 / (B0 * ht)
    return RateTables(
        growth=growth * is_producer.astype(float),
        metabolism=x,
        attack=ar,
        handling=ht,
        carrying_capacity=K * is_producer.astype(float),
        max_consumption=np.full(M.size, y_max) * ~is_producer,
        half_saturation=B0,
    )


def assimilation_efficiency(is_producer, e_herbivore=0.45, e_carnivore=0.85) -> np.ndarray:
    """e[i, j]: e_herbivore when resource j is a producer, e_carnivore otherwise."""
    is_producer = np.asarray(is_producer, dtype=bool)
    row = np.where(is_producer, e_herbivore, e_carnivore)
    return np.tile(row, (is_producer.size, 1))


def initial_biomass(rates: RateTables, is_producer) -> np.ndarray:
    """Producers start at carrying capacity, consumers at mean producer K / 8."""
    is_producer = np.asarray(is_producer, dtype=bool)
    b0 = np.zeros(is_producer.size)
    if is_producer.any():
        K = rates.carrying_capacity[is_producer]
        b0[is_producer] = K
        b0[~is_producer] = K.mean() / 8.0
    return b0
