"""
networks.py

Generation of directed "who eats whom" matrices (A[i, j] = 1 when i eats j):
- niche model, with an optional bounded reject-and-retry on connectance
- allometric diet breadth model (ADBM), resampled until the web is realistic
- body masses derived from trophic rank
"""
import logging

import numpy as np

from simfoodweb.config import ADBMParameters
from simfoodweb.errors import GenerationTimeoutError, InvalidParameterError
from simfoodweb.utils import check_adjacency, connectance, make_rng, producers, trophic_rank

logger = logging.getLogger(__name__)

# Realism constraints on ADBM webs
MAX_ADBM_CONNECTANCE = 0.5
MAX_ADBM_BODYMASS = 2e8


def _check_size(S):
    if not isinstance(S, (int, np.integer)) or isinstance(S, bool) or S < 1:
        raise InvalidParameterError(f"Species richness S must be a positive integer, got {S!r}")


# Niche model

def generate_niche_network(S: int, connectance: float, seed=None) -> np.ndarray:
    """
    Draw one niche-model food web.

    Each species gets a niche value n ~ U(0, 1), a feeding range
    r = n * Beta(1, beta) with beta = 1 / (2C) - 1, and a range centre
    c ~ U(r / 2, n); it eats every species whose niche value falls inside
    [c - r/2, c + r/2]. The species with the lowest niche value gets r = 0 so
    the web always holds a producer. Connectance is only matched on average.
    """
    _check_size(S)
    if not 0 < connectance < 1:
        raise InvalidParameterError(f"Connectance must lie in (0, 1), got {connectance}")
    rng = make_rng(seed)

    # beta collapses at C >= 0.5, the niche model's ceiling
    beta = max(1.0 / (2.0 * connectance) - 1.0, 1e-9)
    n = rng.uniform(0.0, 1.0, S)
    r = n * rng.beta(1.0, beta, S)
    r[np.argmin(n)] = 0.0
    c = rng.uniform(r / 2.0, n)

    low = (c - r / 2.0)[:, None]
    high = (c + r / 2.0)[:, None]
    A = (n[None, :] >= low) & (n[None, :] <= high) & (r[:, None] > 0)
    return A.astype(int)


def resample_niche_network(S: int, connectance: float, tolerance: float = 0.0,
                           max_attempts: int = 1000, seed=None) -> np.ndarray:
    """
    Redraw niche webs until |C_realised - C| <= tolerance.
    Raises GenerationTimeoutError after `max_attempts` draws.
    """
    if max_attempts < 1:
        raise InvalidParameterError("max_attempts must be >= 1")
    if tolerance < 0:
        raise InvalidParameterError("tolerance must be >= 0")
    rng = make_rng(seed)
    target_links = connectance * S * S
    for attempt in range(1, max_attempts + 1):
        A = generate_niche_network(S, connectance, seed=rng)
        if abs(A.sum() - target_links) <= tolerance * S * S + 1e-9:
            logger.debug("niche web with C=%.3f found after %d draws", connectance, attempt)
            return A
    raise GenerationTimeoutError(
        f"No niche web with S={S} and connectance {connectance}+/-{tolerance} "
        f"after {max_attempts} attempts",
        attempts=max_attempts,
    )


def bodymass_from_trophic_rank(A, Z: float = 1.0, scale: float = 1.0,
                               jitter: float = 0.0, seed=None) -> np.ndarray:
    """
    Body masses M = scale * Z ** (rank - 1 + eps), eps ~ N(0, jitter).
    With jitter = 0 every species at a trophic level gets the same mass.
    """
    if not Z > 0 or not scale > 0:
        raise InvalidParameterError("Z and scale must be > 0")
    if jitter < 0:
        raise InvalidParameterError("jitter must be >= 0")
    rank = trophic_rank(A)
    eps = make_rng(seed).normal(0.0, jitter, rank.size) if jitter > 0 else 0.0
    return scale * Z ** (rank - 1.0 + eps)


# Allometric diet breadth model

def random_adbm_parameters(S: int, seed=None) -> ADBMParameters:
    """Random ADBM parameter set over the ranges used for realistic webs."""
    _check_size(S)
    rng = make_rng(seed)
    mu_m = rng.uniform(1, 15)
    sigma_m = rng.uniform(1, 10)
    M = np.sort(rng.lognormal(mu_m, sigma_m, S))
    return ADBMParameters(
        M=M,
        e=rng.uniform(1, 2),
        a=10 ** rng.uniform(-10, -5),
        ai=rng.uniform(-1, 1),
        aj=rng.uniform(-1, 1),
        Ea=rng.uniform(-0.4, -0.2),
        b=rng.uniform(0.1, 1),
        h=rng.uniform(1, 2),
        Eh=rng.uniform(0.2, 0.4),
        n=1.0,
        ni=rng.uniform(-1, -0.5),
    )


def empirical_adbm_parameters(S: int, seed=None) -> ADBMParameters:
    """ADBM parameters using the tabulated attack-rate and handling-time constants."""
    _check_size(S)
    rng = make_rng(seed)
    mu_m = rng.uniform(1, 15)
    sigma_m = rng.uniform(1, 10)
    M = np.sort(rng.lognormal(mu_m, sigma_m, S))
    return ADBMParameters(
        M=M,
        e=rng.uniform(1, 2),
        a=np.exp(-13.1),
        ai=0.25,
        aj=-0.8,
        Ea=-0.38,
        b=rng.uniform(0.1, 1),
        h=np.exp(9.66),
        Eh=0.26,
        n=1.0,
        ni=rng.uniform(-1, -0.5),
    )


def _adbm_terms(params: ADBMParameters):
    """Energy, handling time and encounter matrices (consumers as rows)."""
    M = params.M
    energy = params.e * M
    attack = params.a * (M[None, :] ** params.ai) * (M[:, None] ** params.aj)
    ratio = M[None, :] / M[:, None]
    handling = np.full(ratio.shape, np.inf)
    feasible = ratio < params.b
    handling[feasible] = params.h / (params.b - ratio[feasible])
    density = params.n * M ** params.ni
    encounter = attack * density[None, :]
    return energy, handling, encounter


def adbm_profitability(params: ADBMParameters) -> np.ndarray:
    """Per-link energy intake rate L*E / (1 + L*H); zero where handling is infinite."""
    energy, handling, encounter = _adbm_terms(params)
    with np.errstate(invalid="ignore", over="ignore"):
        prof = encounter * energy[None, :] / (1.0 + encounter * handling)
    prof[~np.isfinite(handling)] = 0.0
    return np.nan_to_num(prof, nan=0.0)


def _optimal_diet(energy, handling_row, encounter_row, candidates) -> np.ndarray:
    """Longest prefix of the profit-ranked candidates that maximises cumulative intake."""
    if candidates.size == 0:
        return candidates
    with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
        profit = energy[candidates] / handling_row[candidates]
        order = candidates[np.argsort(-profit, kind="stable")]
        LH = np.cumsum(encounter_row[order] * handling_row[order])
        EL = np.cumsum(energy[order] * encounter_row[order])
        LH[np.isnan(LH)] = np.inf
        EL[np.isnan(EL)] = np.inf
        cumulative = np.nan_to_num(EL / (1.0 + LH), nan=0.0, posinf=0.0)
    if np.all(cumulative == 0):
        return candidates[:0]
    last = np.flatnonzero(cumulative == cumulative.max()).max()
    return order[: last + 1]


def adbm_diet(params: ADBMParameters, consumer: int, candidates=None) -> np.ndarray:
    """Indices eaten by `consumer` under the ADBM, restricted to `candidates` if given."""
    energy, handling, encounter = _adbm_terms(params)
    if candidates is None:
        candidates = np.arange(params.S)
    candidates = np.asarray(candidates, dtype=int)
    return _optimal_diet(energy, handling[consumer], encounter[consumer], candidates)


def adbm_feeding_links(params: ADBMParameters) -> np.ndarray:
    """Full ADBM interaction matrix for the species in `params`."""
    energy, handling, encounter = _adbm_terms(params)
    S = params.S
    A = np.zeros((S, S), dtype=int)
    everyone = np.arange(S)
    for i in range(S):
        A[i, _optimal_diet(energy, handling[i], encounter[i], everyone)] = 1
    return A


def is_realistic(A, params: ADBMParameters) -> bool:
    return (
        connectance(A) < MAX_ADBM_CONNECTANCE
        and producers(A).sum() >= 1
        and params.M.max() <= MAX_ADBM_BODYMASS
    )


def generate_adbm_network(S: int, params: ADBMParameters = None, seed=None,
                          max_attempts: int = 10000, parameters: str = "random"):
    """
    Build an ADBM web with connectance < 0.5, at least one producer and no
    body mass above 2e8.

    Without `params`, whole parameter sets are redrawn (`parameters` is
    "random" or "empirical") until the web passes, at most `max_attempts`
    times. With `params`, the single resulting web is checked once.

    Returns
    -------
    (A, params)
    """
    _check_size(S)
    if params is not None:
        if params.S != S:
            raise InvalidParameterError(f"params describe {params.S} species, expected {S}")
        A = adbm_feeding_links(params)
        if not is_realistic(A, params):
            raise GenerationTimeoutError("ADBM parameter set yields an unrealistic web", attempts=1)
        return A, params

    draws = {"random": random_adbm_parameters, "empirical": empirical_adbm_parameters}
    if parameters not in draws:
        raise InvalidParameterError(f"parameters must be 'random' or 'empirical', got {parameters!r}")
    if max_attempts < 1:
        raise InvalidParameterError("max_attempts must be >= 1")
    rng = make_rng(seed)
    for attempt in range(1, max_attempts + 1):
        candidate = draws[parameters](S, seed=rng)
        if candidate.M.max() > MAX_ADBM_BODYMASS:
            continue
        A = adbm_feeding_links(candidate)
        if is_realistic(A, candidate):
            logger.debug("ADBM web accepted after %d parameter draws", attempt)
            return check_adjacency(A), candidate
    raise GenerationTimeoutError(
        f"No realistic ADBM web with S={S} after {max_attempts} attempts",
        attempts=max_attempts,
    )
