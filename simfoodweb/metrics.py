"""
metrics.py

Community summaries over the trailing window (last N samples) of a
SimulationRecord:
- total_biomass, species_richness, species_persistence
- population_stability (negative mean coefficient of variation)
- foodweb_evenness (normalised Shannon entropy of the final sample)
- per-species helpers: population_biomass, coefficient_of_variation,
  steady_state_species, return_time
"""
import numpy as np
from scipy.stats import entropy

from simfoodweb.errors import EmptyWindowError, InvalidParameterError


def _window(record, last):
    B = record.biomass
    n = B.shape[0]
    if last is None:
        last = n
    if last < 1 or last > n:
        raise EmptyWindowError(f"window of {last} samples requested, {n} recorded")
    return B[n - last:]


def _alive(B, threshold):
    return B > threshold


def total_biomass(record, last=None) -> float:
    """Mean over the window of the summed biomass."""
    return float(_window(record, last).sum(axis=1).mean())


def species_richness(record, last=None) -> float:
    """Mean number of species above the extinction threshold."""
    B = _window(record, last)
    return float(_alive(B, record.extinction_threshold).sum(axis=1).mean())


def species_persistence(record, last=None) -> float:
    return species_richness(record, last) / record.S


def population_biomass(record, last=None) -> np.ndarray:
    """Mean biomass of each species over the window."""
    return _window(record, last).mean(axis=0)


def coefficient_of_variation(record, last=None) -> np.ndarray:
    """Standard deviation over mean per species; NaN where the mean is 0."""
    B = _window(record, last)
    ddof = 1 if B.shape[0] > 1 else 0
    mean = B.mean(axis=0)
    std = B.std(axis=0, ddof=ddof)
    with np.errstate(divide="ignore", invalid="ignore"):
        cv = std / mean
    cv[mean == 0] = np.nan
    return cv


def population_stability(record, last=None) -> float:
    """
    Negative mean coefficient of variation over the species alive at the end
    of the window. 0 is perfectly stable; NaN when nothing is alive.
    """
    B = _window(record, last)
    alive = _alive(B[-1], record.extinction_threshold)
    if not alive.any():
        return float("nan")
    cv = coefficient_of_variation(record, last)[alive]
    return float(-np.nanmean(cv)) if np.any(np.isfinite(cv)) else float("nan")


def foodweb_evenness(record, last=None) -> float:
    """
    Shannon entropy of the final biomass distribution over the survivors
    divided by its maximum ln(n). NaN with fewer than two survivors.
    """
    final = _window(record, last)[-1]
    surv = final[_alive(final, record.extinction_threshold)]
    if surv.size < 2:
        return float("nan")
    return float(entropy(surv) / np.log(surv.size))


def steady_state_species(record, last=None, tol=1e-3) -> np.ndarray:
    """Indices of living species whose coefficient of variation is below `tol`."""
    if tol < 0:
        raise InvalidParameterError("tol must be >= 0")
    B = _window(record, last)
    cv = coefficient_of_variation(record, last)
    alive = _alive(B[-1], record.extinction_threshold)
    return np.flatnonzero(alive & (np.nan_to_num(cv, nan=np.inf) < tol))


def return_time(record, reference, tol=1e-3) -> np.ndarray:
    """
    First recorded time at which each species is within `tol` of `reference`
    and stays there; NaN for species that never settle.
    """
    reference = np.asarray(reference, dtype=float)
    if reference.shape != (record.S,):
        raise InvalidParameterError(f"reference must have shape ({record.S},)")
    B = record.biomass
    if B.shape[0] == 0:
        raise EmptyWindowError("record holds no samples")
    t = record.t
    within = np.abs(B - reference[None, :]) <= tol
    out = np.full(record.S, np.nan)
    for i in range(record.S):
        outside = np.flatnonzero(~within[:, i])
        if outside.size == 0:
            out[i] = t[0]
        elif outside[-1] < t.size - 1:
            out[i] = t[outside[-1] + 1]
    return out


def summarize(record, last=None) -> dict:
    """All five community metrics of one record."""
    return {
        "total_biomass": total_biomass(record, last),
        "richness": species_richness(record, last),
        "persistence": species_persistence(record, last),
        "stability": population_stability(record, last),
        "evenness": foodweb_evenness(record, last),
    }
