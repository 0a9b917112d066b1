"""
rewiring.py

Diet rewiring after a resource goes extinct:
- DO   (diet overlap): link to the living species sharing most prey with the consumer's remaining diet
- DS   (diet similarity): link to the living species whose feeding profile is most similar to the lost one
- ADBM: recompute the consumer's whole diet over the survivors
- none: no rewiring

The engine never edits the matrix it is given; it returns a new one that
the caller then owns.
"""
import logging
from dataclasses import dataclass, field
from typing import List, Optional

import numpy as np

from simfoodweb.config import ADBMParameters, RewireConfig
from simfoodweb.errors import InvalidParameterError
from simfoodweb.networks import adbm_diet
from simfoodweb.utils import check_adjacency, cos_sim

logger = logging.getLogger(__name__)


@dataclass
class RewireChange:
    """Edge changes of one consumer after losing `lost` (None for interval ADBM updates)."""

    consumer: int
    lost: Optional[int]
    gained: List[int] = field(default_factory=list)
    dropped: List[int] = field(default_factory=list)
    time: float = float("nan")


class RewireEngine:
    """
    Parameters
    ----------
    config : RewireConfig
    bodymass : array (S,)
        Used to break ties (smallest mass difference to the lost resource).
    cannibals : bool array (S,)
        Consumers allowed to link to themselves, i.e. the diagonal of the
        initial interaction matrix.
    is_producer : bool array (S,)
        Producers are never rewired.
    adbm_params : ADBMParameters, optional
        Needed for method="ADBM"; built from `bodymass` with default
        constants when omitted.
    """

    def __init__(self, config: RewireConfig, bodymass, cannibals, is_producer,
                 adbm_params: ADBMParameters = None):
        self.config = config
        self.bodymass = np.asarray(bodymass, dtype=float)
        self.cannibals = np.asarray(cannibals, dtype=bool)
        self.is_producer = np.asarray(is_producer, dtype=bool)
        S = self.bodymass.size
        if self.cannibals.shape != (S,) or self.is_producer.shape != (S,):
            raise InvalidParameterError("bodymass, cannibals and is_producer must have one entry per species")
        if config.method == "ADBM" and adbm_params is None:
            adbm_params = ADBMParameters(M=self.bodymass)
        if adbm_params is not None and adbm_params.S != S:
            raise InvalidParameterError(f"ADBM parameters describe {adbm_params.S} species, expected {S}")
        self.adbm_params = adbm_params

    def _eligible(self, A, i, alive):
        """Living species not yet eaten by i, excluding i itself unless it is a cannibal."""
        eligible = alive & (A[i] == 0)
        if not self.cannibals[i]:
            eligible[i] = False
        return eligible

    def _closest(self, candidates, scores, lost):
        """Highest score first, then smallest body-mass difference to `lost`, then lowest index."""
        mass_gap = np.abs(self.bodymass[candidates] - self.bodymass[lost])
        order = np.lexsort((candidates, mass_gap, -scores))
        return int(candidates[order[0]])

    def _diet_overlap(self, A, i, lost, alive) -> Optional[int]:
        remaining = (A[i] == 1) & alive
        remaining[lost] = False
        eligible = self._eligible(A, i, alive)
        eligible[lost] = False
        overlap = A[:, remaining].sum(axis=1)
        candidates = np.flatnonzero(eligible & (overlap > 0))
        if candidates.size == 0:
            return None
        return self._closest(candidates, overlap[candidates].astype(float), lost)

    def _diet_similarity(self, A, i, lost, alive, profiles) -> Optional[int]:
        eligible = self._eligible(A, i, alive)
        eligible[lost] = False
        candidates = np.flatnonzero(eligible)
        if candidates.size == 0:
            return None
        sims = np.array([cos_sim(profiles[lost], profiles[k]) for k in candidates])
        keep = sims > 0
        if not keep.any():
            return None
        return self._closest(candidates[keep], sims[keep], lost)

    @staticmethod
    def _profiles(A, alive):
        """Consumers and resources of every species, restricted to the living, side by side."""
        live = alive.astype(float)
        return np.hstack([A.T * live[None, :], A * live[None, :]])

    def _adbm_row(self, A, i, alive):
        candidates = np.flatnonzero(alive)
        if not self.cannibals[i]:
            candidates = candidates[candidates != i]
        row = np.zeros(A.shape[1], dtype=int)
        row[adbm_diet(self.adbm_params, i, candidates)] = 1
        return row

    def rewire(self, A, lost: int, alive, time: float = float("nan")):
        """
        Rewire every living consumer of `lost`.

        Returns
        -------
        (A_new, changes) : (ndarray, list of RewireChange)
        """
        A = check_adjacency(A).copy()
        alive = np.asarray(alive, dtype=bool).copy()
        alive[lost] = False
        method = self.config.method
        changes = []
        if method == "none":
            return A, changes

        consumers = np.flatnonzero((A[:, lost] == 1) & alive & ~self.is_producer)
        profiles = self._profiles(A, alive) if method == "DS" else None
        for i in consumers:
            before = A[i].copy()
            if method == "ADBM":
                A[i] = self._adbm_row(A, i, alive)
            else:
                A[i, lost] = 0
                if method == "DO":
                    k = self._diet_overlap(A, i, lost, alive)
                else:
                    k = self._diet_similarity(A, i, lost, alive, profiles)
                if k is not None:
                    A[i, k] = 1
            change = RewireChange(
                consumer=int(i),
                lost=int(lost),
                gained=np.flatnonzero((A[i] == 1) & (before == 0)).tolist(),
                dropped=np.flatnonzero((A[i] == 0) & (before == 1)).tolist(),
                time=time,
            )
            logger.info("%s rewiring of consumer %d after loss of %d: +%s -%s",
                        method, i, lost, change.gained, change.dropped)
            changes.append(change)
        return A, changes

    def rewire_all(self, A, alive, time: float = float("nan")):
        """ADBM update of every living consumer (interval trigger)."""
        if self.config.method != "ADBM":
            raise InvalidParameterError("rewire_all is only defined for ADBM rewiring")
        A = check_adjacency(A).copy()
        alive = np.asarray(alive, dtype=bool)
        changes = []
        for i in np.flatnonzero(alive & ~self.is_producer):
            before = A[i].copy()
            A[i] = self._adbm_row(A, i, alive)
            gained = np.flatnonzero((A[i] == 1) & (before == 0)).tolist()
            dropped = np.flatnonzero((A[i] == 0) & (before == 1)).tolist()
            if gained or dropped:
                changes.append(RewireChange(int(i), None, gained, dropped, time))
        logger.debug("interval ADBM rewiring at t=%g changed %d consumers", time, len(changes))
        return A, changes
