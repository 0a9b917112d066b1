"""
functional_response.py

Consumption rates and the resulting biomass gains and losses, computed on
float64 torch tensors.

Two formulations:
- classical:     F[i,j] = ar[i,j] B[j]^h / (1 + c B[i] + sum_k ht[i,k] ar[i,k] B[k]^h)
                 gains_i = sum_j e[i,j] B[i] F[i,j],  losses_j = sum_i B[i] F[i,j]
- bioenergetic:  F[i,j] = w[i,j] B[j]^h / (B0^h + c B[i] B0^h + sum_k w[i,k] B[k]^h)
                 gains_i = sum_j B[i] x[i] y[i] F[i,j],  losses_j = sum_i B[i] x[i] y[i] F[i,j] / e[i,j]
"""
import numpy as np
import torch

from simfoodweb.config import FUNCTIONAL_RESPONSES
from simfoodweb.errors import InvalidParameterError
from simfoodweb.rates import RateTables
from simfoodweb.utils import default_device


def preference_weights(A, alive=None) -> np.ndarray:
    """w[i, j] = 1 / (number of living prey of i) on every living link, 0 elsewhere."""
    A = np.asarray(A, dtype=float)
    if alive is not None:
        A = A * np.asarray(alive, dtype=float)[None, :]
    outdeg = A.sum(axis=1, keepdims=True)
    return np.divide(A, outdeg, out=np.zeros_like(A), where=outdeg > 0)


class FunctionalResponse:
    """
    Functional response of one food web. Holds the rate tensors on `device`
    and is refreshed through `update_links` whenever the edge set or the set of
    living species changes.
    """

    def __init__(self, rates: RateTables, adjacency, efficiency, kind="bioenergetic",
                 h=1.0, c=0.0, device=None):
        if kind not in FUNCTIONAL_RESPONSES:
            raise InvalidParameterError(f"Unknown functional response: {kind!r}")
        if not h > 0:
            raise InvalidParameterError(f"Hill exponent must be > 0, got {h}")
        if c < 0:
            raise InvalidParameterError(f"Predator interference must be >= 0, got {c}")
        self.device = default_device(device)
        self.kind = kind
        self.h = float(h)
        self.c = float(c)

        # infinite handling time means the prey cannot be eaten at all
        feasible = np.isfinite(rates.handling)
        self._attack = self._tensor(np.where(feasible, rates.attack, 0.0))
        self._handling = self._tensor(np.where(feasible, rates.handling, 0.0))
        self._x = self._tensor(rates.metabolism)
        self._y = self._tensor(rates.max_consumption)
        self._B0h = float(rates.half_saturation) ** self.h
        self._e = self._tensor(efficiency)
        self.update_links(adjacency)

    def _tensor(self, a) -> torch.Tensor:
        return torch.as_tensor(np.asarray(a, dtype=float), dtype=torch.float64, device=self.device)

    def update_links(self, adjacency, alive=None):
        A = np.asarray(adjacency, dtype=float)
        self._links = self._tensor(A)
        self._w = self._tensor(preference_weights(A, alive))

    def consumption(self, B: torch.Tensor) -> torch.Tensor:
        """Per-link consumption rate F[i, j] for biomass tensor B."""
        B = B.clamp(min=0.0)
        Bh = B.pow(self.h)
        if self.kind == "classical":
            num = self._links * self._attack * Bh.unsqueeze(0)
            denom = 1.0 + self.c * B.unsqueeze(1) + (num * self._handling).sum(dim=1, keepdim=True)
        else:
            num = self._w * Bh.unsqueeze(0)
            denom = (self._B0h + self.c * B.unsqueeze(1) * self._B0h
                     + num.sum(dim=1, keepdim=True))
        safe = torch.where(denom > 0, denom, torch.ones_like(denom))
        return torch.where(denom > 0, num / safe, torch.zeros_like(num))

    def fluxes(self, B: torch.Tensor):
        """Return (gains, losses) per species."""
        F = self.consumption(B)
        B = B.clamp(min=0.0)
        if self.kind == "classical":
            gains = B * (self._e * F).sum(dim=1)
            losses = (B.unsqueeze(1) * F).sum(dim=0)
        else:
            intake = B * self._x * self._y
            gains = intake * F.sum(dim=1)
            losses = (intake.unsqueeze(1) * F / self._e).sum(dim=0)
        return gains, losses

    def consumption_rates(self, biomass) -> np.ndarray:
        """numpy view of `consumption` for a biomass vector."""
        F = self.consumption(self._tensor(biomass))
        return F.cpu().numpy()
