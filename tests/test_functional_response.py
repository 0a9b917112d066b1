import numpy as np
import pytest
import torch

from simfoodweb.errors import InvalidParameterError
from simfoodweb.functional_response import FunctionalResponse, preference_weights
from simfoodweb.networks import bodymass_from_trophic_rank, generate_niche_network
from simfoodweb.rates import RateTables, allometric_rates, assimilation_efficiency, scale_rates
from simfoodweb.utils import producers


@pytest.fixture
def pair():
    """Consumer 0 eating producer 1 with hand-picked rates."""
    A = np.array([[0, 1], [0, 0]])
    rates = RateTables(
        growth=np.array([0.0, 1.0]),
        metabolism=np.array([0.1, 0.0]),
        attack=np.array([[0.0, 2.0], [0.0, 0.0]]),
        handling=np.array([[0.0, 0.5], [0.0, 0.0]]),
        carrying_capacity=np.array([0.0, 1.0]),
        max_consumption=np.array([8.0, 0.0]),
        half_saturation=0.5,
    )
    e = assimilation_efficiency(producers(A))
    return A, rates, e


def test_classical_pair(pair):
    A, rates, e = pair
    fr = FunctionalResponse(rates, A, e, kind="classical", device="cpu")
    F = fr.consumption_rates([1.0, 3.0])
    assert F[0, 1] == pytest.approx(2 * 3 / (1 + 0.5 * 2 * 3))
    gains, losses = fr.fluxes(torch.tensor([1.0, 3.0], dtype=torch.float64))
    assert gains[0].item() == pytest.approx(0.45 * F[0, 1])
    assert losses[1].item() == pytest.approx(F[0, 1])
    assert losses[0].item() == 0.0


def test_bioenergetic_pair(pair):
    A, rates, e = pair
    fr = FunctionalResponse(rates, A, e, kind="bioenergetic", device="cpu")
    F = fr.consumption_rates([1.0, 3.0])
    assert F[0, 1] == pytest.approx(3 / (0.5 + 3))
    gains, losses = fr.fluxes(torch.tensor([1.0, 3.0], dtype=torch.float64))
    assert gains[0].item() == pytest.approx(0.1 * 8 * F[0, 1])
    assert losses[1].item() == pytest.approx(0.1 * 8 * F[0, 1] / 0.45)


def test_interference_and_hill(pair):
    A, rates, e = pair
    base = FunctionalResponse(rates, A, e, kind="bioenergetic", device="cpu")
    damped = FunctionalResponse(rates, A, e, kind="bioenergetic", c=1.0, device="cpu")
    B = [2.0, 0.3]
    assert damped.consumption_rates(B)[0, 1] < base.consumption_rates(B)[0, 1]
    type3 = FunctionalResponse(rates, A, e, kind="bioenergetic", h=2.0, device="cpu")
    # below the half saturation density a type III response eats less
    assert type3.consumption_rates(B)[0, 1] < base.consumption_rates(B)[0, 1]


def test_infinite_handling_means_no_intake(pair):
    A, rates, e = pair
    rates = rates.copy()
    rates.handling[0, 1] = np.inf
    fr = FunctionalResponse(rates, A, e, kind="classical", device="cpu")
    F = fr.consumption_rates([1.0, 3.0])
    assert F[0, 1] == 0.0


@pytest.mark.parametrize("kind", ["classical", "bioenergetic"])
def test_rates_are_finite_and_non_negative(kind, rng):
    for seed in range(5):
        A = generate_niche_network(12, 0.2, seed=seed)
        prod = producers(A)
        M = bodymass_from_trophic_rank(A, Z=10.0)
        rates = allometric_rates(M, prod)
        e = assimilation_efficiency(prod)
        h = rng.uniform(1.0, 2.0)
        c = rng.uniform(0.0, 1.5)
        fr = FunctionalResponse(rates, A, e, kind=kind, h=h, c=c, device="cpu")
        B = rng.uniform(0.0, 1.0, 12)
        B[rng.random(12) < 0.3] = 0.0
        F = fr.consumption_rates(B)
        assert np.all(np.isfinite(F))
        assert np.all(F >= 0)
        # a species with no biomass is never eaten
        assert np.all(F[:, B == 0] == 0)
        gains, losses = fr.fluxes(torch.as_tensor(B, dtype=torch.float64))
        assert torch.all(torch.isfinite(gains)) and torch.all(torch.isfinite(losses))


def test_all_zero_biomass(chain_web, chain_mass):
    prod = producers(chain_web)
    rates = scale_rates(chain_mass, 293.15, prod, handling_method="ratio", b=0.401)
    e = assimilation_efficiency(prod)
    for kind in ("classical", "bioenergetic"):
        fr = FunctionalResponse(rates, chain_web, e, kind=kind, device="cpu")
        F = fr.consumption_rates(np.zeros(4))
        assert np.all(F == 0)


def test_preference_weights_follow_living_prey(chain_web):
    w = preference_weights(chain_web)
    assert np.allclose(w[1], [0, 0, 0.5, 0.5])
    alive = np.array([True, True, True, False])
    w = preference_weights(chain_web, alive)
    assert np.allclose(w[1], [0, 0, 1.0, 0])
    assert np.all(w[2:] == 0)


def test_update_links_renormalises(chain_web, chain_mass):
    prod = producers(chain_web)
    rates = allometric_rates(chain_mass, prod)
    e = assimilation_efficiency(prod)
    fr = FunctionalResponse(rates, chain_web, e, device="cpu")
    B = np.array([0.2, 0.5, 0.4, 0.0])
    before = fr.consumption_rates(B)[1, 2]
    fr.update_links(chain_web, alive=np.array([True, True, True, False]))
    assert fr.consumption_rates(B)[1, 2] > before


def test_rejects_bad_parameters(pair):
    A, rates, e = pair
    with pytest.raises(InvalidParameterError):
        FunctionalResponse(rates, A, e, kind="linear")
    with pytest.raises(InvalidParameterError):
        FunctionalResponse(rates, A, e, c=-1.0)
    with pytest.raises(InvalidParameterError):
        FunctionalResponse(rates, A, e, h=0.0)
