import numpy as np
import pandas as pd
import pytest
import torch

from simfoodweb.config import ModelConfig, RewireConfig
from simfoodweb.errors import IntegrationDivergedError, InvalidParameterError
from simfoodweb.model import ExtinctionEvent, FoodWebModel, RunState, run_experiments, simulate
from simfoodweb.rates import allometric_rates, initial_biomass
from simfoodweb.utils import producers


def test_chain_stays_finite_and_non_negative(chain_web, rng):
    config = ModelConfig(functional_response="classical", h=2.0, t_stop=500.0,
                         sample_interval=1.0)
    model = FoodWebModel(chain_web, config=config)
    record = model.simulate(rng.uniform(0.0, 1.0, 4))

    B = record.biomass
    assert B.shape == (501, 4)
    assert np.all(np.isfinite(B))
    assert np.all(B >= 0)
    assert model.state is RunState.COMPLETED


def test_samples_on_the_interval_grid(chain_web, chain_mass):
    config = ModelConfig(t_start=5.0, t_stop=15.0, sample_interval=0.5)
    model = FoodWebModel(chain_web, config=config, bodymass=chain_mass)
    record = model.simulate(np.full(4, 0.5))
    assert np.allclose(record.t, 5.0 + 0.5 * np.arange(21))
    df = record.to_dataframe()
    assert list(df.columns) == ["time", "species_0", "species_1", "species_2", "species_3"]
    assert len(df) == 21


def test_lone_producer_reaches_carrying_capacity():
    model = FoodWebModel(np.zeros((1, 1), dtype=int), config=ModelConfig(t_stop=50.0))
    record = model.simulate([0.2])
    assert record.final[0] == pytest.approx(1.0, abs=1e-4)


def test_producer_growth_hook():
    def no_growth(B, r, K):
        return torch.zeros_like(B)

    model = FoodWebModel(np.zeros((1, 1), dtype=int), config=ModelConfig(t_stop=10.0),
                         producer_growth=no_growth)
    record = model.simulate([0.2])
    assert np.allclose(record.biomass[:, 0], 0.2)


@pytest.fixture
def starving_model():
    """Consumer 0 whose only prey (producer 1) starts extinct."""
    config = ModelConfig(t_stop=100.0, sample_interval=0.5)
    return FoodWebModel(np.array([[0, 1], [0, 0]]), config=config)


def test_extinctions_are_logged_once(starving_model):
    record = starving_model.simulate([0.5, 0.0], phase="burn_in")

    species = [e.species for e in record.extinctions]
    assert species == [1, 0]
    assert record.extinctions[0].time == 0.0
    # 0.5 * exp(-0.314 t) hits 1e-6 near t = 41.8
    assert 35.0 < record.extinctions[1].time < 60.0
    assert all(e.phase == "burn_in" for e in record.extinctions)
    # consumer 0 starved and died, so it no longer counts as disconnected
    assert starving_model.disconnected == set()


def test_extinct_species_stay_at_zero(starving_model):
    record = starving_model.simulate([0.5, 0.0])
    t_ext = {e.species: e.time for e in record.extinctions}
    after = record.t >= t_ext[0]
    assert np.all(record.biomass[after, 0] == 0)
    assert np.all(record.biomass[:, 1] == 0)


def test_extinction_log_persists_across_phases(starving_model):
    first = starving_model.simulate([0.5, 0.0], phase=0)
    logged = list(first.extinctions)
    second = starving_model.simulate([0.3, 0.2], t_start=100.0, t_stop=110.0, phase=1)

    assert second.extinctions[:len(logged)] == logged
    assert len({e.species for e in second.extinctions}) == len(second.extinctions)
    # biomass handed back to extinct species is pinned to zero
    assert np.all(second.biomass == 0)
    table = starving_model.extinction_table()
    assert isinstance(table, pd.DataFrame)
    assert list(table["phase"]) == [0, 0]


def test_step_floor_aborts(chain_web):
    config = ModelConfig(min_step=1e3, t_stop=500.0)
    model = FoodWebModel(chain_web, config=config)
    with pytest.raises(IntegrationDivergedError):
        model.simulate(np.full(4, 0.5))
    assert model.state is RunState.ABORTED


def test_aborted_call_rolls_back_model(overlap_web):
    config = ModelConfig(min_step=1e3, t_stop=500.0, rewire=RewireConfig(method="DO"))
    model = FoodWebModel(overlap_web, config=config)
    B0 = np.array([0.5, 0.0, 0.5, 0.5, 0.5])
    with pytest.raises(IntegrationDivergedError):
        model.simulate(B0, phase="attempt1")

    assert np.array_equal(model.A, overlap_web)
    assert model.extinctions == []
    assert model.rewirings == []
    assert not model.extinct.any()
    assert model.disconnected == set()

    model.config = ModelConfig(t_stop=10.0, rewire=RewireConfig(method="DO"))
    record = model.simulate(B0, phase="retry")
    assert record.extinctions[0] == ExtinctionEvent(1, 0.0, "retry")
    assert record.adjacency[0, 1] == 0


@pytest.mark.parametrize("solver", ["LSODA", "BDF", "RK45", "DOP853"])
def test_solvers_agree(chain_web, chain_mass, solver):
    config = ModelConfig(t_stop=20.0, sample_interval=1.0, solver=solver, rtol=1e-8, atol=1e-12)
    reference = ModelConfig(t_stop=20.0, sample_interval=1.0, solver="Radau", rtol=1e-8, atol=1e-12)
    B0 = np.array([0.3, 0.4, 0.6, 0.5])
    a = FoodWebModel(chain_web, config=config, bodymass=chain_mass).simulate(B0)
    b = FoodWebModel(chain_web, config=reference, bodymass=chain_mass).simulate(B0)
    assert np.allclose(a.final, b.final, rtol=1e-4, atol=1e-6)


@pytest.mark.parametrize("B0", [[0.5, -0.1, 0.5, 0.5], [0.5, 0.5], [np.nan, 0.5, 0.5, 0.5]])
def test_rejects_bad_initial_biomass(chain_web, B0):
    model = FoodWebModel(chain_web)
    with pytest.raises(InvalidParameterError):
        model.simulate(B0)


def test_rejects_reversed_window(chain_web):
    model = FoodWebModel(chain_web)
    with pytest.raises(InvalidParameterError):
        model.simulate(np.full(4, 0.5), t_start=10.0, t_stop=5.0)


def test_module_level_simulate(chain_web, chain_mass):
    prod = producers(chain_web)
    rates = allometric_rates(chain_mass, prod)
    record = simulate(rates, chain_web, initial_biomass(rates, prod), t_start=0.0, t_stop=10.0,
                      sample_interval=0.5, extinction_threshold=1e-6,
                      rewire_config=RewireConfig(method="DO"), bodymass=chain_mass)
    assert len(record) == 21
    assert record.adjacency.shape == (4, 4)


def test_temperature_scaled_model(chain_web, chain_mass):
    config = ModelConfig(temperature=298.15, t_stop=3600.0, sample_interval=60.0)
    model = FoodWebModel.from_temperature(chain_web, config=config, bodymass=chain_mass)
    record = model.simulate(initial_biomass(model.rates, model.is_producer))
    assert np.all(np.isfinite(record.biomass))
    warmer = model.rates.metabolism.copy()
    model.set_temperature(308.15)
    assert model.config.temperature == 308.15
    assert not np.allclose(model.rates.metabolism[~model.is_producer], warmer[~model.is_producer])


def test_adbm_interval_rewiring(chain_web):
    mass = np.array([1000.0, 100.0, 1.0, 10.0])
    config = ModelConfig(t_stop=30.0, sample_interval=1.0,
                         rewire=RewireConfig(method="ADBM", adbm_trigger="interval",
                                             adbm_interval=10.0))
    model = FoodWebModel(chain_web, config=config, bodymass=mass)
    record = model.simulate(np.full(4, 0.5))
    A = record.adjacency
    consumers, resources = np.nonzero(A)
    assert np.all(mass[resources] / mass[consumers] < 0.5)
    assert not np.any(A[np.ix_(model.alive, model.extinct)])
    assert np.all(A[model.is_producer] == 0)


def test_run_experiments_returns_one_row_per_run():
    df = run_experiments(runs=2, S=6, connectance=0.2,
                         config=ModelConfig(t_stop=10.0, sample_interval=0.5), seed=3)
    assert list(df["run"]) == [0, 1]
    assert {"total_biomass", "richness", "persistence", "stability", "evenness"} <= set(df.columns)
    assert df["persistence"].between(0, 1).all()


def test_consumption_rates_skip_extinct_prey(starving_model):
    starving_model.simulate([0.5, 0.0], t_stop=1.0)
    F = starving_model.consumption_rates([0.5, 0.3])
    assert np.all(F == 0)
    assert np.all(starving_model.derivative(0.0, [0.5, 0.3])[1:] == 0)


def test_consumer_fed_again_leaves_disconnected():
    # 0 eats only 1, which starts extinct; interval ADBM later hands it producer 2
    A = np.array([[0, 1, 0], [0, 0, 0], [0, 0, 0]])
    config = ModelConfig(sample_interval=0.5,
                         rewire=RewireConfig(method="ADBM", adbm_trigger="interval",
                                             adbm_interval=5.0))
    model = FoodWebModel(A, config=config, bodymass=np.array([100.0, 1.0, 1.0]))
    first = model.simulate([0.5, 0.0, 0.5], t_stop=2.0)
    assert model.disconnected == {0}

    second = model.simulate(first.final, t_start=2.0, t_stop=10.0)
    assert second.adjacency[0, 2] == 1
    assert model.alive[0]
    assert model.disconnected == set()


def test_final_sample_lands_on_t_stop():
    model = FoodWebModel(np.zeros((1, 1), dtype=int),
                         config=ModelConfig(sample_interval=1.0))
    record = model.simulate([0.2], t_stop=2.5)
    assert np.allclose(record.t, [0.0, 1.0, 2.0, 2.5])
    # logistic growth with r = K = 1 from 0.2
    assert record.final[0] == pytest.approx(1.0 / (1.0 + 4.0 * np.exp(-2.5)), rel=1e-4)
