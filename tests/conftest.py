import numpy as np
import pytest

from simfoodweb.config import ModelConfig


@pytest.fixture
def chain_web():
    """0 eats 1, 1 eats the producers 2 and 3."""
    return np.array([
        [0, 1, 0, 0],
        [0, 0, 1, 1],
        [0, 0, 0, 0],
        [0, 0, 0, 0],
    ])


@pytest.fixture
def chain_mass():
    return np.array([100.0, 10.0, 1.0, 1.0])


@pytest.fixture
def overlap_web():
    """
    0 eats 1 and 2, 3 eats 2 and 4; 1, 2 and 4 are producers.
    When 1 disappears, 3 is the only species sharing prey (2) with 0.
    """
    return np.array([
        [0, 1, 1, 0, 0],
        [0, 0, 0, 0, 0],
        [0, 0, 0, 0, 0],
        [0, 0, 1, 0, 1],
        [0, 0, 0, 0, 0],
    ])


@pytest.fixture
def short_config():
    return ModelConfig(t_stop=20.0, sample_interval=0.5)


@pytest.fixture
def rng():
    return np.random.default_rng(12345)
