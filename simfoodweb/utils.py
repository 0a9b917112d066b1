"""
utils.py

Utility functions for the food-web engine:
- explicit random generators (no global seeding)
- interaction-matrix checks and summaries
- conversion to and from networkx graphs
- flow-based trophic rank
- cosine similarity and torch device selection
"""
import numpy as np
import torch
import networkx as nx

from simfoodweb.errors import InvalidParameterError


def make_rng(seed=None) -> np.random.Generator:
    """
    Return a numpy Generator for `seed`.
    An existing Generator is passed through so callers can thread one stream.
    """
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


def default_device(device=None) -> torch.device:
    if device is None:
        device = torch.device("cuda" if torch.cuda.is_available() else "cpu")
    return torch.device(device)


def check_adjacency(A) -> np.ndarray:
    """Validate a square binary interaction matrix and return it as an int array."""
    A = np.asarray(A)
    if A.ndim != 2 or A.shape[0] != A.shape[1]:
        raise InvalidParameterError(f"Interaction matrix must be square, got shape {A.shape}")
    if A.shape[0] < 1:
        raise InvalidParameterError("Interaction matrix must hold at least one species")
    if not np.all((A == 0) | (A == 1)):
        raise InvalidParameterError("Interaction matrix must be binary (0/1)")
    return A.astype(int)


def connectance(A) -> float:
    """Links over S^2 (diagonal links included)."""
    A = np.asarray(A)
    return float(A.sum()) / A.shape[0] ** 2


def producers(A) -> np.ndarray:
    """Boolean mask of species with no prey (row sum 0)."""
    return np.asarray(A).sum(axis=1) == 0


# Graph conversion

def to_networkx(A, bodymass=None) -> nx.DiGraph:
    """
    Convert an interaction matrix to a DiGraph with an edge i -> j for every
    "i eats j" entry. Node attributes: `producer` and, if given, `bodymass`.
    """
    A = check_adjacency(A)
    G = nx.from_numpy_array(A, create_using=nx.DiGraph)
    is_prod = producers(A)
    for i in G.nodes:
        G.nodes[i]["producer"] = bool(is_prod[i])
        if bodymass is not None:
            G.nodes[i]["bodymass"] = float(bodymass[i])
    return G


def from_networkx(G: nx.DiGraph) -> np.ndarray:
    """Inverse of `to_networkx`; nodes are ordered by their sorted labels."""
    nodes = sorted(G.nodes)
    A = nx.to_numpy_array(G, nodelist=nodes, weight=None, dtype=int)
    return (A > 0).astype(int)


def trophic_rank(A) -> np.ndarray:
    """
    Flow-based trophic level of every species: producers sit at 1, a consumer
    at 1 + the mean trophic level of its prey.

    networkx expects edges along the biomass flow (prey -> consumer), hence the
    transpose. When the linear system is singular (a loop of consumers with no
    path from a producer) a truncated power series is used instead.
    """
    A = check_adjacency(A)
    S = A.shape[0]
    flow = nx.from_numpy_array(A.T, create_using=nx.DiGraph)
    try:
        levels = nx.trophic_levels(flow)
        return np.array([levels[i] for i in range(S)], dtype=float)
    except nx.NetworkXError:
        pass

    outdeg = A.sum(axis=1, keepdims=True).astype(float)
    outdeg[outdeg == 0] = 1.0
    P = A / outdeg
    acc = np.eye(S)
    for _ in range(9):
        acc = acc @ P + np.eye(S)
    return acc @ np.ones(S)


def cos_sim(a: np.ndarray, b: np.ndarray) -> float:
    """Cosine similarity between two vectors (0 when either is all zeros)."""
    denom = np.linalg.norm(a) * np.linalg.norm(b)
    return float(np.dot(a, b) / denom) if denom else 0.0
