"""
Correlation Matrix Simulator
============================

Synthetic correlation matrices with a known data generating process, for
demonstrations and for validating the network search:

1. Network DGP: a sparse partial correlation matrix Ω over a random graph,
   scaled so that I - Ω is positive definite; Σ = (I - Ω)^{-1} rescaled
   to a correlation matrix.
2. Factor DGP: R = Λ Φ Λ' + Θ with Θ chosen for unit variances.
3. Sampling: a sample covariance matrix drawn from the Wishart
   distribution W(Σ / (n - 1), n - 1), returned as a correlation matrix.

Author: Network Psychometrics Team
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

import numpy as np
from scipy import stats

from ..config import N_HUNGARY, N_US, WAIS_SUBTESTS
from ..models.correlation import CorrelationMatrix
from ..models.edges import EdgeSet
from ..models.wais import measurement_lambda, theoretical_lambda

# Smallest eigenvalue allowed for I - Ω
MIN_EIGENVALUE = 0.1


@dataclass
class SimulatedNetwork:
    """Known network structure and its implied correlation matrix."""
    edges: EdgeSet
    omega: np.ndarray
    correlation: np.ndarray


def covariance_to_correlation(sigma: np.ndarray) -> np.ndarray:
    scale = 1.0 / np.sqrt(np.diag(sigma))
    corr = sigma * np.outer(scale, scale)
    np.fill_diagonal(corr, 1.0)
    return (corr + corr.T) / 2


def network_correlation(omega: np.ndarray) -> np.ndarray:
    """Correlation matrix implied by a partial correlation matrix."""
    p = omega.shape[0]
    return covariance_to_correlation(np.linalg.inv(np.eye(p) - omega))


def random_network(n_nodes: int,
                   density: float = 0.3,
                   weight_range: Tuple[float, float] = (0.1, 0.3),
                   positive_fraction: float = 0.9,
                   rng: Optional[np.random.Generator] = None) -> SimulatedNetwork:
    """
    Random sparse Gaussian graphical model.

    Args:
        n_nodes: Number of variables
        density: Probability that a pair is connected
        weight_range: Range of absolute partial correlations
        positive_fraction: Share of positive edges
        rng: NumPy random generator for reproducibility

    Returns:
        SimulatedNetwork
    """
    rng = rng or np.random.default_rng()
    omega = np.zeros((n_nodes, n_nodes))
    edges = []
    for i in range(n_nodes):
        for j in range(i + 1, n_nodes):
            if rng.random() < density:
                weight = rng.uniform(*weight_range)
                if rng.random() > positive_fraction:
                    weight = -weight
                omega[i, j] = omega[j, i] = weight
                edges.append((i, j))

    # Shrink until I - Ω is comfortably positive definite
    while np.linalg.eigvalsh(np.eye(n_nodes) - omega).min() < MIN_EIGENVALUE:
        omega *= 0.9

    return SimulatedNetwork(EdgeSet(n_nodes, edges), omega, network_correlation(omega))


def network_from_edges(n_nodes: int, weights: dict) -> SimulatedNetwork:
    """
    Network with given partial correlations.

    Args:
        n_nodes: Number of variables
        weights: {(i, j): partial correlation}

    Raises:
        ValueError: If I - Ω is not positive definite
    """
    omega = np.zeros((n_nodes, n_nodes))
    for (i, j), weight in weights.items():
        omega[i, j] = omega[j, i] = weight
    if np.linalg.eigvalsh(np.eye(n_nodes) - omega).min() <= 0:
        raise ValueError("Partial correlations do not define a positive definite matrix")
    return SimulatedNetwork(EdgeSet(n_nodes, weights.keys()), omega, network_correlation(omega))


def factor_correlation(loadings: np.ndarray, factor_corr: np.ndarray) -> np.ndarray:
    """R = Λ Φ Λ' + Θ with unit diagonal."""
    common = loadings @ factor_corr @ loadings.T
    uniqueness = 1.0 - np.diag(common)
    if np.any(uniqueness <= 0):
        raise ValueError("Loadings imply communalities of 1 or more")
    return covariance_to_correlation(common + np.diag(uniqueness))


def wais_population_correlation(loading: float = 0.7,
                                cross_loading: float = 0.25,
                                factor_corr: float = 0.6,
                                variables: Sequence[str] = WAIS_SUBTESTS) -> np.ndarray:
    """
    WAIS-like population correlation matrix from the measurement model.

    Primary loadings share one value, the AR and FW cross-loadings
    another; all factor correlations are equal.
    """
    primary = theoretical_lambda(variables)
    cross = measurement_lambda(variables) - primary
    loadings = primary * loading + cross * cross_loading
    m = primary.shape[1]
    phi = np.full((m, m), factor_corr)
    np.fill_diagonal(phi, 1.0)
    return factor_correlation(loadings, phi)


# =============================================================================
# SAMPLING
# =============================================================================

def sample_correlation(sigma: np.ndarray, n_obs: int,
                       rng: Optional[np.random.Generator] = None) -> np.ndarray:
    """
    Sample correlation matrix of n observations from N(0, Σ).

    The unbiased sample covariance is Wishart(Σ / (n - 1), n - 1).
    """
    rng = rng or np.random.default_rng()
    wishart = stats.wishart(df=n_obs - 1, scale=sigma / (n_obs - 1))
    return covariance_to_correlation(wishart.rvs(random_state=rng))


def simulate_sample(sigma: np.ndarray,
                    n_obs: int,
                    variables: Optional[Sequence[str]] = None,
                    name: str = 'simulated',
                    rng: Optional[np.random.Generator] = None) -> CorrelationMatrix:
    """Draw a sample and wrap it as a CorrelationMatrix."""
    if variables is None:
        variables = [f"V{i + 1}" for i in range(sigma.shape[0])]
    return CorrelationMatrix(sample_correlation(sigma, n_obs, rng), tuple(variables),
                             n_obs, name)


def simulate_wais_samples(seed: int = 42, **population_kwargs
                          ) -> Tuple[CorrelationMatrix, CorrelationMatrix]:
    """
    US-sized and Hungary-sized samples from the same WAIS-like population.

    Returns:
        (reference, replication) CorrelationMatrix pair
    """
    rng = np.random.default_rng(seed)
    sigma = wais_population_correlation(**population_kwargs)
    reference = simulate_sample(sigma, N_US, WAIS_SUBTESTS, 'US', rng)
    replication = simulate_sample(sigma, N_HUNGARY, WAIS_SUBTESTS, 'Hungary', rng)
    return reference, replication
