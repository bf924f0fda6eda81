"""
Pytest Configuration and Shared Fixtures
=========================================

Provides common test fixtures for network and factor model testing.

Population matrices are used as exact sample covariances where a test
needs known answers: the true model then fits perfectly and absent
edges have estimates of exactly zero.
"""

import pytest
import numpy as np
from pathlib import Path
import sys

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from waisnet.config import FitterConfig, SearchConfig
from waisnet.estimation.fitter import ModelFitter
from waisnet.simulation.ggm_simulator import (
    network_from_edges,
    random_network,
    sample_correlation,
    wais_population_correlation,
)


# =============================================================================
# Configuration Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return project root path."""
    return PROJECT_ROOT


@pytest.fixture(scope="session")
def config_path():
    """Path to the shipped analysis configuration."""
    return PROJECT_ROOT / 'config' / 'analysis_config.json'


@pytest.fixture
def fitter():
    """Maximum likelihood fitter with default settings."""
    return ModelFitter(FitterConfig())


@pytest.fixture
def search_config():
    """Search settings used in the original analysis."""
    return SearchConfig(alpha=0.01, recursive=True)


# =============================================================================
# Network Fixtures - Known Structure
# =============================================================================

# Zero partial correlation between variables 0 and 3
FOUR_NODE_EDGES = {
    (0, 1): 0.35,
    (1, 2): 0.35,
    (2, 3): 0.35,
    (0, 2): 0.20,
    (1, 3): 0.20,
}
FOUR_NODE_ZERO = (0, 3)


@pytest.fixture
def four_node_network():
    """4-variable network with one true zero partial correlation."""
    return network_from_edges(4, FOUR_NODE_EDGES)


@pytest.fixture
def four_node_covariance(four_node_network):
    """Exact population covariance of the 4-variable network."""
    return four_node_network.correlation.copy()


@pytest.fixture
def disconnected_network():
    """5 variables; variable 4 is independent of the rest."""
    return network_from_edges(5, {
        (0, 1): 0.3,
        (1, 2): 0.3,
        (2, 3): 0.3,
        (0, 3): 0.25,
    })


@pytest.fixture
def weak_network():
    """All six partial correlations small."""
    return network_from_edges(4, {edge: 0.05 for edge in
                                  [(0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3)]})


@pytest.fixture
def strong_network():
    """All six partial correlations clearly non-zero."""
    return network_from_edges(4, {edge: 0.2 for edge in
                                  [(0, 1), (0, 2), (0, 3), (1, 2), (1, 3), (2, 3)]})


@pytest.fixture
def sampled_network():
    """Sample correlation matrix (n = 300) from a random 6-node network."""
    rng = np.random.default_rng(7)
    network = random_network(6, density=0.5, weight_range=(0.15, 0.35), rng=rng)
    return network, sample_correlation(network.correlation, 300, rng)


# =============================================================================
# Factor Model Fixtures
# =============================================================================

@pytest.fixture
def one_factor_covariance():
    """Exact covariance of a one-factor model with 4 indicators."""
    loadings = np.array([0.8, 0.7, 0.6, 0.5])
    return np.outer(loadings, loadings) + np.diag(1 - loadings ** 2), loadings


@pytest.fixture(scope="session")
def wais_population():
    """WAIS-like population correlation matrix (measurement model)."""
    return wais_population_correlation()
