"""Simulated correlation matrices with known structure."""
from .ggm_simulator import (
    SimulatedNetwork,
    random_network,
    network_from_edges,
    wais_population_correlation,
    simulate_sample,
    simulate_wais_samples,
)
