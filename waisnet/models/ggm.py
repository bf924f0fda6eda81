"""
Gaussian Graphical Model
========================

Network model for a covariance matrix, parameterized as

    Σ = Δ (I - Ω)^{-1} Δ

where Ω holds the partial correlations (zero diagonal; zero wherever the
EdgeSet has no edge) and Δ is a diagonal scaling matrix. Equivalently the
precision matrix is K = Δ^{-1} (I - Ω) Δ^{-1}, so

    ω_ij = -K_ij / sqrt(K_ii K_jj),    δ_i = 1 / sqrt(K_ii)

Free parameters are ordered δ_1..δ_p followed by the free ω_ij in
row-major (i < j) order.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .edges import EdgeSet


@dataclass(frozen=True, eq=False)
class GGMSpec:
    """
    Declarative network model: which partial correlations are free.

    Example:
        >>> spec = GGMSpec.saturated(15, name='saturated')
        >>> spec.n_parameters, spec.df
        (120, 0)
    """
    edges: EdgeSet
    variables: Optional[Tuple[str, ...]] = None
    name: str = 'network'

    def __post_init__(self):
        if self.variables is not None:
            variables = tuple(str(v) for v in self.variables)
            if len(variables) != self.edges.n_nodes:
                raise ValueError(
                    f"{len(variables)} variable names for {self.edges.n_nodes} nodes"
                )
            object.__setattr__(self, 'variables', variables)

    @classmethod
    def saturated(cls, n_variables: int, variables: Optional[Sequence[str]] = None,
                  name: str = 'saturated') -> 'GGMSpec':
        return cls(EdgeSet.full(n_variables), _as_tuple(variables), name)

    @classmethod
    def from_adjacency(cls, adjacency: np.ndarray, variables: Optional[Sequence[str]] = None,
                       name: str = 'network') -> 'GGMSpec':
        return cls(EdgeSet.from_adjacency(adjacency), _as_tuple(variables), name)

    @property
    def n_variables(self) -> int:
        return self.edges.n_nodes

    @property
    def n_parameters(self) -> int:
        return self.n_variables + len(self.edges)

    @property
    def df(self) -> int:
        return self.edges.n_possible - len(self.edges)

    def with_edges(self, edges: EdgeSet) -> 'GGMSpec':
        return GGMSpec(edges, self.variables, self.name)


def _as_tuple(variables: Optional[Sequence[str]]) -> Optional[Tuple[str, ...]]:
    return None if variables is None else tuple(variables)


# =============================================================================
# PARAMETER TRANSFORMS
# =============================================================================

def partial_correlations(precision: np.ndarray) -> np.ndarray:
    """Partial correlation matrix (zero diagonal) from a precision matrix."""
    d = 1.0 / np.sqrt(np.diag(precision))
    omega = -precision * np.outer(d, d)
    np.fill_diagonal(omega, 0.0)
    return omega


def scaling_from_precision(precision: np.ndarray) -> np.ndarray:
    """Diagonal of Δ from a precision matrix."""
    return 1.0 / np.sqrt(np.diag(precision))


def implied_covariance(omega: np.ndarray, delta: np.ndarray) -> np.ndarray:
    """Σ = Δ (I - Ω)^{-1} Δ."""
    p = omega.shape[0]
    inv = np.linalg.inv(np.eye(p) - omega)
    sigma = delta[:, None] * inv * delta[None, :]
    return (sigma + sigma.T) / 2


def parameter_names(edges: EdgeSet, variables: Sequence[str]) -> List[str]:
    names = [f"delta[{v}]" for v in variables]
    names += [f"omega[{variables[i]},{variables[j]}]" for i, j in edges.free_edges()]
    return names


def parameter_vector(omega: np.ndarray, delta: np.ndarray, edges: EdgeSet) -> np.ndarray:
    values = list(delta)
    values += [omega[i, j] for i, j in edges.free_edges()]
    return np.asarray(values, dtype=float)


def covariance_jacobian(omega: np.ndarray, delta: np.ndarray, edges: EdgeSet) -> np.ndarray:
    """
    Derivatives of Σ with respect to each free parameter.

    With U = Δ (I - Ω)^{-1}:
        ∂Σ/∂δ_k   = e_k U[:, k]' + U[:, k] e_k'
        ∂Σ/∂ω_ij  = U[:, i] U[:, j]' + U[:, j] U[:, i]'

    Returns:
        Array of shape (n_parameters, p, p)
    """
    p = omega.shape[0]
    U = delta[:, None] * np.linalg.inv(np.eye(p) - omega)
    free = edges.free_edges()
    jac = np.zeros((p + len(free), p, p))

    for k in range(p):
        jac[k, k, :] += U[:, k]
        jac[k, :, k] += U[:, k]

    for idx, (i, j) in enumerate(free, start=p):
        outer = np.outer(U[:, i], U[:, j])
        jac[idx] = outer + outer.T

    return jac
