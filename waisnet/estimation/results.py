"""
Fitted Model Results
====================

Immutable container for one maximum likelihood fit. Produced by
ModelFitter, consumed (never mutated) by the network search and the
model comparison tools.

Author: Network Psychometrics Team
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import pandas as pd

from ..models.edges import Edge, EdgeSet

EBIC_GAMMA = 0.5


@dataclass(frozen=True, eq=False)
class FittedModel:
    """Container for model estimation results."""
    name: str
    model_type: str  # 'ggm' or 'lvm'
    variables: Tuple[str, ...]
    parameters: pd.DataFrame  # parameter, matrix, row, col, estimate, se, z, p
    implied_covariance: np.ndarray
    sample_covariance: np.ndarray
    n_obs: int
    n_parameters: int
    log_likelihood: float
    chi_square: float
    df: int
    converged: bool
    n_iterations: int = 0
    message: str = ''

    # Network models
    edges: Optional[EdgeSet] = None
    omega: Optional[np.ndarray] = None
    delta: Optional[np.ndarray] = None

    # Latent variable models: lambda, beta, sigma_zeta, sigma_epsilon
    matrices: Dict[str, np.ndarray] = field(default_factory=dict)

    @property
    def n_variables(self) -> int:
        return len(self.variables)

    @property
    def aic(self) -> float:
        """Akaike Information Criterion: AIC = 2K - 2LL"""
        return 2 * self.n_parameters - 2 * self.log_likelihood

    @property
    def bic(self) -> float:
        """Bayesian Information Criterion: BIC = K*ln(N) - 2LL"""
        return self.n_parameters * np.log(self.n_obs) - 2 * self.log_likelihood

    def ebic(self, gamma: float = EBIC_GAMMA) -> float:
        """Extended BIC: BIC + 4*gamma*K*ln(p)"""
        return self.bic + 4 * gamma * self.n_parameters * np.log(self.n_variables)

    def criterion(self, name: str) -> float:
        if name == 'aic':
            return self.aic
        if name == 'bic':
            return self.bic
        if name == 'ebic':
            return self.ebic()
        raise ValueError(f"Unknown criterion: {name}")

    # -------------------------------------------------------------------------
    # Network accessors
    # -------------------------------------------------------------------------

    def edge_table(self) -> pd.DataFrame:
        """
        Free partial correlations in row-major order.

        Returns:
            DataFrame with columns i, j, node_i, node_j, estimate, se, z, p
        """
        if self.edges is None:
            raise ValueError(f"Model '{self.name}' is not a network model")
        omega_rows = self.parameters[self.parameters['matrix'] == 'omega']
        lookup = {(r.row, r.col): r for r in omega_rows.itertuples(index=False)}

        records = []
        for i, j in self.edges.free_edges():
            row = lookup[(self.variables[i], self.variables[j])]
            records.append({
                'i': i,
                'j': j,
                'node_i': self.variables[i],
                'node_j': self.variables[j],
                'estimate': row.estimate,
                'se': row.se,
                'z': row.z,
                'p': row.p,
            })
        return pd.DataFrame(records, columns=['i', 'j', 'node_i', 'node_j',
                                              'estimate', 'se', 'z', 'p'])

    def edge_p_values(self) -> Dict[Edge, float]:
        table = self.edge_table()
        return {(int(r.i), int(r.j)): float(r.p) for r in table.itertuples(index=False)}

    def adjacency(self) -> np.ndarray:
        """0/1 skeleton of the free partial correlations, whatever their estimates."""
        if self.edges is None:
            raise ValueError(f"Model '{self.name}' is not a network model")
        return self.edges.to_adjacency()

    def omega_frame(self) -> pd.DataFrame:
        if self.omega is None:
            raise ValueError(f"Model '{self.name}' is not a network model")
        return pd.DataFrame(self.omega, index=list(self.variables), columns=list(self.variables))

    # -------------------------------------------------------------------------
    # Reporting
    # -------------------------------------------------------------------------

    def summary(self) -> str:
        """Generate summary string."""
        lines = [
            "=" * 60,
            f"{self.name} ({self.model_type.upper()})",
            "=" * 60,
            f"Log-likelihood: {self.log_likelihood:.4f}",
            f"Chi-square: {self.chi_square:.4f} (df = {self.df})",
            f"AIC: {self.aic:.4f}",
            f"BIC: {self.bic:.4f}",
            f"N observations: {self.n_obs}",
            f"N parameters: {self.n_parameters}",
            f"Converged: {self.converged}",
        ]
        if self.edges is not None:
            lines.append(f"Edges: {len(self.edges)} of {self.edges.n_possible}")

        lines.extend(["", "Parameters:", "-" * 40])
        for r in self.parameters.itertuples(index=False):
            lines.append(f"  {r.parameter:28s}: {r.estimate:8.4f} (SE: {r.se:.4f}, z: {r.z:.2f})")
        lines.append("=" * 60)
        return "\n".join(lines)

    def to_dataframe(self) -> pd.DataFrame:
        df = self.parameters.copy()
        df.insert(0, 'model', self.name)
        return df


def parameter_table(names: List[str],
                    index: List[Tuple[str, str, str]],
                    estimates: np.ndarray,
                    std_errors: np.ndarray) -> pd.DataFrame:
    """Assemble the standard parameter table with Wald z and two-sided p."""
    from scipy import stats

    estimates = np.asarray(estimates, dtype=float)
    std_errors = np.asarray(std_errors, dtype=float)
    with np.errstate(divide='ignore', invalid='ignore'):
        z = np.where(std_errors > 0, estimates / std_errors, np.nan)
    p = 2 * stats.norm.sf(np.abs(z))

    return pd.DataFrame({
        'parameter': names,
        'matrix': [m for m, _, _ in index],
        'row': [r for _, r, _ in index],
        'col': [c for _, _, c in index],
        'estimate': estimates,
        'se': std_errors,
        'z': z,
        'p': p,
    })
