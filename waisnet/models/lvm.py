"""
Latent Variable Models
======================

Confirmatory factor / structural models for a covariance matrix:

    η = B η + ζ,      y = Λ η + ε
    Σ = Λ (I - B)^{-1} Ψ (I - B)^{-T} Λ' + Θ

with Ψ = Cov(ζ) and Θ = Cov(ε) diagonal.

A model is specified declaratively by 0/1 patterns:
    lambda_pattern  p x m   free loadings
    beta_pattern    m x m   beta[i, j] = 1 regresses latent i on latent j
    sigma_zeta      'full'  all latent (residual) covariances free
                    'empty' / 'diag'  latent residuals uncorrelated
                    or an m x m 0/1 pattern for the off-diagonal

Identification:
    'variance'  latent (residual) variances fixed to 1, all loadings free
    'loadings'  first loading of each latent fixed to 1, variances free

Mathematical Formulation of the derivatives used for gradients and the
information matrix (A = (I - B)^{-1}, M = A Ψ A', L = Λ A):
    ∂Σ/∂λ_ik = e_i (ΛM)[:, k]' + (ΛM)[:, k] e_i'
    ∂Σ/∂β_ij = L[:, i] (ΛM)[:, j]' + (ΛM)[:, j] L[:, i]'
    ∂Σ/∂ψ_ij = L[:, i] L[:, j]' + L[:, j] L[:, i]'   (i != j)
    ∂Σ/∂ψ_ii = L[:, i] L[:, i]'
    ∂Σ/∂θ_ii = e_i e_i'
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple, Union

import numpy as np

VALID_IDENTIFICATION = ('variance', 'loadings')
VALID_SIGMA_ZETA = ('full', 'empty', 'diag')

MIN_RESIDUAL_VARIANCE = 1e-6


@dataclass(frozen=True, eq=False)
class LVMSpec:
    """Declarative latent variable model."""
    lambda_pattern: np.ndarray
    variables: Tuple[str, ...]
    latents: Tuple[str, ...]
    beta_pattern: Optional[np.ndarray] = None
    sigma_zeta: Union[str, np.ndarray] = 'full'
    identification: str = 'variance'
    name: str = 'lvm'

    def __post_init__(self):
        lam = (np.asarray(self.lambda_pattern) != 0).astype(int)
        p, m = lam.shape
        if len(self.variables) != p:
            raise ValueError(f"lambda has {p} rows but {len(self.variables)} variables")
        if len(self.latents) != m:
            raise ValueError(f"lambda has {m} columns but {len(self.latents)} latents")

        beta = np.zeros((m, m), dtype=int) if self.beta_pattern is None \
            else (np.asarray(self.beta_pattern) != 0).astype(int)
        if beta.shape != (m, m):
            raise ValueError(f"beta must be {m}x{m}, got {beta.shape}")
        if np.any(np.diag(beta)):
            raise ValueError("beta diagonal must be zero")

        # Higher-order latents are indicated by the latents regressed on them
        indicated = (lam.sum(axis=0) + beta.sum(axis=0)) > 0
        if not np.all(indicated):
            empty = [self.latents[k] for k in np.where(~indicated)[0]]
            raise ValueError(f"Latents without indicators: {empty}")

        if isinstance(self.sigma_zeta, str):
            if self.sigma_zeta not in VALID_SIGMA_ZETA:
                raise ValueError(f"sigma_zeta must be one of {VALID_SIGMA_ZETA} or a matrix")
            sigma_zeta = self.sigma_zeta
        else:
            sigma_zeta = (np.asarray(self.sigma_zeta) != 0).astype(int)
            if sigma_zeta.shape != (m, m) or not np.array_equal(sigma_zeta, sigma_zeta.T):
                raise ValueError(f"sigma_zeta pattern must be a symmetric {m}x{m} matrix")

        if self.identification not in VALID_IDENTIFICATION:
            raise ValueError(f"identification must be one of {VALID_IDENTIFICATION}")
        if self.identification == 'loadings' and np.any(lam.sum(axis=0) == 0):
            raise ValueError("Marker identification needs an observed indicator for every "
                             "latent; use identification='variance' for higher-order latents")

        object.__setattr__(self, 'lambda_pattern', lam)
        object.__setattr__(self, 'beta_pattern', beta)
        object.__setattr__(self, 'sigma_zeta', sigma_zeta)
        object.__setattr__(self, 'variables', tuple(self.variables))
        object.__setattr__(self, 'latents', tuple(self.latents))

    @property
    def n_variables(self) -> int:
        return len(self.variables)

    @property
    def n_latents(self) -> int:
        return len(self.latents)

    def zeta_pattern(self) -> np.ndarray:
        """Off-diagonal pattern of free latent (residual) covariances."""
        m = self.n_latents
        if isinstance(self.sigma_zeta, str):
            pattern = np.ones((m, m), dtype=int) if self.sigma_zeta == 'full' \
                else np.zeros((m, m), dtype=int)
        else:
            pattern = self.sigma_zeta.copy()
        np.fill_diagonal(pattern, 0)
        return pattern

    @property
    def n_parameters(self) -> int:
        return LatentVariableStructure(self).n_parameters

    @property
    def df(self) -> int:
        p = self.n_variables
        return p * (p + 1) // 2 - self.n_parameters


class LatentVariableStructure:
    """
    Maps a flat parameter vector onto the model matrices of an LVMSpec.

    Example:
        >>> structure = LatentVariableStructure(spec)
        >>> theta0 = structure.start_values(S)
        >>> sigma = structure.implied(theta0)
    """

    def __init__(self, spec: LVMSpec):
        self.spec = spec
        lam = spec.lambda_pattern
        p, m = lam.shape

        markers = set()
        if spec.identification == 'loadings':
            for k in range(m):
                markers.add((int(np.argmax(lam[:, k] != 0)), k))
        self.markers = sorted(markers)

        self.lambda_free: List[Tuple[int, int]] = [
            (i, k) for i in range(p) for k in range(m)
            if lam[i, k] and (i, k) not in markers
        ]
        self.beta_free: List[Tuple[int, int]] = [
            (i, j) for i in range(m) for j in range(m) if spec.beta_pattern[i, j]
        ]
        zeta = spec.zeta_pattern()
        self.psi_free: List[Tuple[int, int]] = []
        for i in range(m):
            for j in range(i + 1):
                if i == j and spec.identification == 'loadings':
                    self.psi_free.append((i, i))
                elif i != j and zeta[i, j]:
                    self.psi_free.append((i, j))
        self.theta_free: List[int] = list(range(p))

        self.n_lambda = len(self.lambda_free)
        self.n_beta = len(self.beta_free)
        self.n_psi = len(self.psi_free)
        self.n_parameters = self.n_lambda + self.n_beta + self.n_psi + p

    # -------------------------------------------------------------------------
    # Parameter bookkeeping
    # -------------------------------------------------------------------------

    def parameter_names(self) -> List[str]:
        v, l = self.spec.variables, self.spec.latents
        names = [f"lambda[{v[i]},{l[k]}]" for i, k in self.lambda_free]
        names += [f"beta[{l[i]},{l[j]}]" for i, j in self.beta_free]
        names += [f"psi[{l[i]},{l[j]}]" for i, j in self.psi_free]
        names += [f"theta[{v[i]}]" for i in self.theta_free]
        return names

    def parameter_index(self) -> List[Tuple[str, str, str]]:
        """(matrix, row label, column label) for each free parameter."""
        v, l = self.spec.variables, self.spec.latents
        index = [('lambda', v[i], l[k]) for i, k in self.lambda_free]
        index += [('beta', l[i], l[j]) for i, j in self.beta_free]
        index += [('sigma_zeta', l[i], l[j]) for i, j in self.psi_free]
        index += [('sigma_epsilon', v[i], v[i]) for i in self.theta_free]
        return index

    def unpack(self, theta: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """Flat vector -> (Λ, B, Ψ, Θ)."""
        p, m = self.spec.lambda_pattern.shape
        Lam = np.zeros((p, m))
        B = np.zeros((m, m))
        Psi = np.eye(m) if self.spec.identification == 'variance' else np.zeros((m, m))
        Theta = np.zeros((p, p))

        for i, k in self.markers:
            Lam[i, k] = 1.0

        pos = 0
        for i, k in self.lambda_free:
            Lam[i, k] = theta[pos]
            pos += 1
        for i, j in self.beta_free:
            B[i, j] = theta[pos]
            pos += 1
        for i, j in self.psi_free:
            Psi[i, j] = theta[pos]
            Psi[j, i] = theta[pos]
            pos += 1
        for i in self.theta_free:
            Theta[i, i] = theta[pos]
            pos += 1

        return Lam, B, Psi, Theta

    def start_values(self, S: np.ndarray) -> np.ndarray:
        """
        Starting values giving each indicator about half common variance.
        """
        lam = self.spec.lambda_pattern
        n_loadings = np.maximum(lam.sum(axis=1), 1)
        variances = np.diag(S)

        values = [np.sqrt(0.5 * variances[i] / n_loadings[i]) for i, _ in self.lambda_free]
        values += [0.5 for _ in self.beta_free]
        values += [0.5 * variances.mean() if i == j else 0.0 for i, j in self.psi_free]
        values += [0.5 * variances[i] for i in self.theta_free]
        return np.asarray(values, dtype=float)

    def bounds(self) -> List[Tuple[Optional[float], Optional[float]]]:
        bounds = [(None, None)] * (self.n_lambda + self.n_beta)
        bounds += [(MIN_RESIDUAL_VARIANCE, None) if i == j else (None, None)
                   for i, j in self.psi_free]
        bounds += [(MIN_RESIDUAL_VARIANCE, None)] * len(self.theta_free)
        return bounds

    # -------------------------------------------------------------------------
    # Implied covariance and derivatives
    # -------------------------------------------------------------------------

    def implied(self, theta: np.ndarray) -> np.ndarray:
        Lam, B, Psi, Theta = self.unpack(theta)
        A = np.linalg.inv(np.eye(B.shape[0]) - B)
        M = A @ Psi @ A.T
        sigma = Lam @ M @ Lam.T + Theta
        return (sigma + sigma.T) / 2

    def jacobian(self, theta: np.ndarray) -> np.ndarray:
        """∂Σ/∂θ, shape (n_parameters, p, p)."""
        Lam, B, Psi, _ = self.unpack(theta)
        p = Lam.shape[0]
        A = np.linalg.inv(np.eye(B.shape[0]) - B)
        M = A @ Psi @ A.T
        LM = Lam @ M
        L = Lam @ A

        jac = np.zeros((self.n_parameters, p, p))
        pos = 0
        for i, k in self.lambda_free:
            jac[pos, i, :] += LM[:, k]
            jac[pos, :, i] += LM[:, k]
            pos += 1
        for i, j in self.beta_free:
            outer = np.outer(L[:, i], LM[:, j])
            jac[pos] = outer + outer.T
            pos += 1
        for i, j in self.psi_free:
            if i == j:
                jac[pos] = np.outer(L[:, i], L[:, i])
            else:
                outer = np.outer(L[:, i], L[:, j])
                jac[pos] = outer + outer.T
            pos += 1
        for i in self.theta_free:
            jac[pos, i, i] = 1.0
            pos += 1
        return jac

    def matrices(self, theta: np.ndarray) -> dict:
        Lam, B, Psi, Theta = self.unpack(theta)
        return {'lambda': Lam, 'beta': B, 'sigma_zeta': Psi, 'sigma_epsilon': Theta}
