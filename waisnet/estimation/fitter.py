"""
Maximum Likelihood Model Fitter
===============================

Fits network (GGM) and latent variable (LVM) models to a covariance
matrix by maximum likelihood.

Mathematical Formulation:
-------------------------
ML discrepancy (no mean structure):
    F = log|Σ| + tr(S Σ^{-1}) - log|S| - p

Log-likelihood:
    LL = -n/2 (p log 2π + log|Σ| + tr(S Σ^{-1}))

Test statistic and degrees of freedom:
    χ² = n F,    df = p(p+1)/2 - K

Standard errors come from the expected Fisher information
    I_kl = n/2 tr(Σ^{-1} ∂Σ/∂θ_k Σ^{-1} ∂Σ/∂θ_l)

Network models are estimated with the iterative regression algorithm for
a Gaussian graph with known structure (Hastie, Tibshirani & Friedman,
Elements of Statistical Learning, Algorithm 17.1); latent variable
models with L-BFGS-B on F using analytic gradients.

Usage:
    from waisnet.estimation.fitter import ModelFitter
    from waisnet.models.ggm import GGMSpec

    fitter = ModelFitter()
    fitted = fitter.fit(S, n_obs=1800, spec=GGMSpec.saturated(15))

Author: Network Psychometrics Team
"""

from typing import Optional, Tuple, Union

import numpy as np
from scipy import optimize

from ..config import ConfigurationError, FitterConfig
from ..models.ggm import (
    GGMSpec,
    covariance_jacobian,
    implied_covariance,
    parameter_names as ggm_parameter_names,
    parameter_vector,
    partial_correlations,
    scaling_from_precision,
)
from ..models.lvm import LVMSpec, LatentVariableStructure
from ..utils.data_qa import check_covariance
from ..utils.logging_config import get_logger
from .results import FittedModel, parameter_table

logger = get_logger(__name__)

# Objective value returned for non positive-definite trial matrices
INVALID_OBJECTIVE = 1e10

# Largest absolute gradient accepted as a stationary point when L-BFGS-B
# reports an abnormal line search termination
GRADIENT_TOL = 1e-4


# =============================================================================
# LIKELIHOOD HELPERS
# =============================================================================

def ml_discrepancy(S: np.ndarray, sigma: np.ndarray) -> float:
    """F_ML between sample and implied covariance."""
    p = S.shape[0]
    sign, logdet_sigma = np.linalg.slogdet(sigma)
    if sign <= 0:
        return np.inf
    _, logdet_s = np.linalg.slogdet(S)
    return float(logdet_sigma + np.trace(np.linalg.solve(sigma, S)) - logdet_s - p)


def log_likelihood(S: np.ndarray, sigma: np.ndarray, n_obs: int) -> float:
    """Gaussian log-likelihood of n observations with ML covariance S."""
    p = S.shape[0]
    sign, logdet_sigma = np.linalg.slogdet(sigma)
    if sign <= 0:
        return -np.inf
    trace = np.trace(np.linalg.solve(sigma, S))
    return float(-n_obs / 2 * (p * np.log(2 * np.pi) + logdet_sigma + trace))


def fisher_information(sigma: np.ndarray, jacobian: np.ndarray, n_obs: int) -> np.ndarray:
    """
    Expected information matrix.

    Args:
        sigma: Implied covariance (p x p)
        jacobian: ∂Σ/∂θ stacked as (K, p, p)
        n_obs: Sample size

    Returns:
        K x K information matrix
    """
    sigma_inv = np.linalg.inv(sigma)
    G = np.einsum('ij,kjl->kil', sigma_inv, jacobian)
    info = 0.5 * n_obs * np.einsum('kij,lji->kl', G, G)
    return (info + info.T) / 2


def standard_errors(info: np.ndarray) -> np.ndarray:
    """Square roots of the diagonal of the inverse information matrix."""
    try:
        vcov = np.linalg.inv(info)
    except np.linalg.LinAlgError:
        logger.warning("Singular information matrix; using pseudo-inverse")
        vcov = np.linalg.pinv(info)
    diag = np.diag(vcov)
    with np.errstate(invalid='ignore'):
        return np.where(diag > 0, np.sqrt(np.abs(diag)), np.nan)


# =============================================================================
# MODEL FITTER
# =============================================================================

class ModelFitter:
    """
    Maximum likelihood estimator for GGM and LVM specifications.

    A fit that does not converge is returned with ``converged=False``
    rather than raised; callers decide whether that is fatal.

    Example:
        >>> fitter = ModelFitter(FitterConfig(maxiter=5000))
        >>> fitted = fitter.fit(S, 1800, GGMSpec.saturated(15))
        >>> fitted.df
        0
    """

    def __init__(self, config: FitterConfig = None):
        self.config = config or FitterConfig()

    def fit(self,
            covariance: np.ndarray,
            n_obs: int,
            spec: Union[GGMSpec, LVMSpec],
            name: Optional[str] = None) -> FittedModel:
        """
        Fit a model to an ML covariance matrix.

        Args:
            covariance: Sample covariance (divide-by-n convention)
            n_obs: Sample size
            spec: GGMSpec or LVMSpec
            name: Model label (defaults to spec.name)

        Returns:
            FittedModel

        Raises:
            ConfigurationError: If the covariance is invalid or does not
                match the model dimensions
        """
        S = np.asarray(covariance, dtype=float)
        check_covariance(S, n_obs)
        S = (S + S.T) / 2

        if S.shape[0] != spec.n_variables:
            raise ConfigurationError(
                f"Covariance is {S.shape[0]}x{S.shape[0]} but model "
                f"'{spec.name}' has {spec.n_variables} variables"
            )

        name = name or spec.name
        if isinstance(spec, GGMSpec):
            return self._fit_ggm(S, int(n_obs), spec, name)
        if isinstance(spec, LVMSpec):
            return self._fit_lvm(S, int(n_obs), spec, name)
        raise TypeError(f"Unsupported model specification: {type(spec).__name__}")

    # -------------------------------------------------------------------------
    # Gaussian graphical model
    # -------------------------------------------------------------------------

    def _precision_with_zeros(self, S: np.ndarray, adjacency: np.ndarray
                              ) -> Tuple[np.ndarray, int, bool]:
        """
        ML precision matrix with structural zeros (ESL Algorithm 17.1).

        Returns:
            (precision, sweeps, converged)
        """
        p = S.shape[0]
        W = S.copy()
        converged = False
        sweeps = 0

        for sweeps in range(1, self.config.maxiter + 1):
            W_old = W.copy()
            for j in range(p):
                others = np.array([k for k in range(p) if k != j])
                neighbours = np.where(adjacency[j, others] != 0)[0]
                beta = np.zeros(p - 1)
                if len(neighbours) > 0:
                    W11 = W[np.ix_(others, others)]
                    beta[neighbours] = np.linalg.solve(
                        W11[np.ix_(neighbours, neighbours)],
                        S[others[neighbours], j]
                    )
                    w12 = W11 @ beta
                else:
                    w12 = np.zeros(p - 1)
                W[others, j] = w12
                W[j, others] = w12
            if np.max(np.abs(W - W_old)) < self.config.tol:
                converged = True
                break

        # Read the precision off the final regressions so that absent edges
        # are exactly zero
        K = np.zeros((p, p))
        for j in range(p):
            others = np.array([k for k in range(p) if k != j])
            neighbours = np.where(adjacency[j, others] != 0)[0]
            beta = np.zeros(p - 1)
            if len(neighbours) > 0:
                W11 = W[np.ix_(others, others)]
                beta[neighbours] = np.linalg.solve(
                    W11[np.ix_(neighbours, neighbours)], S[others[neighbours], j]
                )
            k_jj = 1.0 / (S[j, j] - W[others, j] @ beta)
            K[j, j] = k_jj
            K[others, j] = -beta * k_jj

        K = (K + K.T) / 2
        K[adjacency == 0] = 0.0
        return K, sweeps, converged

    def _fit_ggm(self, S: np.ndarray, n_obs: int, spec: GGMSpec, name: str) -> FittedModel:
        p = S.shape[0]
        variables = spec.variables or tuple(f"V{i + 1}" for i in range(p))
        adjacency = spec.edges.to_adjacency()
        np.fill_diagonal(adjacency, 1)

        message = 'converged'
        try:
            K, sweeps, converged = self._precision_with_zeros(S, adjacency)
            if not converged:
                message = f'iteration limit reached ({self.config.maxiter})'
            if np.linalg.eigvalsh(K).min() <= 0:
                converged = False
                message = 'precision matrix not positive definite'
        except np.linalg.LinAlgError as exc:
            logger.debug(f"GGM fit '{name}' failed: {exc}")
            return self._failed(name, 'ggm', variables, S, n_obs, spec.n_parameters,
                                spec.df, str(exc), edges=spec.edges)

        omega = partial_correlations(K)
        omega[adjacency == 0] = 0.0
        delta = scaling_from_precision(K)
        sigma = implied_covariance(omega, delta)

        estimates = parameter_vector(omega, delta, spec.edges)
        names = ggm_parameter_names(spec.edges, variables)
        index = [('delta', v, v) for v in variables]
        index += [('omega', variables[i], variables[j]) for i, j in spec.edges.free_edges()]

        if self.config.compute_se and converged:
            jac = covariance_jacobian(omega, delta, spec.edges)
            se = standard_errors(fisher_information(sigma, jac, n_obs))
        else:
            se = np.full(len(estimates), np.nan)

        ll = log_likelihood(S, sigma, n_obs)
        chi_square = max(n_obs * ml_discrepancy(S, sigma), 0.0)

        logger.debug(f"GGM '{name}': {len(spec.edges)} edges, LL={ll:.4f}, "
                     f"sweeps={sweeps}, converged={converged}")

        return FittedModel(
            name=name,
            model_type='ggm',
            variables=tuple(variables),
            parameters=parameter_table(names, index, estimates, se),
            implied_covariance=sigma,
            sample_covariance=S,
            n_obs=n_obs,
            n_parameters=spec.n_parameters,
            log_likelihood=ll,
            chi_square=chi_square,
            df=spec.df,
            converged=converged,
            n_iterations=sweeps,
            message=message,
            edges=spec.edges,
            omega=omega,
            delta=delta,
        )

    # -------------------------------------------------------------------------
    # Latent variable model
    # -------------------------------------------------------------------------

    def _fit_lvm(self, S: np.ndarray, n_obs: int, spec: LVMSpec, name: str) -> FittedModel:
        structure = LatentVariableStructure(spec)
        variables = spec.variables
        df = spec.df
        if df < 0:
            raise ConfigurationError(
                f"Model '{name}' has {structure.n_parameters} parameters for "
                f"{S.shape[0] * (S.shape[0] + 1) // 2} moments (df = {df})"
            )

        _, logdet_s = np.linalg.slogdet(S)
        p = S.shape[0]

        def objective(theta):
            sigma = structure.implied(theta)
            try:
                chol = np.linalg.cholesky(sigma)
            except np.linalg.LinAlgError:
                return INVALID_OBJECTIVE, np.zeros_like(theta)
            logdet = 2 * np.sum(np.log(np.diag(chol)))
            sigma_inv = np.linalg.inv(sigma)
            value = logdet + np.sum(sigma_inv * S) - logdet_s - p
            weight = sigma_inv - sigma_inv @ S @ sigma_inv
            grad = np.einsum('ij,kij->k', weight, structure.jacobian(theta))
            return value, grad

        theta0 = structure.start_values(S)
        result = optimize.minimize(
            objective,
            theta0,
            jac=True,
            method='L-BFGS-B',
            bounds=structure.bounds(),
            options={'maxiter': self.config.maxiter, 'ftol': 1e-14, 'gtol': 1e-8},
        )

        theta = result.x
        sigma = structure.implied(theta)
        converged = bool(result.success) or bool(
            result.fun < INVALID_OBJECTIVE and np.max(np.abs(result.jac)) < GRADIENT_TOL
        )
        message = str(result.message)
        if np.linalg.eigvalsh(sigma).min() <= 0:
            converged = False
            message = 'implied covariance not positive definite'

        if self.config.compute_se and converged:
            se = standard_errors(fisher_information(sigma, structure.jacobian(theta), n_obs))
        else:
            se = np.full(len(theta), np.nan)

        ll = log_likelihood(S, sigma, n_obs)
        chi_square = max(n_obs * ml_discrepancy(S, sigma), 0.0)

        logger.debug(f"LVM '{name}': LL={ll:.4f}, iterations={result.nit}, "
                     f"converged={converged} ({message})")

        return FittedModel(
            name=name,
            model_type='lvm',
            variables=tuple(variables),
            parameters=parameter_table(structure.parameter_names(),
                                       structure.parameter_index(), theta, se),
            implied_covariance=sigma,
            sample_covariance=S,
            n_obs=n_obs,
            n_parameters=structure.n_parameters,
            log_likelihood=ll,
            chi_square=chi_square,
            df=df,
            converged=converged,
            n_iterations=int(result.nit),
            message=message,
            matrices=structure.matrices(theta),
        )

    # -------------------------------------------------------------------------

    @staticmethod
    def _failed(name, model_type, variables, S, n_obs, n_parameters, df, message,
                edges=None) -> FittedModel:
        """Placeholder result for a fit that broke down numerically."""
        return FittedModel(
            name=name,
            model_type=model_type,
            variables=tuple(variables),
            parameters=parameter_table([], [], np.array([]), np.array([])),
            implied_covariance=np.full_like(S, np.nan),
            sample_covariance=S,
            n_obs=n_obs,
            n_parameters=n_parameters,
            log_likelihood=-np.inf,
            chi_square=np.inf,
            df=df,
            converged=False,
            message=message,
            edges=edges,
        )
