"""
Fit Measures for Covariance Structure Models
============================================

Absolute and incremental fit indices for a FittedModel:

- χ² test of exact fit and its p-value
- Baseline (independence) model: χ²_b = n (Σ log s_ii - log|S|),
  df_b = p(p-1)/2
- NFI, TLI, CFI
- RMSEA = sqrt(max(χ² - df, 0) / (df (n - 1))) with a 90% confidence
  interval from the non-central χ² distribution and the p-value of
  close fit (H0: RMSEA <= .05)
- LL, npar, AIC, BIC, EBIC

A saturated model (df = 0) reproduces S exactly; its RMSEA is 0 and its
TLI is reported as 1.

Author: Network Psychometrics Team
"""

from dataclasses import dataclass, asdict
from typing import Dict, Tuple

import numpy as np
import pandas as pd
from scipy import optimize, stats

from .results import EBIC_GAMMA, FittedModel

RMSEA_CLOSE = 0.05
CI_LEVEL = 0.90


@dataclass
class FitMeasures:
    """Fit indices of one model."""
    model: str
    npar: int
    chisq: float
    df: int
    pvalue: float
    baseline_chisq: float
    baseline_df: int
    nfi: float
    tli: float
    cfi: float
    rmsea: float
    rmsea_lower: float
    rmsea_upper: float
    rmsea_pvalue: float
    logl: float
    aic: float
    bic: float
    ebic: float

    def to_dict(self) -> Dict:
        return asdict(self)

    def __str__(self) -> str:
        return (f"{self.model}: chi2({self.df}) = {self.chisq:.2f}, p = {self.pvalue:.4f}, "
                f"CFI = {self.cfi:.3f}, TLI = {self.tli:.3f}, "
                f"RMSEA = {self.rmsea:.3f} [{self.rmsea_lower:.3f}, {self.rmsea_upper:.3f}]")


# =============================================================================
# COMPONENTS
# =============================================================================

def baseline_chisq(S: np.ndarray, n_obs: int) -> Tuple[float, int]:
    """χ² and df of the independence model (diagonal Σ)."""
    p = S.shape[0]
    _, logdet = np.linalg.slogdet(S)
    chisq = n_obs * (np.sum(np.log(np.diag(S))) - logdet)
    return float(max(chisq, 0.0)), p * (p - 1) // 2


def _noncentral_cdf(x: float, df: int, nc: float) -> float:
    if nc <= 0:
        return float(stats.chi2.cdf(x, df))
    return float(stats.ncx2.cdf(x, df, nc))


def _noncentrality_bound(chisq: float, df: int, target: float) -> float:
    """
    Non-centrality λ with P(χ²_df(λ) <= chisq) = target, or 0 if even
    the central distribution lies below the target.
    """
    if _noncentral_cdf(chisq, df, 0.0) <= target:
        return 0.0
    upper = max(chisq, 1.0)
    while _noncentral_cdf(chisq, df, upper) > target:
        upper *= 2
    return optimize.brentq(lambda nc: _noncentral_cdf(chisq, df, nc) - target,
                           0.0, upper, xtol=1e-10)


def rmsea(chisq: float, df: int, n_obs: int) -> float:
    if df <= 0:
        return 0.0
    return float(np.sqrt(max(chisq - df, 0.0) / (df * (n_obs - 1))))


def rmsea_interval(chisq: float, df: int, n_obs: int,
                   level: float = CI_LEVEL) -> Tuple[float, float]:
    """Confidence interval for the RMSEA."""
    if df <= 0:
        return 0.0, 0.0
    tail = (1 - level) / 2
    lower_nc = _noncentrality_bound(chisq, df, 1 - tail)
    upper_nc = _noncentrality_bound(chisq, df, tail)
    scale = df * (n_obs - 1)
    return float(np.sqrt(lower_nc / scale)), float(np.sqrt(upper_nc / scale))


def rmsea_close_fit(chisq: float, df: int, n_obs: int,
                    close: float = RMSEA_CLOSE) -> float:
    """p-value of H0: RMSEA <= close."""
    if df <= 0:
        return np.nan
    nc = close ** 2 * df * (n_obs - 1)
    return 1.0 - _noncentral_cdf(chisq, df, nc)


def incremental_indices(chisq: float, df: int,
                        chisq_b: float, df_b: int) -> Tuple[float, float, float]:
    """(NFI, TLI, CFI) against the baseline model."""
    nfi = (chisq_b - chisq) / chisq_b if chisq_b > 0 else np.nan

    if df <= 0:
        tli = 1.0
    else:
        ratio_b = chisq_b / df_b
        tli = (ratio_b - chisq / df) / (ratio_b - 1) if ratio_b != 1 else np.nan

    numerator = max(chisq - df, 0.0)
    denominator = max(chisq_b - df_b, chisq - df, 0.0)
    cfi = 1.0 if denominator == 0 else 1.0 - numerator / denominator

    return float(nfi), float(tli), float(cfi)


# =============================================================================
# MAIN ENTRY
# =============================================================================

def compute_fit_measures(fitted: FittedModel, gamma: float = EBIC_GAMMA) -> FitMeasures:
    """
    Compute the fit indices of a FittedModel.

    Args:
        fitted: Converged FittedModel
        gamma: EBIC tuning parameter

    Returns:
        FitMeasures
    """
    n = fitted.n_obs
    chisq, df = fitted.chi_square, fitted.df
    chisq_b, df_b = baseline_chisq(fitted.sample_covariance, n)

    pvalue = float(stats.chi2.sf(chisq, df)) if df > 0 else np.nan
    nfi, tli, cfi = incremental_indices(chisq, df, chisq_b, df_b)
    lower, upper = rmsea_interval(chisq, df, n)

    return FitMeasures(
        model=fitted.name,
        npar=fitted.n_parameters,
        chisq=chisq,
        df=df,
        pvalue=pvalue,
        baseline_chisq=chisq_b,
        baseline_df=df_b,
        nfi=nfi,
        tli=tli,
        cfi=cfi,
        rmsea=rmsea(chisq, df, n),
        rmsea_lower=lower,
        rmsea_upper=upper,
        rmsea_pvalue=rmsea_close_fit(chisq, df, n),
        logl=fitted.log_likelihood,
        aic=fitted.aic,
        bic=fitted.bic,
        ebic=fitted.ebic(gamma),
    )


def fit_measures_table(models: Dict[str, FittedModel]) -> pd.DataFrame:
    """One row of fit measures per model, indexed by name."""
    rows = []
    for name, fitted in models.items():
        row = compute_fit_measures(fitted).to_dict()
        row['model'] = name
        rows.append(row)
    return pd.DataFrame(rows).set_index('model')
