"""
Network Search: Pruning and Stepup
==================================

Extracts a sparse Gaussian graphical model from a covariance matrix:

    saturated GGM  ->  prune  ->  stepup  ->  adjacency matrix

Pruning:
    Wald p-values of the free partial correlations (optionally adjusted
    for multiple testing). In recursive mode the single edge with the
    largest p-value is removed if p > α and the model is refitted; in
    batch mode every edge with p > α is removed at once. Repeats until
    no edge exceeds α.

Stepup:
    Each absent edge is freed in turn and the candidate is compared to
    the current model with a likelihood-ratio test,
        LR = 2 (LL_candidate - LL_current) ~ χ²(1)
    The candidate with the largest LR and p < α is accepted when it also
    improves the information criterion (BIC by default). Repeats until no
    candidate qualifies.

Exact ties (equal p-values in pruning, equal LR in stepup) are broken by
row-major edge order: the first edge wins.

Every EdgeSet is fitted at most once per search; fits are cached.

Usage:
    from waisnet.estimation.network_search import NetworkSearch

    search = NetworkSearch(ModelFitter(), SearchConfig(alpha=0.01))
    result = search.run(us_correlations)
    result.adjacency_frame()

Author: Network Psychometrics Team
"""

import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from ..config import (
    ConfigurationError,
    SearchConfig,
    VALID_ADJUSTMENTS,
    VALID_CRITERIA,
)
from ..models.correlation import CorrelationMatrix
from ..models.edges import Edge, EdgeSet
from ..models.ggm import GGMSpec
from ..utils.data_qa import check_covariance
from ..utils.logging_config import SearchLogger, get_logger
from .results import FittedModel

logger = get_logger(__name__)


class EstimationError(RuntimeError):
    """A model required by the search could not be estimated."""


# =============================================================================
# RESULT CONTAINERS
# =============================================================================

@dataclass
class SearchStep:
    """One accepted change to the edge set."""
    phase: str  # 'prune' or 'stepup'
    edges: Tuple[Edge, ...]
    labels: Tuple[str, ...]
    statistic: float  # p-value for prune, LR for stepup
    p_value: float
    n_edges: int
    log_likelihood: float
    bic: float


@dataclass
class PhaseResult:
    """Outcome of a prune or stepup phase."""
    model: FittedModel
    history: List[SearchStep] = field(default_factory=list)
    stop_reason: str = ''


@dataclass
class SearchResult:
    """Complete network search output."""
    saturated: FittedModel
    pruned: FittedModel
    final: FittedModel
    prune_history: List[SearchStep]
    stepup_history: List[SearchStep]
    n_fits: int
    adjacency: np.ndarray
    variables: Tuple[str, ...]

    @property
    def edges(self) -> EdgeSet:
        return self.final.edges

    def adjacency_frame(self) -> pd.DataFrame:
        return pd.DataFrame(self.adjacency, index=list(self.variables),
                            columns=list(self.variables))

    def history_frame(self) -> pd.DataFrame:
        rows = []
        for step in self.prune_history + self.stepup_history:
            rows.append({
                'phase': step.phase,
                'edges': '; '.join(step.labels),
                'statistic': step.statistic,
                'p_value': step.p_value,
                'n_edges': step.n_edges,
                'LL': step.log_likelihood,
                'BIC': step.bic,
            })
        return pd.DataFrame(rows, columns=['phase', 'edges', 'statistic', 'p_value',
                                           'n_edges', 'LL', 'BIC'])

    def summary(self) -> str:
        n_possible = self.final.edges.n_possible
        lines = [
            "=" * 60,
            "NETWORK SEARCH",
            "=" * 60,
            f"Saturated: {len(self.saturated.edges)} edges",
            f"Pruned:    {len(self.pruned.edges)} edges ({len(self.prune_history)} steps)",
            f"Final:     {len(self.final.edges)} of {n_possible} edges "
            f"({len(self.stepup_history)} added back)",
            f"df = {self.final.df}, BIC = {self.final.bic:.2f}",
            f"Model fits: {self.n_fits}",
            "=" * 60,
        ]
        return "\n".join(lines)


# =============================================================================
# FIT CACHE
# =============================================================================

class FitCache:
    """
    Memoizes GGM fits by EdgeSet for one covariance matrix.

    Thread-safe: lookups and inserts are guarded by a lock so parallel
    candidate fits share one cache.
    """

    def __init__(self, fitter, covariance: np.ndarray, n_obs: int,
                 variables: Sequence[str]):
        self.fitter = fitter
        self.covariance = covariance
        self.n_obs = n_obs
        self.variables = tuple(variables)
        self._fits: Dict[EdgeSet, FittedModel] = {}
        self._lock = threading.Lock()

    @classmethod
    def from_model(cls, fitter, fitted: FittedModel) -> 'FitCache':
        cache = cls(fitter, fitted.sample_covariance, fitted.n_obs, fitted.variables)
        cache.add(fitted)
        return cache

    @property
    def n_fits(self) -> int:
        return len(self._fits)

    def add(self, fitted: FittedModel) -> None:
        with self._lock:
            self._fits.setdefault(fitted.edges, fitted)

    def fit(self, edges: EdgeSet) -> FittedModel:
        with self._lock:
            cached = self._fits.get(edges)
        if cached is not None:
            return cached

        spec = GGMSpec(edges, self.variables, name=f"ggm_{len(edges)}")
        fitted = self.fitter.fit(self.covariance, self.n_obs, spec)

        with self._lock:
            return self._fits.setdefault(edges, fitted)

    def fit_many(self, edge_sets: List[EdgeSet], n_workers: int = 1) -> List[FittedModel]:
        """Fit several edge sets, returning results in input order."""
        if n_workers <= 1 or len(edge_sets) <= 1:
            return [self.fit(edges) for edges in edge_sets]
        with ThreadPoolExecutor(max_workers=n_workers) as executor:
            futures = [executor.submit(self.fit, edges) for edges in edge_sets]
            return [future.result() for future in futures]


# =============================================================================
# HELPERS
# =============================================================================

def adjust_p_values(p_values: np.ndarray, method: str = 'none') -> np.ndarray:
    """
    Multiple-testing adjustment of edge p-values.

    Missing p-values (no standard error) count as 1.
    """
    if method not in VALID_ADJUSTMENTS:
        raise ConfigurationError(f"Unknown adjustment '{method}'. Use one of {VALID_ADJUSTMENTS}")
    p = np.nan_to_num(np.asarray(p_values, dtype=float), nan=1.0)
    if method == 'none' or len(p) == 0:
        return p
    return multipletests(p, method=method)[1]


def extract_adjacency(fitted: FittedModel) -> np.ndarray:
    """0/1 adjacency matrix of a fitted network model."""
    return fitted.adjacency()


def _check_alpha(alpha: float, name: str = 'alpha') -> None:
    if not isinstance(alpha, (int, float)) or not 0 < alpha < 1:
        raise ConfigurationError(f"{name} must lie in (0, 1), got {alpha!r}")


def _labels(edges: Sequence[Edge], variables: Sequence[str]) -> Tuple[str, ...]:
    return tuple(f"{variables[i]}--{variables[j]}" for i, j in edges)


def _step(phase: str, edges: Sequence[Edge], fitted: FittedModel,
          statistic: float, p_value: float) -> SearchStep:
    return SearchStep(
        phase=phase,
        edges=tuple(edges),
        labels=_labels(edges, fitted.variables),
        statistic=float(statistic),
        p_value=float(p_value),
        n_edges=len(fitted.edges),
        log_likelihood=fitted.log_likelihood,
        bic=fitted.bic,
    )


# =============================================================================
# PRUNING
# =============================================================================

def prune(fitted: FittedModel,
          fitter,
          alpha: float,
          recursive: bool = True,
          adjust: str = 'none',
          min_edges: int = 0,
          cache: Optional[FitCache] = None,
          search_log: Optional[SearchLogger] = None) -> PhaseResult:
    """
    Remove non-significant edges from a fitted network model.

    Args:
        fitted: Converged GGM fit to start from
        fitter: Object with fit(covariance, n_obs, spec) -> FittedModel
        alpha: Significance level; edges with p > alpha are removed
        recursive: One edge per refit (True) or all offending edges (False)
        adjust: 'none', 'bonferroni', 'holm' or 'fdr_bh'
        min_edges: Never leave fewer free edges than this
        cache: Shared FitCache (created from `fitted` if omitted)
        search_log: Progress logger

    Returns:
        PhaseResult whose model's edges are a subset of fitted.edges
    """
    _check_alpha(alpha)
    if fitted.edges is None:
        raise ConfigurationError(f"Model '{fitted.name}' is not a network model")
    cache = cache or FitCache.from_model(fitter, fitted)
    cache.add(fitted)

    current = fitted
    history: List[SearchStep] = []
    if search_log:
        search_log.phase('prune', len(current.edges))

    while True:
        free = current.edges.free_edges()
        if not free:
            reason = 'no free edges left'
            break

        p_values = adjust_p_values(current.edge_table()['p'].to_numpy(), adjust)

        if recursive:
            worst = int(np.argmax(p_values))
            if p_values[worst] <= alpha:
                reason = f'all edges significant at alpha = {alpha}'
                break
            if len(free) - 1 < min_edges:
                reason = f'minimum of {min_edges} edges reached'
                break
            remove = [free[worst]]
            remove_p = [p_values[worst]]
        else:
            offending = [k for k in range(len(free)) if p_values[k] > alpha]
            if not offending:
                reason = f'all edges significant at alpha = {alpha}'
                break
            room = len(free) - min_edges
            if room <= 0:
                reason = f'minimum of {min_edges} edges reached'
                break
            if len(offending) > room:
                # Keep only the least significant; stable sort preserves row-major ties
                offending = sorted(offending, key=lambda k: -p_values[k])[:room]
                offending.sort()
            remove = [free[k] for k in offending]
            remove_p = [p_values[k] for k in offending]

        candidate = cache.fit(current.edges.without_edges(remove))
        if not candidate.converged:
            removed = ", ".join(_labels(remove, current.variables))
            reason = f'refit without {removed} did not converge'
            if search_log:
                search_log.candidate_failed(removed, candidate.message)
            break

        current = candidate
        if recursive:
            history.append(_step('prune', remove, current, remove_p[0], remove_p[0]))
            if search_log:
                i, j = remove[0]
                search_log.pruned((current.variables[i], current.variables[j]),
                                  remove_p[0], len(current.edges))
        else:
            history.append(_step('prune', remove, current, max(remove_p), max(remove_p)))
            if search_log:
                search_log.pruned_batch(len(remove), len(current.edges))

    if search_log:
        search_log.stopped('prune', reason)
    logger.debug(f"Prune stopped after {len(history)} steps: {reason}")
    return PhaseResult(current, history, reason)


# =============================================================================
# STEPUP
# =============================================================================

def stepup(fitted: FittedModel,
           fitter,
           alpha: float,
           criterion: str = 'bic',
           min_df: int = 0,
           n_workers: int = 1,
           cache: Optional[FitCache] = None,
           search_log: Optional[SearchLogger] = None) -> PhaseResult:
    """
    Greedily reinstate edges that significantly improve fit.

    Args:
        fitted: Converged GGM fit to start from
        fitter: Object with fit(covariance, n_obs, spec) -> FittedModel
        alpha: Level of the 1-df likelihood-ratio test
        criterion: 'bic', 'aic' or 'none'; an accepted edge must strictly
            lower this criterion
        min_df: Never go below this many degrees of freedom
        n_workers: Threads used to fit candidate models
        cache: Shared FitCache (created from `fitted` if omitted)
        search_log: Progress logger

    Returns:
        PhaseResult whose model's edges are a superset of fitted.edges
    """
    _check_alpha(alpha)
    if criterion not in VALID_CRITERIA:
        raise ConfigurationError(f"Unknown criterion '{criterion}'. Use one of {VALID_CRITERIA}")
    if fitted.edges is None:
        raise ConfigurationError(f"Model '{fitted.name}' is not a network model")
    cache = cache or FitCache.from_model(fitter, fitted)
    cache.add(fitted)

    current = fitted
    history: List[SearchStep] = []
    if search_log:
        search_log.phase('stepup', len(current.edges))

    while True:
        absent = current.edges.fixed_edges()
        if not absent:
            reason = 'saturated model reached'
            break
        if current.df - 1 < min_df:
            reason = f'minimum of {min_df} degrees of freedom reached'
            break

        candidates = cache.fit_many([current.edges.with_edge(e) for e in absent], n_workers)

        best: Optional[Tuple[Edge, FittedModel, float, float]] = None
        for edge, candidate in zip(absent, candidates):
            if not candidate.converged:
                if search_log:
                    search_log.candidate_failed(
                        _labels([edge], current.variables)[0], candidate.message)
                continue
            lr = max(2 * (candidate.log_likelihood - current.log_likelihood), 0.0)
            p_value = float(stats.chi2.sf(lr, 1))
            if p_value < alpha and (best is None or lr > best[2]):
                best = (edge, candidate, lr, p_value)

        if best is None:
            reason = f'no edge significant at alpha = {alpha}'
            break

        edge, candidate, lr, p_value = best
        if criterion != 'none' and not candidate.criterion(criterion) < current.criterion(criterion):
            reason = f'best candidate does not improve {criterion.upper()}'
            break

        current = candidate
        history.append(_step('stepup', [edge], current, lr, p_value))
        if search_log:
            search_log.added((current.variables[edge[0]], current.variables[edge[1]]),
                             lr, p_value, len(current.edges))

    if search_log:
        search_log.stopped('stepup', reason)
    logger.debug(f"Stepup stopped after {len(history)} steps: {reason}")
    return PhaseResult(current, history, reason)


# =============================================================================
# ORCHESTRATION
# =============================================================================

class NetworkSearch:
    """
    Saturated fit -> prune -> stepup on one sample.

    Example:
        >>> search = NetworkSearch(ModelFitter(), SearchConfig(alpha=0.01))
        >>> result = search.run(R_us)
        >>> result.adjacency.sum() // 2
        41
    """

    def __init__(self, fitter, config: SearchConfig = None, verbose: bool = True):
        self.fitter = fitter
        self.config = config or SearchConfig()
        self.verbose = verbose

    def _validate_config(self) -> None:
        cfg = self.config
        _check_alpha(cfg.alpha)
        _check_alpha(cfg.effective_stepup_alpha, 'stepup_alpha')
        if cfg.adjust not in VALID_ADJUSTMENTS:
            raise ConfigurationError(f"Unknown adjustment '{cfg.adjust}'")
        if cfg.criterion not in VALID_CRITERIA:
            raise ConfigurationError(f"Unknown criterion '{cfg.criterion}'")
        if cfg.min_edges < 0 or cfg.min_df < 0 or cfg.n_workers < 1:
            raise ConfigurationError("min_edges and min_df must be >= 0 and n_workers >= 1")

    def run(self,
            data: Union[CorrelationMatrix, np.ndarray],
            n_obs: Optional[int] = None,
            variables: Optional[Sequence[str]] = None,
            name: str = 'sample') -> SearchResult:
        """
        Run the full search.

        Args:
            data: CorrelationMatrix (rescaled to the ML covariance) or an
                ML covariance array
            n_obs: Sample size (taken from a CorrelationMatrix if omitted)
            variables: Variable labels for an array input
            name: Sample label for logging

        Returns:
            SearchResult

        Raises:
            ConfigurationError: Invalid input or settings
            EstimationError: The saturated model could not be estimated
        """
        self._validate_config()

        if isinstance(data, CorrelationMatrix):
            n_obs = data.n_obs if n_obs is None else n_obs
            covariance = data.ml_covariance()
            variables = data.variables if variables is None else variables
            name = data.name if name == 'sample' else name
        else:
            covariance = np.asarray(data, dtype=float)
            if n_obs is None:
                raise ConfigurationError("n_obs is required for an array input")
            if variables is None and covariance.ndim == 2:
                variables = [f"V{i + 1}" for i in range(covariance.shape[0])]

        check_covariance(covariance, n_obs, variables)
        variables = tuple(variables)
        p = covariance.shape[0]

        search_log = SearchLogger(name, verbose=self.verbose)
        search_log.start(n_variables=p, n_obs=n_obs)

        cache = FitCache(self.fitter, covariance, int(n_obs), variables)
        saturated = cache.fit(EdgeSet.full(p))
        if not saturated.converged:
            raise EstimationError(
                f"Saturated network model for '{name}' did not converge: {saturated.message}"
            )

        cfg = self.config
        pruned = prune(saturated, self.fitter, cfg.alpha,
                       recursive=cfg.recursive, adjust=cfg.adjust,
                       min_edges=cfg.min_edges, cache=cache, search_log=search_log)
        stepped = stepup(pruned.model, self.fitter, cfg.effective_stepup_alpha,
                         criterion=cfg.criterion, min_df=cfg.min_df,
                         n_workers=cfg.n_workers, cache=cache, search_log=search_log)

        final = stepped.model
        search_log.finished(len(final.edges), cache.n_fits)

        return SearchResult(
            saturated=saturated,
            pruned=pruned.model,
            final=final,
            prune_history=pruned.history,
            stepup_history=stepped.history,
            n_fits=cache.n_fits,
            adjacency=final.edges.to_adjacency(),
            variables=variables,
        )
