"""
Tests for Network Search
========================

Pruning, stepup and the full saturated -> prune -> stepup pipeline.
"""

import dataclasses
import logging

import pytest
import numpy as np

from waisnet.config import ConfigurationError, SearchConfig
from waisnet.estimation.fitter import ModelFitter
from waisnet.estimation.network_search import (
    EstimationError,
    FitCache,
    NetworkSearch,
    adjust_p_values,
    extract_adjacency,
    prune,
    stepup,
)
from waisnet.models.correlation import CorrelationMatrix
from waisnet.models.edges import EdgeSet
from waisnet.models.ggm import GGMSpec
from waisnet.simulation.ggm_simulator import sample_correlation
from waisnet.utils.logging_config import SearchLogger

from conftest import FOUR_NODE_EDGES, FOUR_NODE_ZERO

N_OBS = 500


class CountingFitter:
    """Wraps ModelFitter and records every edge set it is asked to fit."""

    def __init__(self, fail_on=()):
        self.inner = ModelFitter()
        self.calls = []
        self.fail_on = set(fail_on)

    def fit(self, covariance, n_obs, spec, name=None):
        self.calls.append(spec.edges)
        fitted = self.inner.fit(covariance, n_obs, spec, name)
        if spec.edges in self.fail_on:
            return dataclasses.replace(fitted, converged=False, message='forced failure')
        return fitted


def run_search(covariance, n_obs, fitter=None, **config):
    fitter = fitter or ModelFitter()
    return NetworkSearch(fitter, SearchConfig(**config), verbose=False).run(covariance, n_obs)


# =============================================================================
# PRUNING
# =============================================================================

@pytest.mark.unit
class TestPrune:
    """Significance pruning."""

    def test_removes_only_true_zero(self, fitter, four_node_covariance):
        saturated = fitter.fit(four_node_covariance, N_OBS, GGMSpec.saturated(4))
        result = prune(saturated, fitter, alpha=0.01)

        assert result.model.edges == EdgeSet(4, FOUR_NODE_EDGES.keys())
        assert len(result.history) == 1
        assert result.history[0].edges == (FOUR_NODE_ZERO,)
        assert result.history[0].phase == 'prune'

    def test_result_is_subset(self, fitter, sampled_network):
        _, R = sampled_network
        saturated = fitter.fit(R, 300, GGMSpec.saturated(6))
        result = prune(saturated, fitter, alpha=0.01)
        assert result.model.edges.issubset(saturated.edges)

    def test_batch_mode(self, fitter, disconnected_network):
        S = disconnected_network.correlation
        saturated = fitter.fit(S, N_OBS, GGMSpec.saturated(5))
        result = prune(saturated, fitter, alpha=0.01, recursive=False)

        assert result.model.edges == disconnected_network.edges
        assert len(result.history[0].edges) == len(EdgeSet.full(5)) - len(disconnected_network.edges)

    def test_batch_and_recursive_agree_on_exact_data(self, fitter, disconnected_network):
        S = disconnected_network.correlation
        saturated = fitter.fit(S, N_OBS, GGMSpec.saturated(5))
        recursive = prune(saturated, fitter, alpha=0.01, recursive=True)
        batch = prune(saturated, fitter, alpha=0.01, recursive=False)
        assert recursive.model.edges == batch.model.edges

    def test_min_edges_floor(self, fitter, weak_network):
        saturated = fitter.fit(weak_network.correlation, 100, GGMSpec.saturated(4))
        result = prune(saturated, fitter, alpha=1e-12, min_edges=2)
        assert len(result.model.edges) == 2
        assert 'minimum' in result.stop_reason

    def test_min_edges_floor_batch(self, fitter, weak_network):
        saturated = fitter.fit(weak_network.correlation, 100, GGMSpec.saturated(4))
        result = prune(saturated, fitter, alpha=1e-12, recursive=False, min_edges=2)
        assert len(result.model.edges) == 2

    def test_non_convergent_refit_rejected(self, four_node_covariance):
        bad = EdgeSet.full(4).without_edge(FOUR_NODE_ZERO)
        fitter = CountingFitter(fail_on=[bad])
        saturated = fitter.fit(four_node_covariance, N_OBS, GGMSpec.saturated(4))

        result = prune(saturated, fitter, alpha=0.01)

        assert result.model is saturated
        assert result.history == []
        assert 'did not converge' in result.stop_reason

    def test_non_convergent_batch_logs_every_edge(self, disconnected_network, caplog):
        S = disconnected_network.correlation
        fitter = CountingFitter(fail_on=[disconnected_network.edges])
        saturated = fitter.fit(S, N_OBS, GGMSpec.saturated(5))

        with caplog.at_level(logging.WARNING, logger='waisnet.search'):
            result = prune(saturated, fitter, alpha=0.01, recursive=False,
                           search_log=SearchLogger('test', verbose=False))

        assert result.model is saturated
        removed = EdgeSet.full(5).without_edges(disconnected_network.edges).free_edges()
        for i, j in removed:
            label = f"{saturated.variables[i]}--{saturated.variables[j]}"
            assert label in caplog.text
            assert label in result.stop_reason

    def test_invalid_alpha(self, fitter, four_node_covariance):
        saturated = fitter.fit(four_node_covariance, N_OBS, GGMSpec.saturated(4))
        for alpha in (0, 1, -0.5, 1.5):
            with pytest.raises(ConfigurationError):
                prune(saturated, fitter, alpha=alpha)

    def test_tie_break_row_major(self, fitter):
        """Equal p-values: the first edge in row-major order is removed first."""
        # Independent variables: every partial correlation is exactly zero
        S = np.eye(4)
        saturated = fitter.fit(S, N_OBS, GGMSpec.saturated(4))
        result = prune(saturated, fitter, alpha=0.5)

        removed = [step.edges[0] for step in result.history]
        assert removed == EdgeSet.full(4).free_edges()


@pytest.mark.unit
class TestAdjustment:
    """Multiple-testing adjustment of edge p-values."""

    def test_none(self):
        p = np.array([0.01, 0.04, 0.5])
        np.testing.assert_array_equal(adjust_p_values(p, 'none'), p)

    def test_bonferroni(self):
        p = np.array([0.01, 0.04, 0.5])
        np.testing.assert_allclose(adjust_p_values(p, 'bonferroni'), [0.03, 0.12, 1.0])

    def test_missing_treated_as_one(self):
        adjusted = adjust_p_values(np.array([np.nan, 0.2]), 'none')
        assert adjusted[0] == 1.0

    def test_unknown_method(self):
        with pytest.raises(ConfigurationError):
            adjust_p_values(np.array([0.1]), 'sidak-ish')

    def test_adjustment_flags_more_edges(self, fitter, sampled_network):
        _, R = sampled_network
        saturated = fitter.fit(R, 300, GGMSpec.saturated(6))
        p = saturated.edge_table()['p'].to_numpy()
        for method in ('bonferroni', 'holm', 'fdr_bh'):
            adjusted = adjust_p_values(p, method)
            assert np.all(adjusted >= p - 1e-12)
            assert (adjusted > 0.05).sum() >= (p > 0.05).sum()


# =============================================================================
# STEPUP
# =============================================================================

@pytest.mark.unit
class TestStepup:
    """Greedy edge reinstatement."""

    def test_adds_back_strong_edge(self, fitter, four_node_network, four_node_covariance):
        start_edges = four_node_network.edges.without_edge((0, 1))
        start = fitter.fit(four_node_covariance, N_OBS, GGMSpec(start_edges))

        result = stepup(start, fitter, alpha=0.01)

        assert result.model.edges == four_node_network.edges
        assert [step.edges for step in result.history] == [((0, 1),)]
        assert result.history[0].statistic > 0
        assert result.history[0].p_value < 0.01

    def test_result_is_superset(self, fitter, sampled_network):
        _, R = sampled_network
        start = fitter.fit(R, 300, GGMSpec(EdgeSet.empty(6)))
        result = stepup(start, fitter, alpha=0.01)
        assert result.model.edges.issuperset(start.edges)

    def test_noop_on_true_structure(self, fitter, four_node_network, four_node_covariance):
        start = fitter.fit(four_node_covariance, N_OBS, GGMSpec(four_node_network.edges))
        result = stepup(start, fitter, alpha=0.01)
        assert result.model is start
        assert result.history == []

    def test_idempotent(self, fitter, sampled_network):
        _, R = sampled_network
        start = fitter.fit(R, 300, GGMSpec(EdgeSet.empty(6)))
        once = stepup(start, fitter, alpha=0.01)
        twice = stepup(once.model, fitter, alpha=0.01)
        assert twice.model.edges == once.model.edges
        assert twice.history == []

    def test_min_df_floor(self, fitter, four_node_network, four_node_covariance):
        start_edges = four_node_network.edges.without_edge((0, 1))
        start = fitter.fit(four_node_covariance, N_OBS, GGMSpec(start_edges))
        result = stepup(start, fitter, alpha=0.01, min_df=2)
        assert result.model is start
        assert 'degrees of freedom' in result.stop_reason

    def test_criterion_none_accepts_significant(self, fitter, four_node_network,
                                                four_node_covariance):
        start_edges = four_node_network.edges.without_edge((1, 2))
        start = fitter.fit(four_node_covariance, N_OBS, GGMSpec(start_edges))
        result = stepup(start, fitter, alpha=0.01, criterion='none')
        assert (1, 2) in result.model.edges

    def test_non_convergent_candidate_skipped(self, four_node_network, four_node_covariance):
        start_edges = four_node_network.edges.without_edge((0, 1))
        fitter = CountingFitter(fail_on=[four_node_network.edges, EdgeSet.full(4)])
        start = fitter.fit(four_node_covariance, N_OBS, GGMSpec(start_edges))

        result = stepup(start, fitter, alpha=0.01)

        assert (0, 1) not in result.model.edges
        assert result.model.edges.issuperset(start_edges)

    def test_parallel_matches_serial(self, fitter, sampled_network):
        _, R = sampled_network
        start = fitter.fit(R, 300, GGMSpec(EdgeSet.empty(6)))
        serial = stepup(start, fitter, alpha=0.01, n_workers=1)
        parallel = stepup(start, fitter, alpha=0.01, n_workers=4)
        assert serial.model.edges == parallel.model.edges
        assert [s.edges for s in serial.history] == [s.edges for s in parallel.history]

    def test_invalid_criterion(self, fitter, four_node_covariance):
        start = fitter.fit(four_node_covariance, N_OBS, GGMSpec(EdgeSet.empty(4)))
        with pytest.raises(ConfigurationError):
            stepup(start, fitter, alpha=0.01, criterion='hqic')


# =============================================================================
# FIT CACHE
# =============================================================================

@pytest.mark.unit
class TestFitCache:
    """Each edge set is estimated once."""

    def test_cache_hit(self, four_node_covariance):
        fitter = CountingFitter()
        cache = FitCache(fitter, four_node_covariance, N_OBS, ['a', 'b', 'c', 'd'])
        first = cache.fit(EdgeSet.full(4))
        second = cache.fit(EdgeSet.full(4))
        assert first is second
        assert len(fitter.calls) == 1
        assert cache.n_fits == 1

    def test_fit_many_preserves_order(self, four_node_covariance):
        cache = FitCache(ModelFitter(), four_node_covariance, N_OBS, ['a', 'b', 'c', 'd'])
        edge_sets = [EdgeSet.empty(4).with_edge(e) for e in EdgeSet.full(4).free_edges()]
        fits = cache.fit_many(edge_sets, n_workers=3)
        assert [f.edges for f in fits] == edge_sets


# =============================================================================
# FULL SEARCH
# =============================================================================

@pytest.mark.unit
class TestNetworkSearch:
    """Saturated -> prune -> stepup."""

    def test_four_node_scenario(self, four_node_covariance):
        result = run_search(four_node_covariance, N_OBS, alpha=0.01)

        assert result.saturated.edges.is_full()
        assert result.pruned.edges == EdgeSet(4, FOUR_NODE_EDGES.keys())
        assert result.final.edges == result.pruned.edges
        assert result.stepup_history == []
        assert result.adjacency[0, 3] == 0
        assert result.adjacency.sum() == 2 * len(FOUR_NODE_EDGES)

    def test_four_node_scenario_sampled(self, four_node_network):
        """Structure recovery from Wishart samples, n = 1000, ten seeds."""
        exact = 0
        for seed in range(10):
            R = sample_correlation(four_node_network.correlation, 1000,
                                   np.random.default_rng(seed))
            result = run_search(R, 1000, alpha=0.01)
            # z for a .2 partial correlation is about 6 here
            assert result.final.edges.issuperset(four_node_network.edges)
            exact += result.final.edges == four_node_network.edges
        # The true zero is kept with probability about alpha per sample
        assert exact >= 8

    def test_disconnected_variable(self, disconnected_network):
        result = run_search(disconnected_network.correlation, N_OBS, alpha=0.01)
        assert result.adjacency[4].sum() == 0
        assert result.adjacency[:, 4].sum() == 0
        assert result.final.edges.degree(4) == 0

    def test_alpha_to_zero_removes_all(self, weak_network):
        result = run_search(weak_network.correlation, 100, alpha=1e-12)
        assert len(result.final.edges) == 0
        assert result.adjacency.sum() == 0

    def test_alpha_to_one_removes_none(self, strong_network):
        result = run_search(strong_network.correlation, N_OBS, alpha=0.999)
        assert result.pruned.edges.is_full()
        assert result.final.edges.is_full()

    def test_subset_superset_relations(self, sampled_network):
        _, R = sampled_network
        result = run_search(R, 300, alpha=0.01)
        assert result.pruned.edges.issubset(result.saturated.edges)
        assert result.final.edges.issuperset(result.pruned.edges)

    def test_deterministic(self, sampled_network):
        _, R = sampled_network
        a = run_search(R, 300, alpha=0.01)
        b = run_search(R, 300, alpha=0.01)
        np.testing.assert_array_equal(a.adjacency, b.adjacency)
        assert a.history_frame().equals(b.history_frame())

    def test_no_edge_set_fitted_twice(self, sampled_network):
        _, R = sampled_network
        fitter = CountingFitter()
        result = run_search(R, 300, fitter=fitter, alpha=0.01)
        assert len(fitter.calls) == len(set(fitter.calls))
        assert result.n_fits == len(fitter.calls)

    def test_adjacency_matches_search_result(self, sampled_network):
        _, R = sampled_network
        result = run_search(R, 300, alpha=0.01)
        np.testing.assert_array_equal(extract_adjacency(result.final), result.adjacency)
        assert np.array_equal(result.adjacency, result.adjacency.T)
        assert np.all(np.diag(result.adjacency) == 0)

    def test_adjacency_keeps_free_edges_estimated_at_zero(self, fitter):
        # Independent variables: every free partial correlation is estimated as 0
        saturated = fitter.fit(np.eye(4), N_OBS, GGMSpec.saturated(4))
        assert np.all(saturated.omega == 0)
        adjacency = extract_adjacency(saturated)
        np.testing.assert_array_equal(adjacency, saturated.edges.to_adjacency())
        assert adjacency.sum() == 12

    def test_correlation_matrix_input(self, sampled_network):
        _, R = sampled_network
        variables = ('A', 'B', 'C', 'D', 'E', 'F')
        sample = CorrelationMatrix(R, variables, 300, name='demo')
        result = NetworkSearch(ModelFitter(), SearchConfig(alpha=0.01), verbose=False).run(sample)

        assert result.variables == variables
        assert list(result.adjacency_frame().index) == list(variables)
        # Fitted to the ML covariance (n - 1) / n * R
        np.testing.assert_allclose(result.saturated.sample_covariance, 299 / 300 * R)

    def test_saturated_failure_raises(self, four_node_covariance):
        fitter = CountingFitter(fail_on=[EdgeSet.full(4)])
        with pytest.raises(EstimationError):
            run_search(four_node_covariance, N_OBS, fitter=fitter, alpha=0.01)

    def test_invalid_input_raises_before_fitting(self):
        fitter = CountingFitter()
        S = np.array([[1.0, 0.5], [0.4, 1.0]])
        with pytest.raises(ConfigurationError):
            run_search(S, N_OBS, fitter=fitter, alpha=0.01)
        assert fitter.calls == []

    def test_invalid_config_raises(self, four_node_covariance):
        with pytest.raises(ConfigurationError):
            run_search(four_node_covariance, N_OBS, alpha=0.01, criterion='hqic')

    def test_summary_and_history(self, four_node_covariance):
        result = run_search(four_node_covariance, N_OBS, alpha=0.01)
        assert 'NETWORK SEARCH' in result.summary()
        history = result.history_frame()
        assert list(history['phase']) == ['prune']
        assert history.iloc[0]['edges'] == 'V1--V4'
