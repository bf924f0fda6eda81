"""
End-to-End Tests for the WAIS-IV Analysis
=========================================

Runs the full workflow on simulated WAIS-like samples.
"""

import pytest
import numpy as np

from waisnet.analysis import run_analysis
from waisnet.config import AnalysisConfig, ConfigurationError
from waisnet.simulation.ggm_simulator import simulate_wais_samples


@pytest.fixture(scope="module")
def wais_samples():
    return simulate_wais_samples(seed=11)


@pytest.fixture(scope="module")
def analysis(wais_samples, tmp_path_factory):
    output_dir = tmp_path_factory.mktemp('wais')
    us, hungary = wais_samples
    return run_analysis(us, hungary, AnalysisConfig(), output_dir=output_dir,
                        verbose=False), output_dir


@pytest.mark.slow
class TestRunAnalysis:
    """Full network extraction and confirmatory comparison."""

    def test_network_extracted(self, analysis):
        result, _ = analysis
        adjacency = result.search.adjacency
        assert adjacency.shape == (15, 15)
        assert np.array_equal(adjacency, adjacency.T)
        assert np.all(np.diag(adjacency) == 0)
        assert 0 < adjacency.sum() // 2 < 105
        assert result.search.final.converged

    def test_replication_models(self, analysis):
        result, _ = analysis
        assert list(result.replication_models) == [
            'saturated', 'measurement', 'bifactor', 'gmodel', 'network']
        assert result.replication_models['saturated'].df == 0
        assert result.replication_models['measurement'].df == 82
        assert result.replication_models['network'].edges == result.search.edges

    def test_replication_models_converge(self, analysis):
        result, _ = analysis
        for name in ('saturated', 'measurement', 'gmodel', 'network'):
            assert result.replication_models[name].converged, name
        assert result.replication_models['gmodel'].df == 84

    def test_measurement_model_fits_its_own_data(self, analysis):
        result, _ = analysis
        measures = result.fit_measures
        assert measures.loc['measurement', 'cfi'] > 0.99
        assert measures.loc['measurement', 'rmsea'] < 0.03

    def test_comparisons(self, analysis):
        result, _ = analysis
        assert set(result.comparisons) == {
            'US_network', 'Hungary_measurement', 'Hungary_bifactor',
            'Hungary_gmodel', 'Hungary_network'}
        table = result.comparisons['Hungary_measurement']
        assert list(table['model']) == ['saturated', 'measurement']
        assert table['DF_diff'].iloc[1] == 82

    def test_output_files(self, analysis):
        _, output_dir = analysis
        for name in ['adjacency.csv', 'search_history.csv', 'omega_reference.csv',
                     'fit_measures.csv', 'compare_US_network.csv',
                     'compare_Hungary_network.csv']:
            assert (output_dir / name).exists()
        assert (output_dir / 'latex' / 'model_fit.tex').exists()


@pytest.mark.unit
class TestRunAnalysisInput:
    """Input checks before any model is fitted."""

    def test_mismatched_variables(self, wais_samples):
        us, hungary = wais_samples
        renamed = type(hungary)(hungary.values, tuple(v.lower() for v in hungary.variables),
                                hungary.n_obs, hungary.name)
        with pytest.raises(ConfigurationError):
            run_analysis(us, renamed, verbose=False)
