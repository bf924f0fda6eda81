"""
Tests for Model Comparison
==========================
"""

import pytest
import numpy as np

from waisnet.estimation.model_comparison import (
    ModelComparisonFramework,
    compare,
    interpret_aic_difference,
    lr_test,
)
from waisnet.models.edges import EdgeSet
from waisnet.models.ggm import GGMSpec
from waisnet.models.lvm import LVMSpec

N_OBS = 500


@pytest.fixture
def fitted_models(fitter, four_node_network, four_node_covariance):
    S = four_node_covariance
    return {
        'saturated': fitter.fit(S, N_OBS, GGMSpec.saturated(4, name='saturated')),
        'network': fitter.fit(S, N_OBS, GGMSpec(four_node_network.edges, name='network')),
        'chain': fitter.fit(S, N_OBS, GGMSpec(EdgeSet(4, [(0, 1), (1, 2), (2, 3)]),
                                              name='chain')),
        'factor': fitter.fit(S, N_OBS, LVMSpec(np.ones((4, 1)), ('a', 'b', 'c', 'd'),
                                               ('F',), name='factor')),
    }


@pytest.mark.unit
class TestCompare:
    """compare() table."""

    def test_sorted_by_df(self, fitted_models):
        table = compare(**fitted_models)
        assert list(table['DF']) == sorted(table['DF'])
        assert table.iloc[0]['model'] == 'saturated'
        assert list(table.columns) == ['model', 'DF', 'AIC', 'BIC', 'RMSEA', 'Chisq',
                                       'Chisq_diff', 'DF_diff', 'p_value']

    def test_difference_tests(self, fitted_models):
        table = compare(saturated=fitted_models['saturated'], chain=fitted_models['chain'])

        assert np.isnan(table.iloc[0]['Chisq_diff'])
        assert np.isnan(table.iloc[0]['p_value'])
        row = table.iloc[1]
        assert row['DF_diff'] == 3
        assert row['Chisq_diff'] == pytest.approx(fitted_models['chain'].chi_square, rel=1e-6)
        assert row['p_value'] < 0.001

    def test_true_network_not_rejected(self, fitted_models):
        table = compare(saturated=fitted_models['saturated'],
                        network=fitted_models['network'])
        assert table.iloc[1]['p_value'] > 0.99

    def test_requires_models(self):
        with pytest.raises(ValueError):
            compare()


@pytest.mark.unit
class TestLRTest:
    """Likelihood ratio tests."""

    def test_nested(self, fitted_models):
        result = lr_test(fitted_models['chain'], fitted_models['network'])
        assert result.df == 2
        assert result.lr_statistic > 0
        assert result.significant_01

    def test_invalid_direction(self, fitted_models):
        with pytest.raises(ValueError):
            lr_test(fitted_models['saturated'], fitted_models['chain'])


@pytest.mark.unit
class TestFramework:
    """ModelComparisonFramework."""

    def test_information_criteria_table(self, fitted_models):
        framework = ModelComparisonFramework(verbose=False)
        for fitted in fitted_models.values():
            framework.add_model(fitted)

        table = framework.information_criteria_table()
        assert table['ΔAIC'].min() == 0.0
        assert table['AIC_weight'].sum() == pytest.approx(1.0)
        assert list(table['Rank_AIC']) == list(range(1, len(fitted_models) + 1))

    def test_best_model_is_true_network(self, fitted_models):
        framework = ModelComparisonFramework(verbose=False)
        for fitted in fitted_models.values():
            framework.add_model(fitted)
        assert framework.best_model('BIC') == 'network'

    def test_lr_tests_against_saturated(self, fitted_models):
        framework = ModelComparisonFramework(verbose=False)
        for fitted in fitted_models.values():
            framework.add_model(fitted)
        results = framework.lr_tests_against('saturated')
        assert {r.restricted_model for r in results} == {'network', 'chain', 'factor'}

    def test_fit_table(self, fitted_models):
        framework = ModelComparisonFramework(verbose=False)
        for fitted in fitted_models.values():
            framework.add_model(fitted)
        table = framework.fit_table()
        assert set(table['Model']) == set(fitted_models)
        assert table.set_index('Model').loc['network', 'converged']

    def test_report_prints(self, fitted_models, capsys):
        framework = ModelComparisonFramework(verbose=True)
        for fitted in fitted_models.values():
            framework.add_model(fitted)
        framework.print_report(reference='saturated')
        out = capsys.readouterr().out
        assert 'MODEL COMPARISON' in out
        assert 'Best model by BIC: network' in out

    def test_latex_export(self, fitted_models, tmp_path):
        framework = ModelComparisonFramework(verbose=False)
        for fitted in fitted_models.values():
            framework.add_model(fitted)
        files = framework.to_latex(tmp_path)
        assert files['ic_table'].exists()
        assert files['fit_table'].exists()
        assert r'\begin{tabular}' in files['ic_table'].read_text()

    def test_interpret_aic_difference(self):
        assert interpret_aic_difference(0.5) == "Substantial support"
        assert interpret_aic_difference(12) == "Essentially no support"
