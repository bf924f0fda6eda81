"""
Tests for Input Quality Checks
==============================
"""

import pytest
import numpy as np
import pandas as pd

from waisnet.config import ConfigurationError
from waisnet.models.correlation import CorrelationMatrix
from waisnet.utils.data_qa import check_covariance, validate_correlation_input

VALID = np.array([[1.0, 0.5, 0.3],
                  [0.5, 1.0, 0.4],
                  [0.3, 0.4, 1.0]])


@pytest.mark.unit
class TestCheckCovariance:
    """Fail-fast preconditions."""

    def test_valid_passes(self):
        check_covariance(VALID, 100, ['a', 'b', 'c'])

    def test_non_square(self):
        with pytest.raises(ConfigurationError, match="square"):
            check_covariance(np.ones((2, 3)))

    def test_asymmetric(self):
        bad = VALID.copy()
        bad[0, 1] = 0.1
        with pytest.raises(ConfigurationError, match="symmetric"):
            check_covariance(bad)

    def test_not_positive_definite(self):
        bad = np.array([[1.0, 0.9, -0.9],
                        [0.9, 1.0, 0.9],
                        [-0.9, 0.9, 1.0]])
        with pytest.raises(ConfigurationError, match="positive definite"):
            check_covariance(bad)

    def test_non_finite(self):
        bad = VALID.copy()
        bad[2, 2] = np.nan
        with pytest.raises(ConfigurationError, match="non-finite"):
            check_covariance(bad)

    @pytest.mark.parametrize("n_obs", [0, -5, 3, 2.5, True])
    def test_invalid_sample_size(self, n_obs):
        with pytest.raises(ConfigurationError, match="Sample size"):
            check_covariance(VALID, n_obs)

    def test_variable_count_mismatch(self):
        with pytest.raises(ConfigurationError, match="variable names"):
            check_covariance(VALID, 100, ['a', 'b'])

    def test_duplicate_variables(self):
        with pytest.raises(ConfigurationError, match="unique"):
            check_covariance(VALID, 100, ['a', 'a', 'b'])


@pytest.mark.unit
class TestValidationReport:
    """Report-style validation."""

    def test_valid_report(self):
        report = validate_correlation_input(VALID, 100, verbose=False)
        assert report['valid']
        assert report['errors'] == []
        assert report['n_variables'] == 3
        assert report['condition_number'] > 1

    def test_covariance_warning(self):
        report = validate_correlation_input(VALID * 4, 100, verbose=False)
        assert report['valid']
        assert any('Diagonal not unity' in w for w in report['warnings'])

    def test_high_correlation_warning(self):
        R = np.array([[1.0, 0.97], [0.97, 1.0]])
        report = validate_correlation_input(R, 100, ['x', 'y'], verbose=False)
        assert any('x-y' in w for w in report['warnings'])

    def test_fail_on_error(self):
        with pytest.raises(ConfigurationError):
            validate_correlation_input(VALID, 2, verbose=False, fail_on_error=True)

    def test_invalid_without_raising(self, capsys):
        report = validate_correlation_input(VALID, 2, verbose=True)
        assert not report['valid']
        assert 'INVALID' in capsys.readouterr().out


@pytest.mark.unit
class TestCorrelationMatrix:
    """CorrelationMatrix container."""

    def test_ml_covariance(self):
        R = CorrelationMatrix(VALID, ('a', 'b', 'c'), 100)
        np.testing.assert_allclose(R.ml_covariance(), 0.99 * VALID)

    def test_read_only(self):
        R = CorrelationMatrix(VALID, ('a', 'b', 'c'), 100)
        with pytest.raises(ValueError):
            R.values[0, 1] = 0.0

    def test_invalid_rejected(self):
        with pytest.raises(ConfigurationError):
            CorrelationMatrix(VALID, ('a', 'b', 'c'), 3)

    def test_reorder(self):
        R = CorrelationMatrix(VALID, ('a', 'b', 'c'), 100)
        reordered = R.reorder(['c', 'a', 'b'])
        assert reordered.variables == ('c', 'a', 'b')
        assert reordered.values[0, 1] == pytest.approx(0.3)

    def test_reorder_unknown_variable(self):
        R = CorrelationMatrix(VALID, ('a', 'b', 'c'), 100)
        with pytest.raises(ConfigurationError):
            R.reorder(['a', 'b', 'z'])

    def test_csv_roundtrip(self, tmp_path):
        frame = pd.DataFrame(VALID, index=['a', 'b', 'c'], columns=['a', 'b', 'c'])
        path = tmp_path / 'sample.csv'
        frame.to_csv(path)

        R = CorrelationMatrix.from_csv(path, n_obs=100)
        assert R.name == 'sample'
        assert R.variables == ('a', 'b', 'c')
        np.testing.assert_allclose(R.values, VALID)
        pd.testing.assert_frame_equal(R.to_frame(), frame)

    def test_missing_csv(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            CorrelationMatrix.from_csv(tmp_path / 'missing.csv', n_obs=100)

    def test_mismatched_labels(self):
        frame = pd.DataFrame(VALID, index=['a', 'b', 'c'], columns=['x', 'y', 'z'])
        with pytest.raises(ConfigurationError, match="labels"):
            CorrelationMatrix.from_dataframe(frame, 100)
