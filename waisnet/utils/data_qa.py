"""
Data Quality Assurance for Covariance-Based Estimation
======================================================

Validates correlation/covariance input before any model is fitted:
1. Square, finite, symmetric matrix
2. Positive definite (required for the ML discrepancy function)
3. Sample size larger than the number of variables
4. Variable labels consistent with the matrix dimensions

Also flags softer issues as warnings (unit diagonal expected for a
correlation matrix, near-singularity, very high correlations).

Author: Network Psychometrics Team
"""

from typing import Any, Dict, List, Optional, Sequence

import numpy as np
import pandas as pd

from ..config import ConfigurationError

SYMMETRY_TOL = 1e-8
CONDITION_WARNING = 1e6
HIGH_CORRELATION = 0.95


def _matrix_errors(matrix: np.ndarray,
                   n_obs: Optional[int],
                   variables: Optional[Sequence[str]]) -> List[str]:
    errors = []

    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        return [f"Matrix must be square, got shape {matrix.shape}"]

    p = matrix.shape[0]
    if p < 2:
        errors.append(f"Need at least 2 variables, got {p}")

    if not np.all(np.isfinite(matrix)):
        return errors + ["Matrix contains non-finite values"]

    if not np.allclose(matrix, matrix.T, atol=SYMMETRY_TOL, rtol=0):
        max_asym = float(np.max(np.abs(matrix - matrix.T)))
        errors.append(f"Matrix is not symmetric (max |S - S'| = {max_asym:.2e})")
    else:
        min_eig = float(np.linalg.eigvalsh((matrix + matrix.T) / 2).min())
        if min_eig <= 0:
            errors.append(f"Matrix is not positive definite (min eigenvalue = {min_eig:.3e})")

    if variables is not None and len(variables) != p:
        errors.append(f"{len(variables)} variable names for a {p}x{p} matrix")
    if variables is not None and len(set(variables)) != len(variables):
        errors.append("Variable names are not unique")

    if n_obs is not None:
        if isinstance(n_obs, bool) or not isinstance(n_obs, (int, np.integer)) or n_obs <= 0:
            errors.append(f"Sample size must be a positive integer, got {n_obs!r}")
        elif n_obs <= p:
            errors.append(f"Sample size n = {n_obs} must exceed the number of variables p = {p}")

    return errors


def check_covariance(matrix: np.ndarray,
                     n_obs: Optional[int] = None,
                     variables: Optional[Sequence[str]] = None) -> None:
    """
    Fail fast on precondition violations.

    Raises:
        ConfigurationError: Listing every violated precondition
    """
    errors = _matrix_errors(np.asarray(matrix, dtype=float), n_obs, variables)
    if errors:
        raise ConfigurationError(
            "Invalid covariance input:\n  - " + "\n  - ".join(errors)
        )


def validate_correlation_input(matrix: np.ndarray,
                               n_obs: int,
                               variables: Optional[Sequence[str]] = None,
                               verbose: bool = True,
                               fail_on_error: bool = False) -> Dict[str, Any]:
    """
    Validate a correlation matrix and report issues found.

    Args:
        matrix: Correlation or covariance matrix
        n_obs: Sample size
        variables: Optional variable labels
        verbose: Print a report
        fail_on_error: If True, raise ConfigurationError on ERROR-level issues

    Returns:
        Dict with 'valid' (bool), 'errors', 'warnings' and basic statistics
    """
    matrix = np.asarray(matrix, dtype=float)
    errors = _matrix_errors(matrix, n_obs, variables)
    warnings_list = []
    stats: Dict[str, Any] = {'n_variables': matrix.shape[0] if matrix.ndim == 2 else None,
                             'n_obs': n_obs}

    if not errors:
        p = matrix.shape[0]
        labels = list(variables) if variables is not None else [f"V{i + 1}" for i in range(p)]

        diag = np.diag(matrix)
        if not np.allclose(diag, 1.0, atol=1e-6):
            warnings_list.append(
                f"WARNING: Diagonal not unity (range {diag.min():.3f}-{diag.max():.3f}); "
                "treating input as a covariance matrix"
            )

        eigvals = np.linalg.eigvalsh(matrix)
        condition = float(eigvals.max() / eigvals.min())
        stats['condition_number'] = condition
        stats['min_eigenvalue'] = float(eigvals.min())
        if condition > CONDITION_WARNING:
            warnings_list.append(
                f"WARNING: Near-singular matrix (condition number {condition:.2e})"
            )

        scale = np.sqrt(diag)
        corr = matrix / np.outer(scale, scale)
        for i in range(p):
            for j in range(i + 1, p):
                if abs(corr[i, j]) > HIGH_CORRELATION:
                    warnings_list.append(
                        f"WARNING: Very high correlation {labels[i]}-{labels[j]}: "
                        f"{corr[i, j]:.3f}"
                    )

    valid = len(errors) == 0

    if verbose:
        print("=" * 60)
        print("INPUT QUALITY CHECK")
        print("=" * 60)
        print(f"\nVariables: {stats['n_variables']}")
        print(f"Sample size: {n_obs}")
        if 'condition_number' in stats:
            print(f"Condition number: {stats['condition_number']:.2f}")
        if valid:
            print("\n  Status: VALID - Matrix can be used for estimation")
        else:
            print(f"\n  Status: INVALID - {len(errors)} error(s) found")
            for err in errors:
                print(f"    - {err}")
        if warnings_list:
            print(f"\n  Warnings: {len(warnings_list)}")
            for warn in warnings_list:
                print(f"    - {warn}")
        print("=" * 60)

    if fail_on_error and not valid:
        raise ConfigurationError(f"Input validation failed with {len(errors)} error(s)")

    return {
        "valid": valid,
        "errors": errors,
        "warnings": warnings_list,
        **stats,
    }


def correlation_from_frame(df: pd.DataFrame) -> np.ndarray:
    """Read a labelled matrix out of a DataFrame, checking row/column labels."""
    if list(df.index.astype(str)) != list(df.columns.astype(str)):
        raise ConfigurationError(
            "Row and column labels differ; expected a labelled square matrix"
        )
    return df.to_numpy(dtype=float)
