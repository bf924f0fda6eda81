"""
Correlation Matrix Input
========================

Immutable container for one sample: a symmetric positive-definite
correlation (or covariance) matrix over a fixed variable ordering plus
its sample size.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from ..config import ConfigurationError
from ..utils.data_qa import check_covariance, correlation_from_frame


@dataclass(frozen=True, eq=False)
class CorrelationMatrix:
    """
    One sample's correlation matrix.

    Example:
        >>> R = CorrelationMatrix.from_csv("data/wais_us.csv", n_obs=1800)
        >>> S = R.ml_covariance()   # (n - 1) / n * R
    """
    values: np.ndarray
    variables: Tuple[str, ...]
    n_obs: int
    name: str = 'sample'

    def __post_init__(self):
        values = np.array(self.values, dtype=float)
        variables = tuple(str(v) for v in self.variables)
        check_covariance(values, self.n_obs, variables)
        values = (values + values.T) / 2
        values.setflags(write=False)
        object.__setattr__(self, 'values', values)
        object.__setattr__(self, 'variables', variables)
        object.__setattr__(self, 'n_obs', int(self.n_obs))

    @property
    def n_variables(self) -> int:
        return len(self.variables)

    def ml_covariance(self) -> np.ndarray:
        """Covariance rescaled to the ML (divide-by-n) convention."""
        return (self.n_obs - 1) / self.n_obs * np.array(self.values)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(np.array(self.values), index=list(self.variables),
                            columns=list(self.variables))

    def reorder(self, variables: Sequence[str]) -> 'CorrelationMatrix':
        """Return the matrix with rows/columns in the given order."""
        missing = [v for v in variables if v not in self.variables]
        if missing or len(variables) != self.n_variables:
            raise ConfigurationError(
                f"Cannot reorder {list(self.variables)} to {list(variables)}"
            )
        idx = [self.variables.index(v) for v in variables]
        return CorrelationMatrix(np.array(self.values)[np.ix_(idx, idx)],
                                 tuple(variables), self.n_obs, self.name)

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame, n_obs: int,
                       name: str = 'sample') -> 'CorrelationMatrix':
        return cls(correlation_from_frame(df), tuple(df.columns.astype(str)), n_obs, name)

    @classmethod
    def from_csv(cls, path: Union[str, Path], n_obs: int,
                 name: Optional[str] = None) -> 'CorrelationMatrix':
        """
        Load a labelled square matrix written with the variable names as
        both header row and index column.
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Correlation matrix not found: {path}")
        df = pd.read_csv(path, index_col=0)
        return cls.from_dataframe(df, n_obs, name or path.stem)
