"""
Model Comparison Framework
==========================

Compares fitted factor and network models on the same sample.

Features:
- compare(): models ordered by degrees of freedom with χ² difference
  tests between neighbouring rows
- Likelihood Ratio (LR) tests for nested models
- Information criteria (AIC, BIC, EBIC) with delta values and Akaike weights
- Fit index table (CFI, TLI, RMSEA)
- LaTeX export

References:
- Burnham, K.P. & Anderson, D.R. (2002). Model Selection and Multimodel Inference
- Epskamp, S. (2020). psychonetrics: Structural Equation Modeling and
  Confirmatory Network Analysis

Author: Network Psychometrics Team
"""

import warnings
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional

import numpy as np
import pandas as pd
from scipy import stats

from ..utils.logging_config import ComparisonLogger
from .fit_measures import compute_fit_measures
from .results import FittedModel


@dataclass
class LRTestResult:
    """Result from a likelihood ratio test."""
    restricted_model: str
    unrestricted_model: str
    lr_statistic: float
    df: int
    p_value: float
    significant_05: bool
    significant_01: bool

    def __str__(self) -> str:
        sig = "***" if self.significant_01 else ("**" if self.significant_05 else "")
        return (f"LR({self.restricted_model} vs {self.unrestricted_model}): "
                f"χ²={self.lr_statistic:.2f}, df={self.df}, p={self.p_value:.4f}{sig}")


def lr_test(restricted: FittedModel, unrestricted: FittedModel) -> LRTestResult:
    """
    Likelihood ratio test between nested models.

    LR = 2 * (LL_unrestricted - LL_restricted) ~ χ²(df)
    df = K_unrestricted - K_restricted

    Raises:
        ValueError: If the unrestricted model does not have more parameters
    """
    df = unrestricted.n_parameters - restricted.n_parameters
    if df <= 0:
        raise ValueError(
            f"Invalid df={df}. '{unrestricted.name}' needs more parameters "
            f"than '{restricted.name}'."
        )
    if restricted.n_obs != unrestricted.n_obs:
        warnings.warn("LR test between models fitted to different sample sizes")

    lr_stat = max(2 * (unrestricted.log_likelihood - restricted.log_likelihood), 0.0)
    p_value = float(stats.chi2.sf(lr_stat, df))

    return LRTestResult(
        restricted_model=restricted.name,
        unrestricted_model=unrestricted.name,
        lr_statistic=lr_stat,
        df=df,
        p_value=p_value,
        significant_05=p_value < 0.05,
        significant_01=p_value < 0.01
    )


def compare(**models: FittedModel) -> pd.DataFrame:
    """
    Tabulate models in order of increasing df with χ² difference tests
    between consecutive rows.

    Example:
        >>> compare(saturated=sat, network=net, measurement=cfa)

    Returns:
        DataFrame with columns model, DF, AIC, BIC, RMSEA, Chisq,
        Chisq_diff, DF_diff, p_value
    """
    if not models:
        raise ValueError("compare() needs at least one model")

    rows = []
    for name, fitted in models.items():
        measures = compute_fit_measures(fitted)
        rows.append({
            'model': name,
            'DF': fitted.df,
            'AIC': fitted.aic,
            'BIC': fitted.bic,
            'RMSEA': measures.rmsea,
            'Chisq': fitted.chi_square,
        })

    df = pd.DataFrame(rows).sort_values('DF', kind='mergesort').reset_index(drop=True)

    chisq_diff = df['Chisq'].diff().abs()
    df_diff = df['DF'].diff().abs()
    p_values = [np.nan]
    for delta_chisq, delta_df in zip(chisq_diff.iloc[1:], df_diff.iloc[1:]):
        p_values.append(float(stats.chi2.sf(delta_chisq, delta_df)) if delta_df > 0 else np.nan)

    df['Chisq_diff'] = chisq_diff
    df['DF_diff'] = df_diff
    df['p_value'] = p_values
    return df


class ModelComparisonFramework:
    """
    Model comparison across factor and network models.

    Example:
        >>> framework = ModelComparisonFramework()
        >>> framework.add_model(saturated)
        >>> framework.add_model(network)
        >>> framework.add_model(measurement)
        >>> framework.print_report(reference='saturated')
    """

    def __init__(self, verbose: bool = True):
        self.models: Dict[str, FittedModel] = {}
        self._log = ComparisonLogger(verbose=verbose)

    def add_model(self, fitted: FittedModel, name: Optional[str] = None):
        """Add a fitted model under its own name or an explicit one."""
        self.models[name or fitted.name] = fitted

    def lr_test(self, restricted: str, unrestricted: str) -> LRTestResult:
        return lr_test(self.models[restricted], self.models[unrestricted])

    def lr_tests_against(self, reference: str) -> List[LRTestResult]:
        """LR tests of every more restricted model against a reference."""
        ref = self.models[reference]
        results = []
        for name, fitted in self.models.items():
            if name != reference and fitted.n_parameters < ref.n_parameters:
                results.append(lr_test(fitted, ref))
        return results

    def comparison_table(self) -> pd.DataFrame:
        return compare(**self.models)

    def fit_table(self) -> pd.DataFrame:
        """Absolute and incremental fit indices per model."""
        rows = []
        for name, fitted in self.models.items():
            m = compute_fit_measures(fitted)
            rows.append({
                'Model': name,
                'npar': m.npar,
                'Chisq': m.chisq,
                'DF': m.df,
                'p': m.pvalue,
                'CFI': m.cfi,
                'TLI': m.tli,
                'NFI': m.nfi,
                'RMSEA': m.rmsea,
                'RMSEA_lower': m.rmsea_lower,
                'RMSEA_upper': m.rmsea_upper,
                'converged': fitted.converged,
            })
        return pd.DataFrame(rows)

    def information_criteria_table(self) -> pd.DataFrame:
        """
        Information criteria with delta values and Akaike weights,
        sorted by AIC.
        """
        rows = []
        for name, fitted in self.models.items():
            rows.append({
                'Model': name,
                'LL': fitted.log_likelihood,
                'K': fitted.n_parameters,
                'AIC': fitted.aic,
                'BIC': fitted.bic,
                'EBIC': fitted.ebic(),
            })

        df = pd.DataFrame(rows)

        for ic in ['AIC', 'BIC', 'EBIC']:
            df[f'Δ{ic}'] = df[ic] - df[ic].min()

        weights = np.exp(-0.5 * df['ΔAIC'].values)
        df['AIC_weight'] = weights / weights.sum()

        df = df.sort_values('AIC', kind='mergesort')
        df['Rank_AIC'] = range(1, len(df) + 1)
        df['Rank_BIC'] = df['BIC'].rank(method='first').astype(int)
        return df.reset_index(drop=True)

    def best_model(self, criterion: str = 'BIC') -> str:
        """Name of the model with the lowest AIC, BIC or EBIC."""
        criterion = criterion.upper()
        if criterion not in ('AIC', 'BIC', 'EBIC'):
            raise ValueError(f"Unknown criterion: {criterion}")
        table = self.information_criteria_table()
        return table.sort_values(criterion, kind='mergesort').iloc[0]['Model']

    def print_report(self, reference: Optional[str] = None):
        """Print formatted comparison report."""
        self._log.header()

        for name, fitted in self.models.items():
            m = compute_fit_measures(fitted)
            self._log.model_result(name, m.chisq, m.df, m.cfi, m.rmsea, m.aic, m.bic,
                                   fitted.converged)

        if reference is not None:
            for result in self.lr_tests_against(reference):
                self._log.lr_test(result.restricted_model, result.unrestricted_model,
                                  result.lr_statistic, result.df, result.p_value)

        if self._log.verbose:
            print("\n" + "-" * 80)
            print("COMPARISON (ordered by df)")
            print("-" * 80)
            print(self.comparison_table().to_string(index=False,
                                                    float_format=lambda x: f'{x:.2f}'))

        self._log.best_model(self.best_model('AIC'), 'AIC')
        self._log.best_model(self.best_model('BIC'), 'BIC')

    def to_latex(self, output_dir: Path) -> Dict[str, Path]:
        """
        Generate LaTeX tables for model comparison.

        Args:
            output_dir: Directory for output files

        Returns:
            Dict mapping table name to file path
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)

        output_files = {}

        ic_path = output_dir / "model_comparison_ic.tex"
        self._latex_ic_table(ic_path)
        output_files['ic_table'] = ic_path

        fit_path = output_dir / "model_fit.tex"
        self._latex_fit_table(fit_path)
        output_files['fit_table'] = fit_path

        return output_files

    def _latex_ic_table(self, path: Path):
        df = self.information_criteria_table()

        lines = [
            r"\begin{table}[htbp]",
            r"\centering",
            r"\caption{Model Comparison: Information Criteria}",
            r"\label{tab:model_comparison}",
            r"\begin{tabular}{lrrrrrr}",
            r"\toprule",
            r"Model & LL & $K$ & AIC & $\Delta$AIC & BIC & $\Delta$BIC \\",
            r"\midrule",
        ]

        for _, row in df.iterrows():
            aic_bold = row['ΔAIC'] < 0.01
            bic_bold = row['ΔBIC'] < 0.01

            model_name = row['Model'].replace('_', r'\_')
            aic_str = f"\\textbf{{{row['AIC']:.1f}}}" if aic_bold else f"{row['AIC']:.1f}"
            bic_str = f"\\textbf{{{row['BIC']:.1f}}}" if bic_bold else f"{row['BIC']:.1f}"

            lines.append(
                f"{model_name} & {row['LL']:.1f} & {row['K']:.0f} & "
                f"{aic_str} & {row['ΔAIC']:.1f} & "
                f"{bic_str} & {row['ΔBIC']:.1f} \\\\"
            )

        lines.extend([
            r"\bottomrule",
            r"\end{tabular}",
            r"\begin{tablenotes}",
            r"\small",
            r"\item Note: LL = Log-likelihood; $K$ = number of parameters;",
            r"$\Delta$ = difference from minimum.",
            r"\item Bold indicates best model by that criterion.",
            r"\end{tablenotes}",
            r"\end{table}",
        ])

        with open(path, 'w') as f:
            f.write('\n'.join(lines))

    def _latex_fit_table(self, path: Path):
        df = self.fit_table()

        lines = [
            r"\begin{table}[htbp]",
            r"\centering",
            r"\caption{Model Fit}",
            r"\label{tab:model_fit}",
            r"\begin{tabular}{lrrrrr}",
            r"\toprule",
            r"Model & $\chi^2$ & df & CFI & TLI & RMSEA [90\% CI] \\",
            r"\midrule",
        ]

        for _, row in df.iterrows():
            model_name = row['Model'].replace('_', r'\_')
            lines.append(
                f"{model_name} & {row['Chisq']:.2f} & {row['DF']:.0f} & "
                f"{row['CFI']:.3f} & {row['TLI']:.3f} & "
                f"{row['RMSEA']:.3f} [{row['RMSEA_lower']:.3f}, {row['RMSEA_upper']:.3f}] \\\\"
            )

        lines.extend([
            r"\bottomrule",
            r"\end{tabular}",
            r"\end{table}",
        ])

        with open(path, 'w') as f:
            f.write('\n'.join(lines))


def interpret_aic_difference(delta_aic: float) -> str:
    """
    Interpret AIC difference using Burnham & Anderson (2002) guidelines.
    """
    if delta_aic < 2:
        return "Substantial support"
    elif delta_aic < 4:
        return "Considerable support"
    elif delta_aic < 7:
        return "Some support"
    elif delta_aic < 10:
        return "Little support"
    else:
        return "Essentially no support"
