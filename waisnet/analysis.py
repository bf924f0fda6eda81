"""
WAIS-IV Factor vs. Network Analysis
===================================

Full workflow:

1. Network search in the reference (US) sample:
   saturated GGM -> prune (alpha = .01, recursive) -> stepup -> skeleton
2. Fit in the replication (Hungarian) sample:
   saturated, measurement, bifactor, second-order g and network models
3. Fit measures and comparisons of every model against the saturated model

Usage:
    from waisnet.analysis import run_analysis

    results = run_analysis(us, hungary, output_dir="results")

Author: Network Psychometrics Team
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Union

import pandas as pd

from .config import AnalysisConfig
from .estimation.fit_measures import fit_measures_table
from .estimation.fitter import ModelFitter
from .estimation.model_comparison import ModelComparisonFramework, compare
from .estimation.network_search import EstimationError, NetworkSearch, SearchResult
from .estimation.results import FittedModel
from .models.correlation import CorrelationMatrix
from .models.wais import confirmatory_models
from .utils.data_qa import validate_correlation_input
from .utils.logging_config import get_logger

logger = get_logger(__name__)


@dataclass
class AnalysisResult:
    """Everything produced by run_analysis."""
    search: SearchResult
    reference_models: Dict[str, FittedModel]
    replication_models: Dict[str, FittedModel]
    fit_measures: pd.DataFrame
    comparisons: Dict[str, pd.DataFrame]


def run_analysis(reference: CorrelationMatrix,
                 replication: CorrelationMatrix,
                 config: Optional[AnalysisConfig] = None,
                 output_dir: Optional[Union[str, Path]] = None,
                 verbose: bool = True) -> AnalysisResult:
    """
    Run the network extraction and the confirmatory comparison.

    Args:
        reference: Sample the network is extracted from
        replication: Sample the competing models are fitted to
        config: Analysis settings (defaults if omitted)
        output_dir: If given, CSV and LaTeX tables are written here
        verbose: Print progress and tables

    Returns:
        AnalysisResult

    Raises:
        ConfigurationError: Invalid input
        EstimationError: A confirmatory model could not be estimated
    """
    config = config or AnalysisConfig()
    replication = replication.reorder(reference.variables)

    for sample in (reference, replication):
        validate_correlation_input(sample.values, sample.n_obs, sample.variables,
                                   verbose=verbose, fail_on_error=True)

    fitter = ModelFitter(config.fitter)

    # Step 1: network search in the reference sample
    search = NetworkSearch(fitter, config.search, verbose=verbose).run(reference)
    if verbose:
        print(search.summary())

    reference_models = {'saturated': search.saturated, 'network': search.final}

    # Step 2: confirmatory models in the replication sample
    S = replication.ml_covariance()
    specs = confirmatory_models(search.adjacency, reference.variables)
    replication_models = {}
    for name, spec in specs.items():
        fitted = fitter.fit(S, replication.n_obs, spec, name=name)
        if not fitted.converged:
            logger.warning(f"Model '{name}' did not converge: {fitted.message}")
        replication_models[name] = fitted

    if not replication_models['saturated'].converged:
        raise EstimationError("Saturated model in the replication sample did not converge")

    # Step 3: comparisons against the saturated model
    comparisons = {
        f'{reference.name}_network': compare(saturated=search.saturated, network=search.final),
    }
    for name, fitted in replication_models.items():
        if name != 'saturated':
            comparisons[f'{replication.name}_{name}'] = compare(
                saturated=replication_models['saturated'], **{name: fitted})

    measures = fit_measures_table(replication_models)

    framework = ModelComparisonFramework(verbose=verbose)
    for fitted in replication_models.values():
        framework.add_model(fitted)

    if verbose:
        framework.print_report(reference='saturated')
        print("\nFIT MEASURES")
        print(measures[['chisq', 'df', 'cfi', 'tli', 'rmsea', 'aic', 'bic']]
              .to_string(float_format=lambda x: f'{x:.3f}'))

    if output_dir is not None:
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        search.adjacency_frame().to_csv(output_dir / 'adjacency.csv')
        search.history_frame().to_csv(output_dir / 'search_history.csv', index=False)
        search.final.omega_frame().to_csv(output_dir / 'omega_reference.csv')
        measures.to_csv(output_dir / 'fit_measures.csv')
        for label, table in comparisons.items():
            table.to_csv(output_dir / f'compare_{label}.csv', index=False)
        framework.to_latex(output_dir / 'latex')
        logger.info(f"Results saved to {output_dir}")

    return AnalysisResult(
        search=search,
        reference_models=reference_models,
        replication_models=replication_models,
        fit_measures=measures,
        comparisons=comparisons,
    )
