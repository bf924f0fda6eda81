"""
Estimation and model selection.

- fitter: ModelFitter, maximum likelihood for GGM and LVM specifications
- results: FittedModel
- fit_measures: χ², CFI, TLI, RMSEA and information criteria
- network_search: prune, stepup and the NetworkSearch pipeline
- model_comparison: compare(), LR tests, information criteria tables
"""

from .results import FittedModel
from .fitter import ModelFitter
from .fit_measures import FitMeasures, compute_fit_measures, fit_measures_table
from .network_search import (
    EstimationError,
    FitCache,
    NetworkSearch,
    PhaseResult,
    SearchResult,
    SearchStep,
    extract_adjacency,
    prune,
    stepup,
)
from .model_comparison import ModelComparisonFramework, compare, lr_test
