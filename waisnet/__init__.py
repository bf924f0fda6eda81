"""
waisnet: Factor and Network Models for the WAIS-IV
==================================================

Re-analysis of the US and Hungarian WAIS-IV correlation matrices:
a partial correlation network is extracted from the US sample
(saturated GGM, pruning, stepup) and compared on the Hungarian sample
with the measurement, second-order g and bifactor models.

Subpackages:
    - models: edge sets, correlation input, GGM/LVM specifications, WAIS-IV models
    - estimation: ML fitter, fit measures, network search, model comparison
    - simulation: correlation matrices with known network or factor structure
    - utils: logging and input quality checks

Usage:
    from waisnet import ModelFitter, NetworkSearch, SearchConfig

    search = NetworkSearch(ModelFitter(), SearchConfig(alpha=0.01))
    result = search.run(us_correlations)
"""

__version__ = "0.1.0"

from .config import AnalysisConfig, ConfigurationError, FitterConfig, SearchConfig, load_config
from .models import CorrelationMatrix, EdgeSet, GGMSpec, LVMSpec
from .estimation import (
    EstimationError,
    FittedModel,
    ModelFitter,
    NetworkSearch,
    SearchResult,
    compare,
    compute_fit_measures,
    extract_adjacency,
    prune,
    stepup,
)
