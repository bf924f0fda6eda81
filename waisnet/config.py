"""
Configuration for the WAIS-IV Network Analysis
==============================================

Centralized constants and the analysis configuration schema.

Configuration Structure (config/analysis_config.json):
------------------------------------------------------
{
    "samples": {
        "reference": {"name": str, "n_obs": int},   # network extraction sample
        "replication": {"name": str, "n_obs": int}  # confirmatory sample
    },
    "search": {
        "alpha": float,          # pruning significance level, in (0, 1)
        "recursive": bool,       # one edge per refit (True) or batches
        "adjust": str,           # p-value adjustment (see VALID_ADJUSTMENTS)
        "stepup_alpha": float,   # LR-test level for reinstating edges
        "criterion": str,        # 'bic', 'aic' or 'none'
        "min_edges": int,        # pruning never goes below this many edges
        "min_df": int,           # stepup never goes below this many df
        "n_workers": int         # parallel candidate fits in stepup
    },
    "fitter": {
        "maxiter": int,
        "tol": float
    }
}

Usage:
    from waisnet.config import load_config, AnalysisConfig

    config = load_config("config/analysis_config.json")
    config.search.alpha  # 0.01

Author: Network Psychometrics Team
"""

import json
from dataclasses import dataclass, field, fields, asdict
from pathlib import Path
from typing import Any, Dict, List, Optional, Union


# =============================================================================
# CONSTANTS
# =============================================================================

# WAIS-IV subtests in the order of the published correlation matrices
WAIS_SUBTESTS = [
    'BD',  # Block Design
    'SI',  # Similarities
    'DS',  # Digit Span
    'MR',  # Matrix Reasoning
    'VC',  # Vocabulary
    'AR',  # Arithmetic
    'SS',  # Symbol Search
    'VP',  # Visual Puzzles
    'IN',  # Information
    'CD',  # Coding
    'LN',  # Letter-Number Sequencing
    'FW',  # Figure Weights
    'CO',  # Comprehension
    'CA',  # Cancellation
    'PC',  # Picture Completion
]

# First-order constructs
WAIS_CONSTRUCTS = ['P', 'V', 'W', 'S']

CONSTRUCT_LABELS = {
    'P': 'Perceptual',
    'V': 'Verbal',
    'W': 'WorkingMemory',
    'S': 'Speed',
}

# Standardization sample sizes
N_US = 1800
N_HUNGARY = 1112

# Search defaults
DEFAULT_ALPHA = 0.01
DEFAULT_CRITERION = 'bic'

VALID_ADJUSTMENTS = ['none', 'bonferroni', 'holm', 'fdr_bh']
VALID_CRITERIA = ['bic', 'aic', 'none']


class ConfigurationError(ValueError):
    """Invalid input data or analysis configuration."""


# =============================================================================
# CONFIGURATION DATACLASSES
# =============================================================================

@dataclass
class SampleConfig:
    """A named correlation-matrix sample."""
    name: str
    n_obs: int
    path: Optional[str] = None


@dataclass
class SearchConfig:
    """Settings for network pruning and stepup."""
    alpha: float = DEFAULT_ALPHA
    recursive: bool = True
    adjust: str = 'none'
    stepup_alpha: Optional[float] = None  # None mirrors alpha
    criterion: str = DEFAULT_CRITERION
    min_edges: int = 0
    min_df: int = 0
    n_workers: int = 1

    @property
    def effective_stepup_alpha(self) -> float:
        return self.alpha if self.stepup_alpha is None else self.stepup_alpha


@dataclass
class FitterConfig:
    """Settings for maximum likelihood estimation."""
    maxiter: int = 10000
    tol: float = 1e-10
    compute_se: bool = True


@dataclass
class AnalysisConfig:
    """Full analysis configuration."""
    reference: SampleConfig = field(
        default_factory=lambda: SampleConfig('US', N_US))
    replication: SampleConfig = field(
        default_factory=lambda: SampleConfig('Hungary', N_HUNGARY))
    search: SearchConfig = field(default_factory=SearchConfig)
    fitter: FitterConfig = field(default_factory=FitterConfig)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'samples': {
                'reference': asdict(self.reference),
                'replication': asdict(self.replication),
            },
            'search': asdict(self.search),
            'fitter': asdict(self.fitter),
        }


# =============================================================================
# SCHEMA VALIDATION
# =============================================================================

@dataclass
class ValidationResult:
    """Result of configuration validation."""
    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def validate_config(config: Dict) -> ValidationResult:
    """
    Validate a configuration dictionary against the schema.

    Args:
        config: Configuration dictionary (parsed JSON)

    Returns:
        ValidationResult with validity status and any errors/warnings
    """
    errors = []
    warnings_list = []

    for key in config:
        if key not in ('samples', 'search', 'fitter'):
            warnings_list.append(f"Unknown top-level key ignored: {key}")

    samples = config.get('samples', {})
    known = {f.name for f in fields(SampleConfig)}
    for role in ('reference', 'replication'):
        sample = samples.get(role)
        if sample is None:
            warnings_list.append(f"samples.{role} not specified, using default")
            continue
        for key in sample:
            if key not in known:
                errors.append(f"Unknown option samples.{role}.{key}")
        n_obs = sample.get('n_obs')
        if not isinstance(n_obs, int) or isinstance(n_obs, bool) or n_obs <= 0:
            errors.append(f"samples.{role}.n_obs must be a positive integer, got {n_obs!r}")
        if 'name' not in sample:
            warnings_list.append(f"samples.{role}.name not specified")

    search = config.get('search', {})
    known = {f.name for f in fields(SearchConfig)}
    for key in search:
        if key not in known:
            errors.append(f"Unknown search option: {key}")

    for key in ('alpha', 'stepup_alpha'):
        value = search.get(key)
        if value is None:
            continue
        if not isinstance(value, (int, float)) or not 0 < value < 1:
            errors.append(f"search.{key} must lie in (0, 1), got {value!r}")

    if not isinstance(search.get('recursive', True), bool):
        errors.append(f"search.recursive must be true or false, got {search['recursive']!r}")

    adjust = search.get('adjust', 'none')
    if adjust not in VALID_ADJUSTMENTS:
        errors.append(f"Invalid search.adjust: {adjust}. Must be one of {VALID_ADJUSTMENTS}")

    criterion = search.get('criterion', DEFAULT_CRITERION)
    if criterion not in VALID_CRITERIA:
        errors.append(f"Invalid search.criterion: {criterion}. Must be one of {VALID_CRITERIA}")

    for key in ('min_edges', 'min_df'):
        value = search.get(key, 0)
        if not isinstance(value, int) or value < 0:
            errors.append(f"search.{key} must be a non-negative integer, got {value!r}")

    n_workers = search.get('n_workers', 1)
    if not isinstance(n_workers, int) or n_workers < 1:
        errors.append(f"search.n_workers must be >= 1, got {n_workers!r}")

    fitter = config.get('fitter', {})
    known = {f.name for f in fields(FitterConfig)}
    for key in fitter:
        if key not in known:
            errors.append(f"Unknown fitter option: {key}")
    maxiter = fitter.get('maxiter', 1)
    if not isinstance(maxiter, int) or maxiter < 1:
        errors.append(f"fitter.maxiter must be a positive integer, got {maxiter!r}")
    tol = fitter.get('tol', 1e-10)
    if not isinstance(tol, (int, float)) or tol <= 0:
        errors.append(f"fitter.tol must be positive, got {tol!r}")

    return ValidationResult(len(errors) == 0, errors, warnings_list)


def config_from_dict(config: Dict) -> AnalysisConfig:
    """
    Build an AnalysisConfig from a validated dictionary.

    Raises:
        ConfigurationError: If the dictionary fails validation
    """
    result = validate_config(config)
    if not result.is_valid:
        raise ConfigurationError(
            "Invalid analysis configuration:\n  - " + "\n  - ".join(result.errors)
        )

    defaults = AnalysisConfig()
    samples = config.get('samples', {})
    reference = samples.get('reference')
    replication = samples.get('replication')

    return AnalysisConfig(
        reference=SampleConfig(**reference) if reference else defaults.reference,
        replication=SampleConfig(**replication) if replication else defaults.replication,
        search=SearchConfig(**config.get('search', {})),
        fitter=FitterConfig(**config.get('fitter', {})),
    )


def load_config(path: Union[str, Path]) -> AnalysisConfig:
    """
    Load analysis configuration from a JSON file.

    Args:
        path: Path to JSON configuration

    Returns:
        AnalysisConfig
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    with open(path) as f:
        config = json.load(f)

    return config_from_dict(config)


def save_config(config: AnalysisConfig, path: Union[str, Path]) -> Path:
    """Write configuration to JSON."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(config.to_dict(), f, indent=2)
    return path
