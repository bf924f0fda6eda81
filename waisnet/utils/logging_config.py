"""
Structured Logging for Network and Factor Model Estimation
===========================================================

Provides consistent logging across the waisnet package.

Usage:
    from waisnet.utils.logging_config import get_logger, SearchLogger

    # Simple logging
    logger = get_logger(__name__)
    logger.info("Starting network search")

    # Structured search logging
    search_log = SearchLogger("US")
    search_log.start(n_variables=15, n_obs=1800)
    search_log.pruned(edge=('BD', 'SI'), p_value=0.43, n_edges=104)

Author: Network Psychometrics Team
"""

import logging
import sys
from datetime import datetime, timezone
from typing import Optional, Tuple
import json


# =============================================================================
# LOGGING CONFIGURATION
# =============================================================================

def setup_logging(
    level: int = logging.INFO,
    log_file: Optional[str] = None,
    format_style: str = "standard"
) -> None:
    """
    Configure logging for the waisnet package.

    Args:
        level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_file: Optional file path for log output
        format_style: "standard", "detailed", or "json"
    """
    formats = {
        "standard": "%(asctime)s | %(levelname)-8s | %(message)s",
        "detailed": "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d | %(message)s",
        "json": None  # Handled by JsonFormatter
    }

    handlers = []

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)

    if format_style == "json":
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(
            logging.Formatter(formats.get(format_style, formats["standard"]),
                              datefmt="%Y-%m-%d %H:%M:%S")
        )
    handlers.append(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(
            logging.Formatter(formats["detailed"], datefmt="%Y-%m-%d %H:%M:%S")
        )
        handlers.append(file_handler)

    logging.basicConfig(level=level, handlers=handlers, force=True)


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for a module."""
    return logging.getLogger(name)


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if hasattr(record, "extra_data"):
            log_data["data"] = record.extra_data

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data)


# =============================================================================
# NETWORK SEARCH LOGGER
# =============================================================================

class SearchLogger:
    """
    Structured logger for network pruning and stepup progress.

    Example:
        logger = SearchLogger("US")
        logger.start(n_variables=15, n_obs=1800)
        logger.phase("prune", n_edges=105)
        logger.pruned(('BD', 'SI'), p_value=0.43, n_edges=104)
        logger.finished(n_edges=40, n_fits=70)
    """

    def __init__(self, sample_name: str, verbose: bool = True):
        self.sample_name = sample_name
        self.verbose = verbose
        self.start_time: Optional[datetime] = None
        self._logger = get_logger(f"waisnet.search.{sample_name}")

    def _print(self, message: str) -> None:
        """Print if verbose mode is on."""
        if self.verbose:
            print(message)

    def start(self, n_variables: int, n_obs: int) -> None:
        """Log search start."""
        self.start_time = datetime.now()
        self._print(f"\n{'='*60}")
        self._print(f"Network search: {self.sample_name} "
                    f"(p = {n_variables}, n = {n_obs})")
        self._print(f"{'='*60}")
        self._logger.info(f"Started network search: {self.sample_name} "
                          f"p={n_variables} n={n_obs}")

    def phase(self, name: str, n_edges: int) -> None:
        """Log the start of a search phase."""
        self._print(f"\n  [{name}] starting from {n_edges} edges")
        self._logger.info(f"Phase {name}: {n_edges} edges")

    def pruned(self, edge: Tuple[str, str], p_value: float, n_edges: int) -> None:
        """Log a single edge removal."""
        self._print(f"    - {edge[0]}--{edge[1]:4s} p = {p_value:.4f}  ({n_edges} edges left)")
        self._logger.debug(f"Pruned {edge[0]}--{edge[1]} p={p_value:.4g} edges={n_edges}")

    def pruned_batch(self, n_removed: int, n_edges: int) -> None:
        """Log a batch removal."""
        self._print(f"    - removed {n_removed} edges  ({n_edges} edges left)")
        self._logger.debug(f"Pruned batch of {n_removed}, edges={n_edges}")

    def added(self, edge: Tuple[str, str], lr_stat: float, p_value: float,
              n_edges: int) -> None:
        """Log a single edge reinstatement."""
        self._print(f"    + {edge[0]}--{edge[1]:4s} LR = {lr_stat:.2f}, p = {p_value:.4g}"
                    f"  ({n_edges} edges)")
        self._logger.debug(f"Added {edge[0]}--{edge[1]} LR={lr_stat:.3f} p={p_value:.4g}")

    def candidate_failed(self, edges: str, reason: str) -> None:
        """Log a candidate model that could not be estimated.

        Args:
            edges: Label(s) of the edge(s) the candidate adds or removes
            reason: Optimizer message
        """
        self._logger.warning(f"Candidate {edges} rejected: {reason}")

    def stopped(self, phase: str, reason: str) -> None:
        """Log why a phase terminated."""
        self._print(f"    stop: {reason}")
        self._logger.info(f"Phase {phase} stopped: {reason}")

    def finished(self, n_edges: int, n_fits: int) -> None:
        """Log search completion."""
        elapsed = (datetime.now() - self.start_time).total_seconds() if self.start_time else 0
        self._print(f"\n  DONE in {elapsed:.1f}s: {n_edges} edges, {n_fits} model fits")
        self._logger.info(f"Finished network search: {self.sample_name} | "
                          f"edges={n_edges} | fits={n_fits} | time={elapsed:.1f}s")


# =============================================================================
# MODEL COMPARISON LOGGER
# =============================================================================

class ComparisonLogger:
    """Logger for model comparison output."""

    def __init__(self, verbose: bool = True):
        self.verbose = verbose
        self._logger = get_logger("waisnet.comparison")

    def _print(self, message: str) -> None:
        if self.verbose:
            print(message)

    def header(self, title: str = "MODEL COMPARISON") -> None:
        """Print comparison header."""
        self._print(f"\n{'#'*60}")
        self._print(f"# {title}")
        self._print(f"{'#'*60}")

    def model_result(self, name: str, chisq: float, df: int, cfi: float,
                     rmsea: float, aic: float, bic: float,
                     converged: bool = True) -> None:
        """Log single model result."""
        status = "OK" if converged else "WARN"
        self._print(f"\n{name}:")
        self._print(f"  chi2({df}) = {chisq:.2f} | CFI = {cfi:.3f} | "
                    f"RMSEA = {rmsea:.3f} | [{status}]")
        self._print(f"  AIC = {aic:.2f} | BIC = {bic:.2f}")

    def lr_test(self, restricted: str, full: str, lr_stat: float,
                df: int, p_value: float) -> None:
        """Log likelihood ratio test result."""
        sig = "***" if p_value < 0.001 else "**" if p_value < 0.01 else "*" if p_value < 0.05 else ""
        self._print(f"\nLR Test: {restricted} vs {full}")
        self._print(f"  LR = {lr_stat:.2f}, df = {df}, p = {p_value:.4f} {sig}")
        self._logger.info(f"LR test: {restricted} vs {full}, LR={lr_stat:.2f}, p={p_value:.4f}")

    def best_model(self, name: str, criterion: str = "AIC") -> None:
        """Log best model selection."""
        self._print(f"\n{'='*60}")
        self._print(f"Best model by {criterion}: {name}")
        self._print(f"{'='*60}")
        self._logger.info(f"Best model ({criterion}): {name}")


# =============================================================================
# WARNING CONFIGURATION
# =============================================================================

def configure_warnings(debug_mode: bool = False) -> None:
    """
    Configure warning filters for model estimation.

    Args:
        debug_mode: If True, show all warnings. If False, suppress expected ones.

    Suppressed warnings (when debug_mode=False):
        - RuntimeWarning from log/det of near-singular trial matrices
          during line search (expected)
        - FutureWarning from pandas/numpy API changes
    """
    import warnings

    if debug_mode:
        warnings.filterwarnings('default')
        logging.info("Debug mode: All warnings enabled")
    else:
        warnings.filterwarnings('ignore', category=FutureWarning)
        warnings.filterwarnings('ignore', message='.*invalid value.*')
        warnings.filterwarnings('ignore', message='.*divide by zero.*')
        warnings.filterwarnings('ignore', message='.*overflow.*')
