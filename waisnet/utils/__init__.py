"""Utils module for WAIS-IV network analysis."""
from .data_qa import check_covariance, validate_correlation_input
from .logging_config import (
    setup_logging,
    get_logger,
    SearchLogger,
    ComparisonLogger,
    configure_warnings
)
