"""
Run the WAIS-IV Network vs. Factor Analysis
===========================================

Extracts a network from the reference (US) correlation matrix and
compares it with the factor models in the replication (Hungarian)
sample.

Input files are labelled square correlation matrices in CSV format
(variable names in the header row and the first column).

Usage:
    python scripts/run_analysis.py --us data/wais_us.csv --hungary data/wais_hungary.csv
    python scripts/run_analysis.py --demo --output results/demo

Author: Network Psychometrics Team
"""

import argparse
import logging
import sys
from pathlib import Path

from waisnet.analysis import run_analysis
from waisnet.config import AnalysisConfig, load_config
from waisnet.models.correlation import CorrelationMatrix
from waisnet.simulation.ggm_simulator import simulate_wais_samples
from waisnet.utils.logging_config import configure_warnings, setup_logging


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='WAIS-IV factor vs. network re-analysis')
    parser.add_argument('--us', type=str, help='Reference sample correlation matrix (CSV)')
    parser.add_argument('--hungary', type=str, help='Replication sample correlation matrix (CSV)')
    parser.add_argument('--demo', action='store_true',
                        help='Use simulated WAIS-like matrices instead of input files')
    parser.add_argument('--seed', type=int, default=42, help='Seed for --demo')
    parser.add_argument('--config', type=str, default='config/analysis_config.json',
                        help='Path to analysis configuration JSON')
    parser.add_argument('--alpha', type=float, default=None,
                        help='Override the pruning significance level')
    parser.add_argument('--output', type=str, default='results/wais',
                        help='Output directory')
    parser.add_argument('--log-file', type=str, default=None, help='Optional log file')
    parser.add_argument('--quiet', action='store_true', help='Suppress printed tables')
    parser.add_argument('--debug', action='store_true', help='Debug logging and all warnings')

    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.debug else logging.INFO, args.log_file)
    configure_warnings(args.debug)

    config_path = Path(args.config)
    config = load_config(config_path) if config_path.exists() else AnalysisConfig()
    if args.alpha is not None:
        config.search.alpha = args.alpha

    if args.demo:
        reference, replication = simulate_wais_samples(seed=args.seed)
    elif args.us and args.hungary:
        reference = CorrelationMatrix.from_csv(args.us, config.reference.n_obs,
                                               config.reference.name)
        replication = CorrelationMatrix.from_csv(args.hungary, config.replication.n_obs,
                                                 config.replication.name)
    else:
        parser.error("either --demo or both --us and --hungary are required")

    run_analysis(reference, replication, config, output_dir=args.output,
                 verbose=not args.quiet)
    print(f"\nResults saved to: {args.output}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
