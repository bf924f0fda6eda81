"""
WAIS-IV Model Specifications
============================

Declarative factor and network models for the 15 WAIS-IV subtests.

Factor Structure (WAIS-IV manual, Figure 5.2):
----------------------------------------------
    P  Perceptual       BD, MR, VP, PC (+ FW cross-loading)
    V  Verbal           SI, VC, IN, CO (+ AR cross-loading)
    W  Working Memory   DS, AR, LN, FW
    S  Speed            SS, CD, CA

Models:
    measurement  correlated four-factor model with both cross-loadings
    g            second-order model; P, V, W, S regressed on g
    bifactor     theoretical pattern plus an orthogonal general factor
    network      GGM with a given skeleton
    saturated    GGM with all partial correlations free

All latent variable models use variance identification.

Author: Network Psychometrics Team
"""

from typing import Dict, List, Optional, Sequence

import numpy as np

from ..config import CONSTRUCT_LABELS, WAIS_CONSTRUCTS, WAIS_SUBTESTS
from .ggm import GGMSpec
from .lvm import LVMSpec

# Subtest -> construct it is designed to measure
THEORETICAL_ASSIGNMENT = {
    'BD': 'P', 'SI': 'V', 'DS': 'W', 'MR': 'P', 'VC': 'V',
    'AR': 'W', 'SS': 'S', 'VP': 'P', 'IN': 'V', 'CD': 'S',
    'LN': 'W', 'FW': 'W', 'CO': 'V', 'CA': 'S', 'PC': 'P',
}

# Additional loadings of the measurement model: (subtest, construct)
CROSS_LOADINGS = [
    ('AR', 'V'),  # Arithmetic on Verbal
    ('FW', 'P'),  # Figure Weights on Perceptual
]

GENERAL_FACTOR = 'g'


def theoretical_lambda(variables: Sequence[str] = WAIS_SUBTESTS) -> np.ndarray:
    """15 x 4 simple-structure loading pattern."""
    lam = np.zeros((len(variables), len(WAIS_CONSTRUCTS)), dtype=int)
    for row, subtest in enumerate(variables):
        lam[row, WAIS_CONSTRUCTS.index(THEORETICAL_ASSIGNMENT[subtest])] = 1
    return lam


def measurement_lambda(variables: Sequence[str] = WAIS_SUBTESTS) -> np.ndarray:
    lam = theoretical_lambda(variables)
    for subtest, construct in CROSS_LOADINGS:
        lam[list(variables).index(subtest), WAIS_CONSTRUCTS.index(construct)] = 1
    return lam


def factor_groups(variables: Sequence[str] = WAIS_SUBTESTS) -> Dict[str, List[int]]:
    """Construct label -> indices of its subtests under the theoretical pattern."""
    lam = theoretical_lambda(variables)
    return {CONSTRUCT_LABELS[c]: list(np.where(lam[:, k] == 1)[0])
            for k, c in enumerate(WAIS_CONSTRUCTS)}


# =============================================================================
# MODEL BUILDERS
# =============================================================================

def measurement_model(variables: Sequence[str] = WAIS_SUBTESTS) -> LVMSpec:
    """Correlated four-factor model with the AR and FW cross-loadings."""
    return LVMSpec(
        lambda_pattern=measurement_lambda(variables),
        variables=tuple(variables),
        latents=tuple(WAIS_CONSTRUCTS),
        sigma_zeta='full',
        identification='variance',
        name='measurement',
    )


def g_model(variables: Sequence[str] = WAIS_SUBTESTS) -> LVMSpec:
    """
    Second-order model: the four constructs load on g, their residuals
    are uncorrelated.
    """
    lam = np.hstack([measurement_lambda(variables),
                     np.zeros((len(variables), 1), dtype=int)])
    m = len(WAIS_CONSTRUCTS) + 1
    beta = np.zeros((m, m), dtype=int)
    beta[:len(WAIS_CONSTRUCTS), m - 1] = 1

    return LVMSpec(
        lambda_pattern=lam,
        variables=tuple(variables),
        latents=tuple(WAIS_CONSTRUCTS) + (GENERAL_FACTOR,),
        beta_pattern=beta,
        sigma_zeta='empty',
        identification='variance',
        name='gmodel',
    )


def bifactor_model(variables: Sequence[str] = WAIS_SUBTESTS) -> LVMSpec:
    """Theoretical pattern plus a general factor on every subtest, all orthogonal."""
    lam = np.hstack([theoretical_lambda(variables),
                     np.ones((len(variables), 1), dtype=int)])
    return LVMSpec(
        lambda_pattern=lam,
        variables=tuple(variables),
        latents=tuple(WAIS_CONSTRUCTS) + (GENERAL_FACTOR,),
        sigma_zeta='empty',
        identification='variance',
        name='bifactor',
    )


def network_model(adjacency: np.ndarray,
                  variables: Sequence[str] = WAIS_SUBTESTS) -> GGMSpec:
    return GGMSpec.from_adjacency(adjacency, variables, name='network')


def saturated_model(variables: Sequence[str] = WAIS_SUBTESTS) -> GGMSpec:
    return GGMSpec.saturated(len(variables), variables, name='saturated')


def confirmatory_models(adjacency: Optional[np.ndarray] = None,
                        variables: Sequence[str] = WAIS_SUBTESTS) -> Dict:
    """
    The model set fitted to the replication sample.

    Args:
        adjacency: Network skeleton; the network model is omitted if None
        variables: Subtest order of the correlation matrix

    Returns:
        Dict name -> model specification, saturated model first
    """
    models = {
        'saturated': saturated_model(variables),
        'measurement': measurement_model(variables),
        'bifactor': bifactor_model(variables),
        'gmodel': g_model(variables),
    }
    if adjacency is not None:
        models['network'] = network_model(adjacency, variables)
    return models
