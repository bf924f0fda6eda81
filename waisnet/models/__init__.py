"""
Model specifications.

Network Models:
    - edges: EdgeSet, the free partial correlations of a GGM
    - ggm: GGMSpec and the Σ = Δ(I - Ω)^{-1}Δ parameterization

Latent Variable Models:
    - lvm: LVMSpec and its parameter structure

Input:
    - correlation: CorrelationMatrix with sample size

WAIS-IV:
    - wais: measurement, g, bifactor, network and saturated models
"""

from .correlation import CorrelationMatrix
from .edges import EdgeSet
from .ggm import GGMSpec
from .lvm import LVMSpec, LatentVariableStructure
