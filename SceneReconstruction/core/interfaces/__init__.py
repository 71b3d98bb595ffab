"""
Collaborator contracts used by the core.
"""

from .base_extractor import DescriptorExtractor
from .base_matcher import FeatureMatcher, ImagePairMatch
from .base_solver import (
    RansacParameters,
    RansacSummary,
    RelativePose,
    UncalibratedRelativePose,
    RelativePoseSolver,
)

__all__ = [
    'DescriptorExtractor',
    'FeatureMatcher',
    'ImagePairMatch',
    'RansacParameters',
    'RansacSummary',
    'RelativePose',
    'UncalibratedRelativePose',
    'RelativePoseSolver',
]
