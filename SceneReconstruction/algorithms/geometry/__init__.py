"""
Two-view geometry: robust relative pose and visibility scoring.
"""

from .visibility_pyramid import VisibilityPyramid
from .relative_pose import (
    OpenCVEssentialMatrixSolver,
    OpenCVFundamentalMatrixSolver,
    bougnoux_focal_lengths,
)
from .twoview import compute_resolution_scaled_threshold, estimate_twoview_info

__all__ = [
    'VisibilityPyramid',
    'OpenCVEssentialMatrixSolver',
    'OpenCVFundamentalMatrixSolver',
    'bougnoux_focal_lengths',
    'compute_resolution_scaled_threshold',
    'estimate_twoview_info',
]
