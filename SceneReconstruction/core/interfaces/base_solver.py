"""
Base interface for robust relative pose solvers.

The two-view estimator only depends on this contract: given sampling
parameters and (normalized) correspondences, a solver returns a pose and a
summary listing the inlier indices.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ...config import RansacType
from ..structures.types import FeatureCorrespondence


@dataclass
class RansacParameters:
    """
    Sampling parameters forwarded to a robust solver.

    Attributes:
        rng: Random source; solvers derive their seeds from it
        error_thresh: Squared inlier threshold in the solver's coordinates
        failure_probability: 1 - confidence
        min_iterations: Lower bound on iterations
        max_iterations: Upper bound on iterations
        use_mle: Score hypotheses by likelihood
    """
    rng: Optional[np.random.Generator] = None
    error_thresh: float = 1.0
    failure_probability: float = 0.01
    min_iterations: int = 10
    max_iterations: int = 1000
    use_mle: bool = True

    def draw_seed(self) -> int:
        """Draw a 31-bit seed from the random source"""
        rng = self.rng if self.rng is not None else np.random.default_rng()
        return int(rng.integers(0, 2 ** 31 - 1))


@dataclass
class RansacSummary:
    """Outcome of a robust estimation"""
    inliers: List[int] = field(default_factory=list)
    confidence: float = 0.0


@dataclass
class RelativePose:
    """Rotation (3x3) and unit position of the second camera"""
    rotation: np.ndarray = field(default_factory=lambda: np.eye(3))
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))


@dataclass
class UncalibratedRelativePose(RelativePose):
    """Relative pose together with the recovered focal lengths"""
    focal_length1: float = 1.0
    focal_length2: float = 1.0


class RelativePoseSolver(ABC):
    """Abstract robust solver for the relative pose of two views"""

    @abstractmethod
    def estimate(self,
                 params: RansacParameters,
                 ransac_type: RansacType,
                 correspondences: Sequence[FeatureCorrespondence]
                 ) -> Tuple[bool, Optional[RelativePose], RansacSummary]:
        """
        Robustly estimate the relative pose

        Args:
            params: Sampling parameters
            ransac_type: Robust estimation scheme
            correspondences: Correspondences in the solver's coordinate frame

        Returns:
            (success, pose, summary)
        """
        pass
