"""
Descriptor matching between all registered images (or a given set of pairs),
followed by geometric verification with the two-view estimator.
"""

import csv
import itertools
import os
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import cv2
import numpy as np

from ..algorithms.geometry.twoview import estimate_twoview_info
from ..config import FeatureMatcherOptions, MatchingStrategy
from ..core.interfaces.base_matcher import FeatureMatcher, ImagePairMatch
from ..core.structures.camera_intrinsics_prior import CameraIntrinsicsPrior
from ..core.structures.twoview_info import TwoViewInfo
from ..core.structures.types import FeatureCorrespondence
from ..logger import get_logger
from .features_io import FeatureCache, Features, feature_filepath, read_features, write_features

logger = get_logger("features.matcher")


FLANN_INDEX_KDTREE = 1
FLANN_INDEX_LSH = 6


def _create_descriptor_matcher(strategy: MatchingStrategy, binary: bool):
    if strategy == MatchingStrategy.FLANN:
        if binary:
            index_params = dict(algorithm=FLANN_INDEX_LSH, table_number=6, key_size=12,
                                multi_probe_level=1)
        else:
            index_params = dict(algorithm=FLANN_INDEX_KDTREE, trees=5)
        return cv2.FlannBasedMatcher(index_params, dict(checks=50))

    return cv2.BFMatcher(cv2.NORM_HAMMING if binary else cv2.NORM_L2, crossCheck=False)


class BruteForceFeatureMatcher(FeatureMatcher):
    """
    Nearest neighbour descriptor matcher with Lowe's ratio test.

    Features are held in memory, or written to disk and read back through an
    LRU cache when matching out of core. Image pairs are matched in parallel.
    """

    def __init__(self,
                 options: Optional[FeatureMatcherOptions] = None,
                 matching_strategy: MatchingStrategy = MatchingStrategy.BRUTE_FORCE):
        self.options = options or FeatureMatcherOptions()
        self.matching_strategy = matching_strategy

        if self.options.match_out_of_core and not self.options.keypoints_and_descriptors_output_dir:
            raise ValueError("keypoints_and_descriptors_output_dir is required when matching out of core")

        self._image_names: List[str] = []
        self._intrinsics: Dict[str, CameraIntrinsicsPrior] = {}
        self._features: Dict[str, Features] = {}
        self._pairs_to_match: Optional[List[Tuple[str, str]]] = None
        self._lock = threading.Lock()
        self._cache = FeatureCache(self.options.cache_capacity, self._load_features)

    # =========================================================================
    # Registration
    # =========================================================================

    def add_image(self,
                  name: str,
                  keypoints: Optional[np.ndarray] = None,
                  descriptors: Optional[np.ndarray] = None,
                  intrinsics: Optional[CameraIntrinsicsPrior] = None):
        name = os.path.basename(name)
        intrinsics = intrinsics.copy() if intrinsics is not None else CameraIntrinsicsPrior()

        if keypoints is None or descriptors is None:
            path = self._feature_path(name)
            if not self.options.match_out_of_core or not os.path.exists(path):
                raise ValueError(f"No features given for {name} and no feature file at '{path}'")
        elif self.options.match_out_of_core:
            write_features(self._feature_path(name), keypoints, descriptors)
        else:
            self._features[name] = (np.asarray(keypoints, dtype=np.float64).reshape(-1, 2),
                                    np.asarray(descriptors))

        with self._lock:
            if name not in self._intrinsics:
                self._image_names.append(name)
            self._intrinsics[name] = intrinsics

    def set_image_pairs_to_match(self, pairs: Sequence[Tuple[str, str]]):
        self._pairs_to_match = [(os.path.basename(a), os.path.basename(b)) for a, b in pairs]

    @property
    def image_names(self) -> List[str]:
        return list(self._image_names)

    def _feature_path(self, name: str) -> str:
        return feature_filepath(self.options.keypoints_and_descriptors_output_dir, name)

    def _load_features(self, name: str) -> Features:
        return read_features(self._feature_path(name))

    def _get_features(self, name: str) -> Features:
        if self.options.match_out_of_core:
            return self._cache.get(name)
        return self._features[name]

    # =========================================================================
    # Matching
    # =========================================================================

    def _candidate_pairs(self) -> List[Tuple[str, str]]:
        if self._pairs_to_match is None:
            return list(itertools.combinations(sorted(self._image_names), 2))

        pairs = []
        for name1, name2 in self._pairs_to_match:
            if name1 == name2:
                continue
            if name1 not in self._intrinsics or name2 not in self._intrinsics:
                logger.warning(f"Skipping pair ({name1}, {name2}): image not registered")
                continue
            pairs.append((name1, name2))
        return pairs

    def match_images(self) -> List[ImagePairMatch]:
        pairs = self._candidate_pairs()
        logger.info(f"Matching {len(pairs)} image pairs with {self.options.num_threads} threads")

        results: List[ImagePairMatch] = []
        with ThreadPoolExecutor(max_workers=max(1, self.options.num_threads)) as executor:
            futures = [(pair, executor.submit(self._match_pair, *pair)) for pair in pairs]
            for (name1, name2), future in futures:
                try:
                    match = future.result()
                except Exception as e:
                    logger.warning(f"Matching {name1} and {name2} failed: {e}")
                    continue
                if match is not None:
                    results.append(match)

        logger.info(f"{len(results)} of {len(pairs)} pairs verified")
        return results

    def _match_pair(self, name1: str, name2: str) -> Optional[ImagePairMatch]:
        keypoints1, descriptors1 = self._get_features(name1)
        keypoints2, descriptors2 = self._get_features(name2)

        index_pairs = self.match_descriptors(descriptors1, descriptors2)
        if len(index_pairs) < self.options.min_num_feature_matches:
            logger.debug(f"{name1}-{name2}: {len(index_pairs)} putative matches, skipped")
            return None

        correspondences = [FeatureCorrespondence(keypoints1[i], keypoints2[j]) for i, j in index_pairs]
        twoview_info = TwoViewInfo(num_verified_matches=len(correspondences))

        if self.options.perform_geometric_verification:
            success, twoview_info, inliers = estimate_twoview_info(
                self.options.geometric_verification_options,
                self._intrinsics[name1],
                self._intrinsics[name2],
                correspondences)
            if not success or len(inliers) < self.options.min_num_inlier_matches:
                logger.debug(f"{name1}-{name2}: geometric verification failed")
                return None
            correspondences = [correspondences[i] for i in inliers]

        return ImagePairMatch(image1=name1,
                              image2=name2,
                              twoview_info=twoview_info,
                              correspondences=correspondences)

    def _ratio_matches(self, matcher, query: np.ndarray, train: np.ndarray) -> Dict[int, int]:
        matches = {}
        for pair in matcher.knnMatch(query, train, k=2):
            if len(pair) < 2:
                continue
            best, second = pair
            if best.distance < self.options.lowe_ratio * second.distance:
                matches[best.queryIdx] = best.trainIdx
        return matches

    def match_descriptors(self, descriptors1: np.ndarray, descriptors2: np.ndarray) -> List[Tuple[int, int]]:
        """
        Match two descriptor sets

        Args:
            descriptors1: (N1, D) descriptors of the first image
            descriptors2: (N2, D) descriptors of the second image

        Returns:
            List of (index1, index2) pairs passing the ratio (and symmetry) test
        """
        if len(descriptors1) < 2 or len(descriptors2) < 2:
            return []

        binary = descriptors1.dtype == np.uint8
        if not binary:
            descriptors1 = descriptors1.astype(np.float32)
            descriptors2 = descriptors2.astype(np.float32)
        matcher = _create_descriptor_matcher(self.matching_strategy, binary)

        forward = self._ratio_matches(matcher, descriptors1, descriptors2)
        if not self.options.keep_only_symmetric_matches:
            return sorted(forward.items())

        backward = self._ratio_matches(matcher, descriptors2, descriptors1)
        return sorted((i, j) for i, j in forward.items() if backward.get(j) == i)


def export_matches_summary_csv(matches: List[ImagePairMatch], filepath: Union[str, Path]):
    """Export one row per verified pair as CSV"""
    filepath = Path(filepath)
    filepath.parent.mkdir(parents=True, exist_ok=True)

    with open(filepath, 'w', newline='') as f:
        writer = csv.writer(f)
        writer.writerow([
            'pair_id', 'image1', 'image2', 'num_verified_matches', 'visibility_score',
            'focal_length_1', 'focal_length_2'
        ])

        for i, match in enumerate(matches):
            writer.writerow([
                i,
                match.image1,
                match.image2,
                match.twoview_info.num_verified_matches,
                match.twoview_info.visibility_score,
                match.twoview_info.focal_length_1,
                match.twoview_info.focal_length_2,
            ])

    logger.info(f"Exported match summary to {filepath}")
