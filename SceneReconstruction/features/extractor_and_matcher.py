"""
Feature extraction and matching pipeline.

Images are processed in parallel: each task resolves the calibration prior of
one image (given, from EXIF, or guessed), extracts and filters its features
and registers them with the matcher. Once every task has finished, the
matcher runs over all registered images.
"""

import dataclasses
import os
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from ..config import FeatureExtractorAndMatcherOptions
from ..core.interfaces.base_extractor import DescriptorExtractor
from ..core.interfaces.base_matcher import FeatureMatcher, ImagePairMatch
from ..core.structures.camera import DEFAULT_FOCAL_LENGTH_RATIO
from ..core.structures.camera_intrinsics_prior import CameraIntrinsicsPrior
from ..logger import get_logger
from .descriptor_extractor import create_descriptor_extractor, load_image, load_mask
from .exif_reader import ExifReader
from .feature_matcher import BruteForceFeatureMatcher
from .features_io import feature_filepath

logger = get_logger("features.pipeline")


# Keypoints where the mask is below this value (on a [0, 1] scale) are dropped
MASK_THRESHOLD = 0.5


def _default_extractor_factory(options: FeatureExtractorAndMatcherOptions) -> DescriptorExtractor:
    return create_descriptor_extractor(options.descriptor_extractor_type, options.feature_density)


def _interpolate_mask(mask: np.ndarray, keypoints: np.ndarray) -> np.ndarray:
    """Bilinearly interpolated mask values in [0, 1] at the keypoint locations"""
    mask = mask.astype(np.float32) / 255.0
    map_x = keypoints[:, 0].astype(np.float32).reshape(-1, 1)
    map_y = keypoints[:, 1].astype(np.float32).reshape(-1, 1)
    values = cv2.remap(mask, map_x, map_y, interpolation=cv2.INTER_LINEAR,
                       borderMode=cv2.BORDER_REPLICATE)
    return values.ravel()


class FeatureExtractorAndMatcher:
    """
    Extracts features from a set of images and matches them.

    Usage:
        pipeline = FeatureExtractorAndMatcher(options)
        pipeline.add_image('images/a.jpg')
        pipeline.add_image('images/b.jpg', prior)
        priors, matches = pipeline.extract_and_match_features()
    """

    def __init__(self,
                 options: Optional[FeatureExtractorAndMatcherOptions] = None,
                 extractor_factory: Optional[Callable[[FeatureExtractorAndMatcherOptions],
                                                      DescriptorExtractor]] = None,
                 exif_reader: Optional[ExifReader] = None,
                 matcher: Optional[FeatureMatcher] = None):
        """
        Initialize the pipeline

        Args:
            options: Pipeline options
            extractor_factory: Creates one extractor per extraction task
            exif_reader: Metadata reader used when an image has no focal length prior
            matcher: Matcher receiving the features; a BruteForceFeatureMatcher
                built from the options when omitted
        """
        self.options = options or FeatureExtractorAndMatcherOptions()
        if self.options.num_threads < 1:
            raise ValueError(f"num_threads must be positive, got {self.options.num_threads}")
        if self.options.max_num_features < 0:
            raise ValueError(f"max_num_features must not be negative, got {self.options.max_num_features}")

        self.extractor_factory = extractor_factory or _default_extractor_factory
        self.exif_reader = exif_reader or ExifReader()
        self.matcher = matcher or self._create_matcher()

        self._image_paths: List[str] = []
        self._intrinsics: Dict[str, CameraIntrinsicsPrior] = {}
        self._masks: Dict[str, str] = {}

        self._intrinsics_lock = threading.Lock()
        self._matcher_lock = threading.Lock()

    def _create_matcher(self) -> FeatureMatcher:
        matcher_options = dataclasses.replace(
            self.options.feature_matcher_options,
            num_threads=self.options.num_threads,
            min_num_feature_matches=self.options.min_num_inlier_matches,
            perform_geometric_verification=True,
            min_num_inlier_matches=self.options.min_num_inlier_matches,
        )
        return BruteForceFeatureMatcher(matcher_options, self.options.matching_strategy)

    # =========================================================================
    # Inputs
    # =========================================================================

    def add_image(self, image_path: str, intrinsics: Optional[CameraIntrinsicsPrior] = None) -> bool:
        """
        Register an image, optionally with a calibration prior

        Adding the same path twice extends the list; a prior given later
        replaces the earlier one.
        """
        self._image_paths.append(image_path)
        if intrinsics is not None:
            self._intrinsics[image_path] = intrinsics.copy()
        return True

    def add_mask_for_features_extraction(self, image_path: str, mask_path: str) -> bool:
        """Keypoints falling in the dark part of the mask are discarded"""
        self._masks[image_path] = mask_path
        logger.debug(f"Image: {image_path} || Associated mask: {mask_path}")
        return True

    def set_pairs_to_match(self, pairs: Sequence[Tuple[str, str]]):
        """Restrict matching to the given pairs (paths are reduced to filenames)"""
        self.matcher.set_image_pairs_to_match(
            [(os.path.basename(a), os.path.basename(b)) for a, b in pairs])

    # =========================================================================
    # Pipeline
    # =========================================================================

    def extract_and_match_features(self) -> Tuple[List[CameraIntrinsicsPrior], List[ImagePairMatch]]:
        """
        Run extraction on every image, then match

        Returns:
            (one prior per added image, in insertion order; verified matches)
        """
        num_workers = max(1, min(self.options.num_threads, len(self._image_paths)))

        with ThreadPoolExecutor(max_workers=num_workers) as executor:
            futures = {}
            for image_path in self._image_paths:
                if not os.path.isfile(image_path):
                    logger.error(f"Could not extract features for {image_path} "
                                 f"because the file cannot be found.")
                    continue
                futures[executor.submit(self._process_image, image_path)] = image_path

            wait(futures)

        for future, image_path in futures.items():
            error = future.exception()
            if error is not None:
                logger.warning(f"Processing {image_path} failed: {error}")

        logger.info("Matching images...")
        matches = self.matcher.match_images()

        intrinsics = [self._intrinsics.get(path, CameraIntrinsicsPrior()).copy()
                      for path in self._image_paths]
        return intrinsics, matches

    def _process_image(self, image_path: str):
        with self._intrinsics_lock:
            intrinsics = self._intrinsics.get(image_path, CameraIntrinsicsPrior()).copy()
        mask_path = self._masks.get(image_path, "")

        if not intrinsics.focal_length.is_set:
            if not self.exif_reader.extract_exif_metadata(image_path, intrinsics):
                if self.options.only_calibrated_views:
                    raise IOError(f"Could not read image metadata of {image_path}")
                logger.warning(f"Could not read image metadata of {image_path}, "
                               f"taking the image size from the decoded image")
                self._set_image_size_from_pixels(image_path, intrinsics)

            if not self.options.only_calibrated_views and not intrinsics.focal_length.is_set:
                logger.debug(f"No EXIF focal length for {image_path}, using a default value")
                intrinsics.focal_length.set(
                    DEFAULT_FOCAL_LENGTH_RATIO * max(intrinsics.image_width, intrinsics.image_height))

            with self._intrinsics_lock:
                self._intrinsics[image_path] = intrinsics

        if self.options.only_calibrated_views and not intrinsics.focal_length.is_set:
            logger.info(f"Image {image_path} did not contain an EXIF focal length. Skipping this image.")
            return
        logger.info(f"Image {image_path} is initialized with the focal length: "
                    f"{intrinsics.focal_length.value}")

        image_name = os.path.basename(image_path)
        matcher_options = self.options.feature_matcher_options
        features_path = feature_filepath(matcher_options.keypoints_and_descriptors_output_dir, image_name)
        if matcher_options.match_out_of_core and os.path.exists(features_path):
            with self._matcher_lock:
                self.matcher.add_image(image_name, intrinsics=intrinsics)
            return

        keypoints, descriptors = self._extract_features(image_path, mask_path)

        with self._matcher_lock:
            self.matcher.add_image(image_name, keypoints, descriptors, intrinsics)

    @staticmethod
    def _set_image_size_from_pixels(image_path: str, intrinsics: CameraIntrinsicsPrior):
        image = load_image(image_path)
        if image is None:
            raise IOError(f"Could not decode image {image_path}")
        intrinsics.image_height, intrinsics.image_width = image.shape[:2]

    def _extract_features(self, image_path: str, mask_path: str) -> Tuple[np.ndarray, np.ndarray]:
        image = load_image(image_path)
        if image is None:
            raise IOError(f"Could not decode image {image_path}")

        extractor = self.extractor_factory(self.options)
        result = extractor.detect_and_extract_descriptors(image)
        if result is None:
            logger.error(f"Could not extract descriptors in image {image_path}")
            return np.zeros((0, 2)), np.zeros((0, 0), dtype=np.float32)
        keypoints, descriptors = result
        keypoints = np.asarray(keypoints, dtype=np.float64).reshape(-1, 2)

        if mask_path:
            mask = load_mask(mask_path)
            if mask is None:
                raise IOError(f"Could not decode mask {mask_path}")
            if mask.shape[:2] != image.shape[:2]:
                raise ValueError(
                    f"The image and the mask don't have the same size: "
                    f"{image_path} ({image.shape[1]} x {image.shape[0]}), "
                    f"{mask_path} ({mask.shape[1]} x {mask.shape[0]})")
            if len(keypoints) > 0:
                keep = _interpolate_mask(mask, keypoints) >= MASK_THRESHOLD
                keypoints = keypoints[keep]
                descriptors = descriptors[keep]

        if len(keypoints) > self.options.max_num_features:
            keypoints = keypoints[:self.options.max_num_features]
            descriptors = descriptors[:self.options.max_num_features]

        logger.debug(f"Successfully extracted {len(keypoints)} features from image {image_path}"
                     + (" with an image mask." if mask_path else ""))
        return keypoints, descriptors
