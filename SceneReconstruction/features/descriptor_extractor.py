"""
OpenCV keypoint detectors and descriptor extractors (SIFT, ORB, AKAZE, BRISK).
"""

from typing import Optional, Tuple

import cv2
import numpy as np

from ..config import DescriptorExtractorType, FeatureDensity
from ..core.interfaces.base_extractor import DescriptorExtractor
from ..logger import get_logger

logger = get_logger("features.extractor")


# Keypoint budget for each density setting
FEATURE_BUDGETS = {
    FeatureDensity.SPARSE: 2000,
    FeatureDensity.NORMAL: 8000,
    FeatureDensity.DENSE: 32768,
}

# Descriptors compared with Hamming distance
BINARY_DESCRIPTORS = (DescriptorExtractorType.ORB,
                      DescriptorExtractorType.AKAZE,
                      DescriptorExtractorType.BRISK)


def _create_detector(extractor_type: DescriptorExtractorType, max_features: int):
    if extractor_type == DescriptorExtractorType.SIFT:
        return cv2.SIFT_create(nfeatures=max_features)
    if extractor_type == DescriptorExtractorType.ORB:
        return cv2.ORB_create(nfeatures=max_features)
    if extractor_type == DescriptorExtractorType.AKAZE:
        return cv2.AKAZE_create()
    if extractor_type == DescriptorExtractorType.BRISK:
        return cv2.BRISK_create()
    raise ValueError(f"Unknown descriptor extractor: {extractor_type}")


class OpenCVDescriptorExtractor(DescriptorExtractor):
    """Any of the OpenCV feature2d detectors behind a single extractor interface"""

    def __init__(self,
                 extractor_type: DescriptorExtractorType = DescriptorExtractorType.SIFT,
                 feature_density: FeatureDensity = FeatureDensity.NORMAL):
        """
        Initialize the extractor

        Args:
            extractor_type: Detector / descriptor combination
            feature_density: Sets how many keypoints are kept at most
        """
        super().__init__()
        self.extractor_type = extractor_type
        self.max_features = FEATURE_BUDGETS[feature_density]
        self.detector = _create_detector(extractor_type, self.max_features)
        self.name = extractor_type.value

    @property
    def is_binary(self) -> bool:
        return self.extractor_type in BINARY_DESCRIPTORS

    def detect_and_extract_descriptors(self, image: np.ndarray) -> Optional[Tuple[np.ndarray, np.ndarray]]:
        gray = self.preprocess_image(image)
        keypoints, descriptors = self.detector.detectAndCompute(gray, None)

        if descriptors is None or len(keypoints) == 0:
            logger.debug(f"{self.name} found no keypoints")
            return np.zeros((0, 2), dtype=np.float64), np.zeros((0, 0), dtype=np.float32)

        # Strongest responses first, so truncation keeps the best keypoints
        order = np.argsort([-kp.response for kp in keypoints], kind='stable')[:self.max_features]
        points = np.array([keypoints[i].pt for i in order], dtype=np.float64).reshape(-1, 2)
        return points, descriptors[order]


def create_descriptor_extractor(extractor_type: DescriptorExtractorType = DescriptorExtractorType.SIFT,
                                feature_density: FeatureDensity = FeatureDensity.NORMAL
                                ) -> DescriptorExtractor:
    """
    Factory function to create a descriptor extractor

    Args:
        extractor_type: Detector type (enum member or its string value)
        feature_density: Keypoint budget (enum member or its string value)

    Returns:
        Initialized extractor

    Raises:
        ValueError: If the type or density is not supported
    """
    if isinstance(extractor_type, str):
        extractor_type = DescriptorExtractorType(extractor_type)
    if isinstance(feature_density, str):
        feature_density = FeatureDensity(feature_density)
    return OpenCVDescriptorExtractor(extractor_type, feature_density)


def load_image(path: str) -> Optional[np.ndarray]:
    """Read a color image, None if it cannot be decoded"""
    return cv2.imread(path, cv2.IMREAD_COLOR)


def load_mask(path: str) -> Optional[np.ndarray]:
    """Read a mask as an 8-bit grayscale image, None if it cannot be decoded"""
    return cv2.imread(path, cv2.IMREAD_GRAYSCALE)
