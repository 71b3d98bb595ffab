"""
Feature extraction, EXIF priors and descriptor matching.
"""

from .descriptor_extractor import (
    OpenCVDescriptorExtractor,
    create_descriptor_extractor,
    load_image,
    load_mask,
)
from .exif_reader import ExifReader
from .features_io import FeatureCache, feature_filepath, read_features, write_features
from .feature_matcher import BruteForceFeatureMatcher, export_matches_summary_csv
from .extractor_and_matcher import FeatureExtractorAndMatcher

__all__ = [
    'OpenCVDescriptorExtractor',
    'create_descriptor_extractor',
    'load_image',
    'load_mask',
    'ExifReader',
    'FeatureCache',
    'feature_filepath',
    'read_features',
    'write_features',
    'BruteForceFeatureMatcher',
    'export_matches_summary_csv',
    'FeatureExtractorAndMatcher',
]
