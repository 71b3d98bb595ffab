"""
Configuration management for the reconstruction front end.

This module provides the option dataclasses consumed by the pipeline and the
two-view estimator, predefined presets, validation, and JSON round-tripping of
configuration dictionaries.
"""

import copy
import json
import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np
import psutil

from .logger import get_logger

logger = get_logger("config")


# =============================================================================
# Enumerations
# =============================================================================

class DescriptorExtractorType(Enum):
    """Keypoint detector / descriptor combinations available through OpenCV"""
    SIFT = "SIFT"
    ORB = "ORB"
    AKAZE = "AKAZE"
    BRISK = "BRISK"


class FeatureDensity(Enum):
    """How many keypoints the extractor should aim for"""
    SPARSE = "sparse"
    NORMAL = "normal"
    DENSE = "dense"


class MatchingStrategy(Enum):
    """Descriptor matching backend"""
    BRUTE_FORCE = "brute_force"
    FLANN = "flann"


class RansacType(Enum):
    """Robust estimation scheme used by the relative pose solvers"""
    RANSAC = "ransac"
    LMEDS = "lmeds"


# =============================================================================
# Option dataclasses
# =============================================================================

@dataclass
class EstimateTwoViewInfoOptions:
    """
    Options for robust two-view geometry estimation.

    Attributes:
        ransac_type: Robust estimation scheme
        max_sampson_error_pixels: Inlier threshold for a 1024 pixel image;
            scaled to the actual image resolution
        expected_ransac_confidence: Probability of finding the true model
        min_ransac_iterations: Lower bound on sampling iterations
        max_ransac_iterations: Upper bound on sampling iterations
        use_mle: Score hypotheses by likelihood rather than inlier count
        rng: Random source shared by all estimations; None draws fresh entropy
        calibrated_solver: Relative pose solver for calibrated pairs
            (defaults to the OpenCV essential matrix solver)
        uncalibrated_solver: Solver for uncalibrated pairs
            (defaults to the OpenCV fundamental matrix solver)
    """
    ransac_type: RansacType = RansacType.RANSAC
    max_sampson_error_pixels: float = 6.0
    expected_ransac_confidence: float = 0.99
    min_ransac_iterations: int = 10
    max_ransac_iterations: int = 1000
    use_mle: bool = True
    rng: Optional[np.random.Generator] = None
    calibrated_solver: Optional[Any] = None
    uncalibrated_solver: Optional[Any] = None


@dataclass
class FeatureMatcherOptions:
    """
    Options for the descriptor matcher.

    Attributes:
        num_threads: Worker threads used to match image pairs
        match_out_of_core: Keep features on disk instead of in memory
        keypoints_and_descriptors_output_dir: Directory of the .features files
        cache_capacity: Number of images kept in memory when matching out of core
        keep_only_symmetric_matches: Require mutual nearest neighbours
        lowe_ratio: Ratio test threshold
        min_num_feature_matches: Pairs with fewer putative matches are dropped
        perform_geometric_verification: Verify pairs with the two-view estimator
        min_num_inlier_matches: Verified pairs need at least this many inliers
        geometric_verification_options: Options of the two-view estimator
    """
    num_threads: int = 1
    match_out_of_core: bool = False
    keypoints_and_descriptors_output_dir: str = ""
    cache_capacity: int = 128
    keep_only_symmetric_matches: bool = True
    lowe_ratio: float = 0.8
    min_num_feature_matches: int = 30
    perform_geometric_verification: bool = True
    min_num_inlier_matches: int = 30
    geometric_verification_options: EstimateTwoViewInfoOptions = field(
        default_factory=EstimateTwoViewInfoOptions)


@dataclass
class FeatureExtractorAndMatcherOptions:
    """
    Options for the extraction and matching pipeline.

    Attributes:
        num_threads: Size of the extraction worker pool (capped by the number of images)
        only_calibrated_views: Skip images without a known focal length
        max_num_features: Cap on the number of features kept per image
        min_num_inlier_matches: Minimum inliers for a verified pair
        matching_strategy: Descriptor matching backend
        descriptor_extractor_type: Keypoint detector / descriptor
        feature_density: Keypoint budget of the extractor
        feature_matcher_options: Options forwarded to the matcher
    """
    num_threads: int = 1
    only_calibrated_views: bool = False
    max_num_features: int = 16384
    min_num_inlier_matches: int = 30
    matching_strategy: MatchingStrategy = MatchingStrategy.BRUTE_FORCE
    descriptor_extractor_type: DescriptorExtractorType = DescriptorExtractorType.SIFT
    feature_density: FeatureDensity = FeatureDensity.NORMAL
    feature_matcher_options: FeatureMatcherOptions = field(default_factory=FeatureMatcherOptions)


@dataclass
class NormalizedGraphCutOptions:
    """Number of candidate thresholds evaluated when cutting the graph"""
    num_cuts_to_test: int = 20


# =============================================================================
# Default Configurations
# =============================================================================

DEFAULT_CONFIG = {
    'num_threads': 1,
    'only_calibrated_views': False,
    'max_num_features': 16384,
    'min_num_inlier_matches': 30,
    'descriptor_extractor_type': 'SIFT',
    'feature_density': 'normal',
    'matching_strategy': 'brute_force',
    'matcher': {
        'match_out_of_core': False,
        'keypoints_and_descriptors_output_dir': '',
        'cache_capacity': 128,
        'keep_only_symmetric_matches': True,
        'lowe_ratio': 0.8,
        'min_num_feature_matches': 30,
        'perform_geometric_verification': True,
    },
    'twoview': {
        'ransac_type': 'ransac',
        'max_sampson_error_pixels': 6.0,
        'expected_ransac_confidence': 0.99,
        'min_ransac_iterations': 10,
        'max_ransac_iterations': 1000,
        'use_mle': True,
        'seed': None,
    }
}


PRESET_CONFIGS = {
    'fast': {
        'max_num_features': 4000,
        'descriptor_extractor_type': 'ORB',
        'feature_density': 'sparse',
        'matching_strategy': 'brute_force',
        'twoview': {
            'max_ransac_iterations': 500,
        }
    },

    'balanced': {
        'max_num_features': 8000,
        'descriptor_extractor_type': 'SIFT',
        'feature_density': 'normal',
        'matching_strategy': 'flann',
    },

    'accurate': {
        'max_num_features': 32768,
        'descriptor_extractor_type': 'SIFT',
        'feature_density': 'dense',
        'matching_strategy': 'brute_force',
        'min_num_inlier_matches': 50,
        'twoview': {
            'expected_ransac_confidence': 0.999,
            'max_ransac_iterations': 5000,
        }
    },
}


# =============================================================================
# Configuration Functions
# =============================================================================

def get_default_config() -> Dict[str, Any]:
    """Get a copy of the default configuration"""
    return copy.deepcopy(DEFAULT_CONFIG)


def merge_configs(base_config: Dict[str, Any], override_config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Merge two configuration dictionaries

    Args:
        base_config: Base configuration
        override_config: Configuration to override base with

    Returns:
        Merged configuration
    """
    merged = copy.deepcopy(base_config)

    for key, value in override_config.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)

    return merged


def create_config_from_preset(preset: str) -> Dict[str, Any]:
    """
    Create configuration from a preset

    Args:
        preset: Preset name ('fast', 'balanced', 'accurate')

    Returns:
        Configuration dictionary

    Raises:
        ValueError: If preset is not available
    """
    if preset not in PRESET_CONFIGS:
        available = ', '.join(PRESET_CONFIGS.keys())
        raise ValueError(f"Unknown preset: {preset}. Available: {available}")

    return merge_configs(DEFAULT_CONFIG, PRESET_CONFIGS[preset])


def get_available_presets() -> List[str]:
    """Get list of available preset configurations"""
    return list(PRESET_CONFIGS.keys())


def validate_config(config: Dict[str, Any]) -> Dict[str, List[str]]:
    """
    Validate configuration and return any issues

    Args:
        config: Configuration to validate

    Returns:
        Dictionary with 'errors' and 'warnings' lists
    """
    errors = []
    warnings = []

    num_threads = config.get('num_threads', 1)
    if not isinstance(num_threads, int) or num_threads <= 0:
        errors.append("'num_threads' must be a positive integer")

    max_num_features = config.get('max_num_features', 1)
    if not isinstance(max_num_features, int) or max_num_features <= 0:
        errors.append("'max_num_features' must be a positive integer")

    extractor = config.get('descriptor_extractor_type', 'SIFT')
    if extractor not in [t.value for t in DescriptorExtractorType]:
        errors.append(f"Unknown descriptor extractor: {extractor}")

    density = config.get('feature_density', 'normal')
    if density not in [d.value for d in FeatureDensity]:
        errors.append(f"Unknown feature density: {density}")

    strategy = config.get('matching_strategy', 'brute_force')
    if strategy not in [s.value for s in MatchingStrategy]:
        errors.append(f"Unknown matching strategy: {strategy}")

    twoview = config.get('twoview', {})
    confidence = twoview.get('expected_ransac_confidence', 0.99)
    if not 0.0 < confidence < 1.0:
        errors.append("'expected_ransac_confidence' must be in (0, 1)")
    if twoview.get('min_ransac_iterations', 0) > twoview.get('max_ransac_iterations', 1):
        errors.append("'min_ransac_iterations' exceeds 'max_ransac_iterations'")
    if twoview.get('ransac_type', 'ransac') not in [r.value for r in RansacType]:
        errors.append(f"Unknown ransac type: {twoview.get('ransac_type')}")

    matcher = config.get('matcher', {})
    if matcher.get('match_out_of_core') and not matcher.get('keypoints_and_descriptors_output_dir'):
        errors.append("'keypoints_and_descriptors_output_dir' is required when matching out of core")
    if not 0.0 < matcher.get('lowe_ratio', 0.8) <= 1.0:
        errors.append("'lowe_ratio' must be in (0, 1]")

    # Binary descriptors are matched with Hamming distance; FLANN's KD-tree needs float descriptors
    if extractor in ('ORB', 'BRISK', 'AKAZE') and strategy == 'flann':
        warnings.append(f"{extractor} produces binary descriptors; FLANN will use an LSH index")

    return {'errors': errors, 'warnings': warnings}


def auto_adjust_config_for_hardware(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Cap the requested number of threads at the number of logical CPUs

    Args:
        config: Input configuration

    Returns:
        Adjusted copy of the configuration
    """
    adjusted_config = copy.deepcopy(config)
    cpu_count = psutil.cpu_count(logical=True) or 1

    if adjusted_config.get('num_threads', 1) > cpu_count:
        logger.warning(f"Reducing num_threads from {adjusted_config['num_threads']} "
                       f"to the {cpu_count} available CPUs")
        adjusted_config['num_threads'] = cpu_count

    return adjusted_config


def save_config(config: Dict[str, Any], filepath: str):
    """
    Save configuration to JSON file

    Args:
        config: Configuration to save
        filepath: Path to save file
    """
    with open(filepath, 'w') as f:
        json.dump(config, f, indent=2)
    logger.info(f"Configuration saved to: {filepath}")


def load_config(filepath: str) -> Dict[str, Any]:
    """
    Load configuration from JSON file

    Args:
        filepath: Path to configuration file

    Returns:
        Loaded configuration merged over the defaults

    Raises:
        FileNotFoundError: If file doesn't exist
        json.JSONDecodeError: If file is not valid JSON
    """
    if not os.path.exists(filepath):
        raise FileNotFoundError(f"Configuration file not found: {filepath}")

    with open(filepath, 'r') as f:
        config = json.load(f)

    logger.info(f"Configuration loaded from: {filepath}")
    return merge_configs(DEFAULT_CONFIG, config)


def twoview_options_from_config(config: Dict[str, Any]) -> EstimateTwoViewInfoOptions:
    """Build two-view estimation options from the 'twoview' section of a configuration"""
    twoview = merge_configs(DEFAULT_CONFIG['twoview'], config.get('twoview', {}))
    seed = twoview.get('seed')
    return EstimateTwoViewInfoOptions(
        ransac_type=RansacType(twoview['ransac_type']),
        max_sampson_error_pixels=float(twoview['max_sampson_error_pixels']),
        expected_ransac_confidence=float(twoview['expected_ransac_confidence']),
        min_ransac_iterations=int(twoview['min_ransac_iterations']),
        max_ransac_iterations=int(twoview['max_ransac_iterations']),
        use_mle=bool(twoview['use_mle']),
        rng=np.random.default_rng(seed) if seed is not None else None,
    )


def options_from_config(config: Dict[str, Any]) -> FeatureExtractorAndMatcherOptions:
    """
    Build pipeline options from a configuration dictionary

    Raises:
        ValueError: If the configuration has errors
    """
    config = merge_configs(DEFAULT_CONFIG, config)
    issues = validate_config(config)
    for warning in issues['warnings']:
        logger.warning(warning)
    if issues['errors']:
        raise ValueError("Invalid configuration: " + "; ".join(issues['errors']))

    matcher = config['matcher']
    matcher_options = FeatureMatcherOptions(
        num_threads=config['num_threads'],
        match_out_of_core=bool(matcher['match_out_of_core']),
        keypoints_and_descriptors_output_dir=matcher['keypoints_and_descriptors_output_dir'],
        cache_capacity=int(matcher['cache_capacity']),
        keep_only_symmetric_matches=bool(matcher['keep_only_symmetric_matches']),
        lowe_ratio=float(matcher['lowe_ratio']),
        min_num_feature_matches=int(matcher['min_num_feature_matches']),
        perform_geometric_verification=bool(matcher['perform_geometric_verification']),
        min_num_inlier_matches=config['min_num_inlier_matches'],
        geometric_verification_options=twoview_options_from_config(config),
    )

    return FeatureExtractorAndMatcherOptions(
        num_threads=config['num_threads'],
        only_calibrated_views=bool(config['only_calibrated_views']),
        max_num_features=config['max_num_features'],
        min_num_inlier_matches=config['min_num_inlier_matches'],
        matching_strategy=MatchingStrategy(config['matching_strategy']),
        descriptor_extractor_type=DescriptorExtractorType(config['descriptor_extractor_type']),
        feature_density=FeatureDensity(config['feature_density']),
        feature_matcher_options=matcher_options,
    )
