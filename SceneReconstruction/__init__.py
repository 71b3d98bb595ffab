"""
SceneReconstruction - Structure-from-Motion front end

Turns a set of photographs into verified two-view relationships and keeps the
resulting views, tracks and shared camera intrinsics in a Reconstruction.

Quick Start:
    >>> from SceneReconstruction import FeatureExtractorAndMatcher, create_config_from_preset
    >>> from SceneReconstruction import options_from_config
    >>>
    >>> options = options_from_config(create_config_from_preset('balanced'))
    >>> pipeline = FeatureExtractorAndMatcher(options)
    >>> for path in image_paths:
    ...     pipeline.add_image(path)
    >>> priors, matches = pipeline.extract_and_match_features()
"""

__version__ = '1.0.0'

# =============================================================================
# LOGGING AND CONFIGURATION
# =============================================================================

from .logger import (
    setup_logger,
    get_logger,
    configure_root_logger,
    disable_console_logging,
    set_level,
)

from .config import (
    DescriptorExtractorType,
    FeatureDensity,
    MatchingStrategy,
    RansacType,
    EstimateTwoViewInfoOptions,
    FeatureMatcherOptions,
    FeatureExtractorAndMatcherOptions,
    NormalizedGraphCutOptions,
    get_default_config,
    create_config_from_preset,
    get_available_presets,
    validate_config,
    load_config,
    save_config,
    options_from_config,
)

# =============================================================================
# SCENE GRAPH
# =============================================================================

from .core.structures import (
    Feature,
    FeatureCorrespondence,
    INVALID_VIEW_ID,
    INVALID_TRACK_ID,
    INVALID_CAMERA_INTRINSICS_GROUP_ID,
    CameraIntrinsicsPrior,
    Camera,
    View,
    Track,
    TwoViewInfo,
    Reconstruction,
    TrackBuilder,
)

# =============================================================================
# ALGORITHMS
# =============================================================================

from .algorithms.geometry import (
    VisibilityPyramid,
    OpenCVEssentialMatrixSolver,
    OpenCVFundamentalMatrixSolver,
    compute_resolution_scaled_threshold,
    estimate_twoview_info,
)
from .algorithms.graph import NormalizedGraphCut

# =============================================================================
# FEATURES
# =============================================================================

from .core.interfaces import DescriptorExtractor, FeatureMatcher, ImagePairMatch
from .features import (
    BruteForceFeatureMatcher,
    ExifReader,
    FeatureExtractorAndMatcher,
    create_descriptor_extractor,
    export_matches_summary_csv,
)

__all__ = [
    '__version__',
    'setup_logger',
    'get_logger',
    'configure_root_logger',
    'disable_console_logging',
    'set_level',
    'DescriptorExtractorType',
    'FeatureDensity',
    'MatchingStrategy',
    'RansacType',
    'EstimateTwoViewInfoOptions',
    'FeatureMatcherOptions',
    'FeatureExtractorAndMatcherOptions',
    'NormalizedGraphCutOptions',
    'get_default_config',
    'create_config_from_preset',
    'get_available_presets',
    'validate_config',
    'load_config',
    'save_config',
    'options_from_config',
    'Feature',
    'FeatureCorrespondence',
    'INVALID_VIEW_ID',
    'INVALID_TRACK_ID',
    'INVALID_CAMERA_INTRINSICS_GROUP_ID',
    'CameraIntrinsicsPrior',
    'Camera',
    'View',
    'Track',
    'TwoViewInfo',
    'Reconstruction',
    'TrackBuilder',
    'VisibilityPyramid',
    'OpenCVEssentialMatrixSolver',
    'OpenCVFundamentalMatrixSolver',
    'compute_resolution_scaled_threshold',
    'estimate_twoview_info',
    'NormalizedGraphCut',
    'DescriptorExtractor',
    'FeatureMatcher',
    'ImagePairMatch',
    'BruteForceFeatureMatcher',
    'ExifReader',
    'FeatureExtractorAndMatcher',
    'create_descriptor_extractor',
    'export_matches_summary_csv',
]
