"""
Tests for the concurrent feature extraction and matching pipeline.

Detection, EXIF parsing and matching are replaced by small fakes so that the
tests exercise the scheduling, prior resolution and filtering logic only.
"""

import logging
import threading

import cv2
import numpy as np
import pytest

from SceneReconstruction.config import FeatureExtractorAndMatcherOptions, FeatureMatcherOptions
from SceneReconstruction.core.interfaces.base_extractor import DescriptorExtractor
from SceneReconstruction.core.interfaces.base_matcher import FeatureMatcher, ImagePairMatch
from SceneReconstruction.core.structures import CameraIntrinsicsPrior
from SceneReconstruction.features import FeatureExtractorAndMatcher, write_features


IMAGE_WIDTH = 100
IMAGE_HEIGHT = 80

KEYPOINTS = np.array([[10.0, 40.0], [20.0, 10.0], [90.0, 40.0], [80.0, 70.0], [30.0, 60.0]])


class FakeExtractor(DescriptorExtractor):
    def __init__(self, result):
        super().__init__()
        self.result = result

    def detect_and_extract_descriptors(self, image):
        return self.result


class FakeExifReader:
    def __init__(self, focal_length=None, readable=True):
        self.focal_length = focal_length
        self.readable = readable
        self.calls = []

    def extract_exif_metadata(self, image_path, prior):
        self.calls.append(image_path)
        if not self.readable:
            return False
        prior.image_width = IMAGE_WIDTH
        prior.image_height = IMAGE_HEIGHT
        if self.focal_length is not None:
            prior.focal_length.set(self.focal_length)
        return True


class RecordingMatcher(FeatureMatcher):
    def __init__(self):
        self.added = {}
        self.pairs = None
        self.match_calls = 0
        self._lock = threading.Lock()

    def add_image(self, name, keypoints=None, descriptors=None, intrinsics=None):
        with self._lock:
            self.added[name] = (keypoints, descriptors, intrinsics)

    def set_image_pairs_to_match(self, pairs):
        self.pairs = list(pairs)

    def match_images(self):
        self.match_calls += 1
        return [ImagePairMatch(image1=a, image2=b) for a, b in (self.pairs or [])]


def _write_image(directory, name, width=IMAGE_WIDTH, height=IMAGE_HEIGHT):
    path = directory / name
    cv2.imwrite(str(path), np.full((height, width, 3), 128, dtype=np.uint8))
    return str(path)


def _pipeline(options=None, exif_reader=None, result=None, extractor_calls=None):
    descriptors = np.arange(len(KEYPOINTS) * 4, dtype=np.float32).reshape(-1, 4)
    if result is None:
        result = (KEYPOINTS.copy(), descriptors)

    def factory(_options):
        if extractor_calls is not None:
            extractor_calls.append(1)
        return FakeExtractor(result)

    matcher = RecordingMatcher()
    pipeline = FeatureExtractorAndMatcher(options or FeatureExtractorAndMatcherOptions(num_threads=4),
                                          extractor_factory=factory,
                                          exif_reader=exif_reader or FakeExifReader(),
                                          matcher=matcher)
    return pipeline, matcher


# =============================================================================
# Prior resolution
# =============================================================================

def test_given_prior_skips_exif(tmp_path):
    exif = FakeExifReader(focal_length=50.0)
    pipeline, matcher = _pipeline(exif_reader=exif)
    prior = CameraIntrinsicsPrior.from_focal_length(321.0, IMAGE_WIDTH, IMAGE_HEIGHT)
    pipeline.add_image(_write_image(tmp_path, 'a.png'), prior)

    priors, _ = pipeline.extract_and_match_features()

    assert exif.calls == []
    assert priors[0].focal_length.value == 321.0
    assert matcher.added['a.png'][2].focal_length.value == 321.0


def test_exif_focal_length_is_used(tmp_path):
    pipeline, matcher = _pipeline(exif_reader=FakeExifReader(focal_length=95.0))
    pipeline.add_image(_write_image(tmp_path, 'a.png'))

    priors, _ = pipeline.extract_and_match_features()

    assert priors[0].focal_length.value == 95.0
    assert priors[0].image_width == IMAGE_WIDTH
    assert 'a.png' in matcher.added


def test_missing_focal_length_falls_back_to_image_size(tmp_path):
    pipeline, matcher = _pipeline()
    pipeline.add_image(_write_image(tmp_path, 'a.png'))

    priors, _ = pipeline.extract_and_match_features()

    assert priors[0].focal_length.is_set
    assert priors[0].focal_length.value == pytest.approx(1.2 * IMAGE_WIDTH)
    assert matcher.added['a.png'][2].focal_length.value == pytest.approx(1.2 * IMAGE_WIDTH)


def test_only_calibrated_views_skips_uncalibrated_images(tmp_path):
    options = FeatureExtractorAndMatcherOptions(num_threads=2, only_calibrated_views=True)
    pipeline, matcher = _pipeline(options=options)
    pipeline.add_image(_write_image(tmp_path, 'a.png'))
    pipeline.add_image(_write_image(tmp_path, 'b.png'),
                       CameraIntrinsicsPrior.from_focal_length(100.0, IMAGE_WIDTH, IMAGE_HEIGHT))

    priors, _ = pipeline.extract_and_match_features()

    assert list(matcher.added) == ['b.png']
    assert not priors[0].focal_length.is_set
    assert priors[0].image_width == IMAGE_WIDTH
    assert priors[1].focal_length.value == 100.0


def test_unreadable_metadata_falls_back_to_decoded_size(tmp_path, caplog):
    pipeline, matcher = _pipeline(exif_reader=FakeExifReader(readable=False))
    pipeline.add_image(_write_image(tmp_path, 'a.png', width=200, height=150))

    with caplog.at_level(logging.WARNING):
        priors, _ = pipeline.extract_and_match_features()

    assert list(matcher.added) == ['a.png']
    assert priors[0].image_width == 200
    assert priors[0].image_height == 150
    assert priors[0].focal_length.value == pytest.approx(1.2 * 200)
    assert matcher.added['a.png'][2].focal_length.value == pytest.approx(1.2 * 200)
    assert any('a.png' in record.getMessage() for record in caplog.records)


def test_unreadable_metadata_skips_image_when_only_calibrated(tmp_path, caplog):
    options = FeatureExtractorAndMatcherOptions(num_threads=2, only_calibrated_views=True)
    pipeline, matcher = _pipeline(options=options, exif_reader=FakeExifReader(readable=False))
    pipeline.add_image(_write_image(tmp_path, 'a.png'))
    pipeline.add_image(_write_image(tmp_path, 'b.png'),
                       CameraIntrinsicsPrior.from_focal_length(100.0))

    with caplog.at_level(logging.WARNING):
        priors, _ = pipeline.extract_and_match_features()

    assert list(matcher.added) == ['b.png']
    assert len(priors) == 2
    assert not priors[0].focal_length.is_set
    assert any('a.png' in record.getMessage() for record in caplog.records)


# =============================================================================
# Scheduling
# =============================================================================

def test_missing_file_is_skipped(tmp_path, caplog):
    pipeline, matcher = _pipeline()
    pipeline.add_image(_write_image(tmp_path, 'a.png'))
    pipeline.add_image(str(tmp_path / 'missing.png'))

    with caplog.at_level(logging.ERROR):
        priors, _ = pipeline.extract_and_match_features()

    assert list(matcher.added) == ['a.png']
    assert matcher.match_calls == 1
    assert len(priors) == 2
    assert not priors[1].focal_length.is_set
    assert any('cannot be found' in record.getMessage() for record in caplog.records)


def test_priors_follow_insertion_order(tmp_path):
    pipeline, _ = _pipeline()
    focal_lengths = [110.0, 220.0, 330.0, 440.0, 550.0]
    for i, focal_length in enumerate(focal_lengths):
        pipeline.add_image(_write_image(tmp_path, f'img{i}.png'),
                           CameraIntrinsicsPrior.from_focal_length(focal_length))

    priors, _ = pipeline.extract_and_match_features()

    assert [p.focal_length.value for p in priors] == focal_lengths


def test_registered_names_are_basenames(tmp_path):
    pipeline, matcher = _pipeline()
    subdir = tmp_path / 'nested'
    subdir.mkdir()
    pipeline.add_image(_write_image(subdir, 'a.png'))
    pipeline.add_image(_write_image(subdir, 'b.png'))
    pipeline.set_pairs_to_match([(str(subdir / 'a.png'), str(subdir / 'b.png'))])

    _, matches = pipeline.extract_and_match_features()

    assert sorted(matcher.added) == ['a.png', 'b.png']
    assert matcher.pairs == [('a.png', 'b.png')]
    assert [(m.image1, m.image2) for m in matches] == [('a.png', 'b.png')]


def test_empty_pipeline():
    pipeline, matcher = _pipeline()
    priors, matches = pipeline.extract_and_match_features()
    assert priors == []
    assert matches == []
    assert matcher.match_calls == 1


# =============================================================================
# Feature filtering
# =============================================================================

def test_features_are_capped(tmp_path):
    options = FeatureExtractorAndMatcherOptions(max_num_features=3)
    pipeline, matcher = _pipeline(options=options)
    pipeline.add_image(_write_image(tmp_path, 'a.png'))

    pipeline.extract_and_match_features()

    keypoints, descriptors, _ = matcher.added['a.png']
    assert np.allclose(keypoints, KEYPOINTS[:3])
    assert len(descriptors) == 3


def test_mask_discards_features(tmp_path):
    pipeline, matcher = _pipeline()
    image_path = _write_image(tmp_path, 'a.png')
    mask = np.zeros((IMAGE_HEIGHT, IMAGE_WIDTH), dtype=np.uint8)
    mask[:, :IMAGE_WIDTH // 2] = 255
    mask_path = str(tmp_path / 'a_mask.png')
    cv2.imwrite(mask_path, mask)

    pipeline.add_image(image_path)
    assert pipeline.add_mask_for_features_extraction(image_path, mask_path)
    pipeline.extract_and_match_features()

    keypoints, descriptors, _ = matcher.added['a.png']
    assert np.allclose(keypoints, KEYPOINTS[[0, 1, 4]])
    assert np.allclose(descriptors[:, 0], [0.0, 4.0, 16.0])


def test_mask_size_mismatch_isolates_the_image(tmp_path):
    pipeline, matcher = _pipeline()
    image_path = _write_image(tmp_path, 'a.png')
    mask_path = _write_image(tmp_path, 'mask.png', width=50, height=50)
    pipeline.add_image(image_path)
    pipeline.add_image(_write_image(tmp_path, 'b.png'))
    pipeline.add_mask_for_features_extraction(image_path, mask_path)

    pipeline.extract_and_match_features()

    assert list(matcher.added) == ['b.png']


def test_undecodable_image_isolates_the_image(tmp_path):
    pipeline, matcher = _pipeline()
    bad_path = tmp_path / 'bad.png'
    bad_path.write_bytes(b'not an image')
    pipeline.add_image(str(bad_path), CameraIntrinsicsPrior.from_focal_length(100.0))

    pipeline.extract_and_match_features()

    assert matcher.added == {}


def test_failed_extraction_registers_empty_features(tmp_path):
    pipeline, matcher = _pipeline(result=None)
    pipeline.extractor_factory = lambda _options: FakeExtractor(None)
    pipeline.add_image(_write_image(tmp_path, 'a.png'))

    pipeline.extract_and_match_features()

    keypoints, descriptors, _ = matcher.added['a.png']
    assert len(keypoints) == 0
    assert len(descriptors) == 0


# =============================================================================
# Out-of-core matching
# =============================================================================

def test_existing_feature_file_skips_extraction(tmp_path):
    feature_dir = tmp_path / 'features'
    write_features(str(feature_dir / 'a.png.features'), KEYPOINTS, np.zeros((5, 4), dtype=np.float32))
    options = FeatureExtractorAndMatcherOptions(
        feature_matcher_options=FeatureMatcherOptions(
            match_out_of_core=True,
            keypoints_and_descriptors_output_dir=str(feature_dir)))
    extractor_calls = []
    pipeline, matcher = _pipeline(options=options, extractor_calls=extractor_calls)
    pipeline.add_image(_write_image(tmp_path, 'a.png'))
    pipeline.add_image(_write_image(tmp_path, 'b.png'))

    pipeline.extract_and_match_features()

    assert len(extractor_calls) == 1
    keypoints, descriptors, intrinsics = matcher.added['a.png']
    assert keypoints is None and descriptors is None
    assert intrinsics.focal_length.is_set
    assert matcher.added['b.png'][0] is not None


# =============================================================================
# Default matcher
# =============================================================================

def test_default_matcher_options_are_overridden():
    matcher_options = FeatureMatcherOptions(num_threads=1,
                                            min_num_feature_matches=5,
                                            perform_geometric_verification=False,
                                            lowe_ratio=0.7)
    options = FeatureExtractorAndMatcherOptions(num_threads=3,
                                                min_num_inlier_matches=42,
                                                feature_matcher_options=matcher_options)
    pipeline = FeatureExtractorAndMatcher(options)

    assert pipeline.matcher.options.num_threads == 3
    assert pipeline.matcher.options.min_num_feature_matches == 42
    assert pipeline.matcher.options.min_num_inlier_matches == 42
    assert pipeline.matcher.options.perform_geometric_verification
    assert pipeline.matcher.options.lowe_ratio == 0.7
    # The caller's options are left alone
    assert matcher_options.num_threads == 1
    assert not matcher_options.perform_geometric_verification


@pytest.mark.parametrize("kwargs", [{'num_threads': 0}, {'max_num_features': -1}])
def test_invalid_pipeline_options(kwargs):
    with pytest.raises(ValueError):
        FeatureExtractorAndMatcher(FeatureExtractorAndMatcherOptions(**kwargs), matcher=RecordingMatcher())
