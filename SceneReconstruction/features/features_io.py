"""
On-disk storage of per-image keypoints and descriptors.

Each image's features live in <output_dir>/<image filename>.features as a
pickled dictionary. A small thread-safe LRU cache keeps recently used feature
sets in memory while matching out of core.
"""

import os
import pickle
import threading
from collections import OrderedDict
from pathlib import Path
from typing import Callable, Dict, Optional, Tuple

import numpy as np

from ..logger import get_logger

logger = get_logger("features.io")


FEATURES_EXTENSION = ".features"

Features = Tuple[np.ndarray, np.ndarray]


def feature_filepath(output_dir: str, image_name: str) -> str:
    """Path of the feature file of an image (by filename, not full path)"""
    return os.path.join(output_dir, os.path.basename(image_name) + FEATURES_EXTENSION)


def write_features(filepath: str, keypoints: np.ndarray, descriptors: np.ndarray):
    """
    Write the features of one image

    Args:
        filepath: Output path (parent directories are created)
        keypoints: (N, 2) pixel coordinates
        descriptors: (N, D) descriptors
    """
    path = Path(filepath)
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, 'wb') as f:
        pickle.dump({
            'keypoints': np.asarray(keypoints, dtype=np.float64),
            'descriptors': np.asarray(descriptors),
        }, f, protocol=pickle.HIGHEST_PROTOCOL)


def read_features(filepath: str) -> Features:
    """
    Read the features of one image

    Raises:
        FileNotFoundError: If the file doesn't exist
        pickle.UnpicklingError: If the file is corrupted
    """
    path = Path(filepath)
    if not path.exists():
        raise FileNotFoundError(f"Feature file not found: {filepath}")

    try:
        with open(path, 'rb') as f:
            data = pickle.load(f)
    except pickle.UnpicklingError as e:
        raise pickle.UnpicklingError(f"Corrupted feature file: {filepath}") from e

    return data['keypoints'], data['descriptors']


class FeatureCache:
    """
    LRU cache of feature sets keyed by image name.

    Usage:
        cache = FeatureCache(128, loader=lambda name: read_features(...))
        keypoints, descriptors = cache.get('img.jpg')
    """

    def __init__(self, capacity: int, loader: Callable[[str], Features]):
        if capacity <= 0:
            raise ValueError(f"Cache capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._loader = loader
        self._entries: "OrderedDict[str, Features]" = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, name: str) -> Features:
        with self._lock:
            if name in self._entries:
                self._entries.move_to_end(name)
                self.hits += 1
                return self._entries[name]
            self.misses += 1

        # Load outside the lock; concurrent misses on one name load it twice
        features = self._loader(name)

        with self._lock:
            self._entries[name] = features
            self._entries.move_to_end(name)
            while len(self._entries) > self.capacity:
                self._entries.popitem(last=False)
        return features

    def __len__(self) -> int:
        return len(self._entries)

    def get_stats(self) -> Dict[str, float]:
        total = self.hits + self.misses
        return {
            'size': len(self._entries),
            'capacity': self.capacity,
            'hits': self.hits,
            'misses': self.misses,
            'hit_rate': self.hits / total if total > 0 else 0.0,
        }
