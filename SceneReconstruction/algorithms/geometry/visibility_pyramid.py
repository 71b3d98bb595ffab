"""
Visibility pyramid for scoring the spatial distribution of image points.

Level l divides the image into a 2^(l+1) x 2^(l+1) grid. The score counts the
occupied cells of every level weighted by the grid resolution, so points that
are spread across the image score higher than the same number of clustered
points.
"""

import numpy as np


class VisibilityPyramid:
    """Multi-resolution occupancy grid over an image"""

    def __init__(self, width: int, height: int, num_levels: int):
        if width <= 0 or height <= 0:
            raise ValueError(f"Image size must be positive, got ({width}, {height})")
        if num_levels <= 0:
            raise ValueError(f"num_levels must be positive, got {num_levels}")

        self.width = width
        self.height = height
        self.num_levels = num_levels
        self._levels = [np.zeros((1 << (level + 1), 1 << (level + 1)), dtype=np.int32)
                        for level in range(num_levels)]

    def add_point(self, point):
        x, y = float(point[0]), float(point[1])
        for grid in self._levels:
            num_cells = grid.shape[0]
            col = int(np.clip(x * num_cells / self.width, 0, num_cells - 1))
            row = int(np.clip(y * num_cells / self.height, 0, num_cells - 1))
            grid[row, col] += 1

    def add_points(self, points: np.ndarray):
        for point in np.asarray(points).reshape(-1, 2):
            self.add_point(point)

    def compute_score(self) -> int:
        score = 0
        for grid in self._levels:
            score += int(np.count_nonzero(grid)) * grid.shape[0]
        return score
