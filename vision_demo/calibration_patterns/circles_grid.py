"""
Circle Grid Patterns
====================

Symmetric and asymmetric grids of dark circles on a light background.
Detection uses OpenCV's blob-based circle grid finder; no sub-pixel
refinement is needed since circle centers are already sub-pixel accurate.
"""

import cv2
import numpy as np
from typing import Tuple, Optional
from .base import CalibrationPattern


class CirclesGrid(CalibrationPattern):
    """Symmetric grid of circles (2D planar)."""

    PATTERN_INFO = {
        'id': 'CIRCLES_GRID',
        'name': 'Circles Grid',
        'category': 'circles'
    }

    DETECTION_FLAGS = cv2.CALIB_CB_SYMMETRIC_GRID

    def __init__(self, width: int, height: int, square_size: float):
        """
        Initialize circles grid.

        Args:
            width: Number of circles per row
            height: Number of rows
            square_size: Distance between neighbouring circle centers
        """
        super().__init__(
            pattern_id=self.PATTERN_INFO['id'],
            name=self.PATTERN_INFO['name'],
            description="Regular grid of dark circles",
            width=width,
            height=height,
            square_size=square_size
        )

    def detect_corners(self, image: np.ndarray, **kwargs) -> Tuple[bool, Optional[np.ndarray], Optional[np.ndarray]]:
        """Detect circle centers with cv2.findCirclesGrid."""
        gray = self.convert_to_grayscale(image)
        ret, centers = cv2.findCirclesGrid(gray, self.get_pattern_size(), flags=self.DETECTION_FLAGS)
        return ret, centers if ret else None, None

    def generate_object_points(self) -> np.ndarray:
        """Generate 3D object points for a symmetric grid (planar, z=0)."""
        return self.generate_planar_object_points(self.width, self.height, self.square_size)

    def _circle_centers(self, spacing: int, border_pixels: int):
        """Pixel centers of all circles, in detection order."""
        objp = self.generate_object_points()[:, :2] / self.square_size
        return [(int(border_pixels + spacing * (x + 1)), int(border_pixels + spacing * (y + 1)))
                for x, y in objp]

    def _image_extent(self, spacing: int) -> Tuple[int, int]:
        return (self.width + 1) * spacing, (self.height + 1) * spacing

    def generate_pattern_image(self, pixel_per_square: int = 100,
                               border_pixels: int = 0) -> np.ndarray:
        """
        Generate a circle grid image for display or printing.

        Args:
            pixel_per_square: Distance between circle centers in pixels
            border_pixels: Extra white border in pixels

        Returns:
            Generated image as numpy array
        """
        extent_x, extent_y = self._image_extent(pixel_per_square)
        image = np.ones((extent_y + 2 * border_pixels, extent_x + 2 * border_pixels, 3),
                        dtype=np.uint8) * 255
        radius = max(2, pixel_per_square // 4)
        for center in self._circle_centers(pixel_per_square, border_pixels):
            cv2.circle(image, center, radius, (0, 0, 0), -1, cv2.LINE_AA)
        return image


class AsymmetricCirclesGrid(CirclesGrid):
    """Asymmetric grid of circles, every other row shifted by half a period."""

    PATTERN_INFO = {
        'id': 'ASYMMETRIC_CIRCLES_GRID',
        'name': 'Asymmetric Circles Grid',
        'category': 'circles'
    }

    DETECTION_FLAGS = cv2.CALIB_CB_ASYMMETRIC_GRID

    def generate_object_points(self) -> np.ndarray:
        """Row i, column j sits at ((2j + i % 2) * s, i * s, 0)."""
        objp = np.zeros((self.width * self.height, 3), np.float32)
        idx = 0
        for i in range(self.height):
            for j in range(self.width):
                objp[idx] = ((2 * j + i % 2) * self.square_size, i * self.square_size, 0)
                idx += 1
        return objp

    def _image_extent(self, spacing: int) -> Tuple[int, int]:
        return 2 * self.width * spacing + spacing, (self.height + 1) * spacing
