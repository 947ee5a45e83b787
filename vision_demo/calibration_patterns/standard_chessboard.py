"""
Standard Chessboard Pattern
==========================

Traditional black and white checkerboard pattern for camera calibration.
"""

import cv2
import numpy as np
from typing import Tuple, Optional
from .base import CalibrationPattern


class StandardChessboard(CalibrationPattern):
    """Standard black and white chessboard pattern (2D planar)."""

    # Pattern information for auto-discovery
    PATTERN_INFO = {
        'id': 'CHESSBOARD',
        'name': 'Standard Chessboard',
        'category': 'chessboard'
    }

    # Sub-pixel refinement used after a successful detection
    SUBPIX_WINDOW = (11, 11)
    SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_COUNT, 30, 0.1)

    def __init__(self, width: int, height: int, square_size: float):
        """
        Initialize standard chessboard.

        Args:
            width: Number of internal corners along width (columns - 1)
            height: Number of internal corners along height (rows - 1)
            square_size: Physical size of each square
        """
        super().__init__(
            pattern_id="CHESSBOARD",
            name="Standard Chessboard",
            description="Traditional black and white checkerboard pattern",
            width=width,
            height=height,
            square_size=square_size
        )

    def detect_corners(self, image: np.ndarray, **kwargs) -> Tuple[bool, Optional[np.ndarray], Optional[np.ndarray]]:
        """
        Detect corners using standard chessboard detection.

        Keyword Args:
            fast_check: Add CALIB_CB_FAST_CHECK (default True). The fast check
                rejects heavily distorted views, so fisheye lenses turn it off.
            refine: Refine the corners to sub-pixel accuracy (default True)
        """
        gray = self.convert_to_grayscale(image)

        flags = cv2.CALIB_CB_ADAPTIVE_THRESH | cv2.CALIB_CB_NORMALIZE_IMAGE
        if kwargs.get('fast_check', True):
            flags |= cv2.CALIB_CB_FAST_CHECK

        ret, corners = cv2.findChessboardCorners(gray, self.get_pattern_size(), flags)

        if ret and kwargs.get('refine', True):
            corners = cv2.cornerSubPix(gray, corners, self.SUBPIX_WINDOW, (-1, -1), self.SUBPIX_CRITERIA)

        # Standard chessboard has ordered corners, no IDs needed
        return ret, corners if ret else None, None

    def generate_object_points(self) -> np.ndarray:
        """Generate 3D object points for standard chessboard (planar, z=0)."""
        return self.generate_planar_object_points(self.width, self.height, self.square_size)

    def generate_pattern_image(self, pixel_per_square: int = 100,
                               border_pixels: int = 0) -> np.ndarray:
        """
        Generate a chessboard pattern image for display or printing.

        Args:
            pixel_per_square: Size of each square in pixels (default: 100)
            border_pixels: White border around the pattern in pixels (default: 0)

        Returns:
            Generated chessboard image as numpy array
        """
        # Calculate number of squares (corners + 1)
        squares_x = self.width + 1
        squares_y = self.height + 1

        image_width = squares_x * pixel_per_square + 2 * border_pixels
        image_height = squares_y * pixel_per_square + 2 * border_pixels

        image = np.ones((image_height, image_width, 3), dtype=np.uint8) * 255

        for row in range(squares_y):
            for col in range(squares_x):
                if (row + col) % 2 != 0:
                    continue
                x1 = border_pixels + col * pixel_per_square
                y1 = border_pixels + row * pixel_per_square
                image[y1:y1 + pixel_per_square, x1:x1 + pixel_per_square] = 0

        return image
