"""
Base Classes for Calibration Pattern System
==========================================

This module contains the abstract base class and common utilities
for all planar calibration patterns understood by the calibration session.
"""

import cv2
import numpy as np
from abc import ABC, abstractmethod
from typing import Tuple, Optional, Dict, Any


class CalibrationPattern(ABC):
    """Abstract base class for calibration patterns used in camera calibration."""

    def __init__(self, pattern_id: str, name: str, description: str,
                 width: int, height: int, square_size: float):
        """
        Initialize calibration pattern.

        Args:
            pattern_id: Identifier used by the settings file (e.g. "CHESSBOARD")
            name: Human-readable name of the pattern
            description: Description of the pattern
            width: Number of features along the board width
            height: Number of features along the board height
            square_size: Distance between neighbouring features in user units
        """
        self.validate_dimensions(width, height, min_size=2)
        self.validate_physical_size(square_size, "square_size")

        self.pattern_id = pattern_id
        self.name = name
        self.description = description
        self.width = width
        self.height = height
        self.square_size = square_size

    @abstractmethod
    def detect_corners(self, image: np.ndarray, **kwargs) -> Tuple[bool, Optional[np.ndarray], Optional[np.ndarray]]:
        """
        Detect pattern features in an image.

        Args:
            image: Input image (BGR or grayscale)
            **kwargs: Additional detection parameters

        Returns:
            Tuple of (success, image_points, point_ids)
            - success: Whether detection was successful
            - image_points: Detected 2D points in image coordinates, shape (N, 1, 2)
            - point_ids: Always None, every supported pattern is ordered
        """
        pass

    @abstractmethod
    def generate_object_points(self) -> np.ndarray:
        """
        Generate the 3D object points of the board, in detection order.

        Returns:
            (width*height, 3) float32 array with z=0
        """
        pass

    @abstractmethod
    def generate_pattern_image(self, **kwargs) -> np.ndarray:
        """Generate a printable image of the pattern."""
        pass

    def draw_corners(self, image: np.ndarray, corners: np.ndarray, found: bool = True) -> np.ndarray:
        """Draw detected features in place using OpenCV's board drawing."""
        if corners is not None:
            cv2.drawChessboardCorners(image, self.get_pattern_size(), corners, found)
        return image

    def get_pattern_size(self) -> Tuple[int, int]:
        """Get pattern size as (width, height)."""
        return (self.width, self.height)

    # Common utility methods that can be used by all pattern types

    def convert_to_grayscale(self, image: np.ndarray) -> np.ndarray:
        """Convert image to grayscale if needed."""
        if len(image.shape) == 3:
            return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
        return image

    def validate_dimensions(self, width: int, height: int, min_size: int = 2):
        """Validate pattern dimensions."""
        if not isinstance(width, (int, np.integer)) or not isinstance(height, (int, np.integer)):
            raise ValueError("Width and height must be integers")
        if width < min_size or height < min_size:
            raise ValueError(f"Width and height must be at least {min_size}")

    def validate_physical_size(self, size: float, parameter_name: str):
        """Validate physical size parameter."""
        if not isinstance(size, (int, float, np.floating)) or size <= 0:
            raise ValueError(f"{parameter_name} must be a positive number")

    def generate_planar_object_points(self, width: int, height: int, square_size: float) -> np.ndarray:
        """Generate 3D object points for regular planar grids (z=0), row by row."""
        objp = np.zeros((width * height, 3), np.float32)
        objp[:, :2] = np.mgrid[0:width, 0:height].T.reshape(-1, 2)
        objp *= square_size
        return objp

    # Information methods

    def get_info(self) -> Dict[str, Any]:
        """Get pattern information dictionary."""
        return {
            'pattern_id': self.pattern_id,
            'name': self.name,
            'description': self.description,
            'width': self.width,
            'height': self.height,
            'square_size': self.square_size,
            'total_features': self.width * self.height
        }

    def get_display_name(self) -> str:
        """Get display name for the pattern."""
        return f"{self.name} {self.width}×{self.height}, spacing {self.square_size:g}"
