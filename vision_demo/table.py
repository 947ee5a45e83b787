"""
Table Model
===========

A rectangular table whose corners are tagged with four ArUco markers.
Marker centers found in each frame update the table's image-space
quadrilateral; corners that are not seen keep their last known position,
so a briefly occluded marker does not make the table disappear.

Once all four corners are known the table can be outlined on the frame or
rectified into a ``width`` x ``height`` top-down image.
"""

from typing import Dict, List, Optional, Sequence, Tuple

import cv2
import numpy as np

from .aruco import ArucoMarker


CORNER_NAMES = ("top-left", "top-right", "bottom-right", "bottom-left")


class Table:
    """Table overlay driven by four corner markers."""

    def __init__(self, width: int = 1200, height: int = 600,
                 corner_ids: Sequence[int] = (0, 1, 2, 3)):
        """
        Args:
            width: Width of the rectified table image in pixels
            height: Height of the rectified table image in pixels
            corner_ids: Marker IDs at the top-left, top-right, bottom-right
                and bottom-left corners
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Table size must be positive, got {width}x{height}")
        if len(corner_ids) != 4 or len(set(corner_ids)) != 4:
            raise ValueError("Exactly four distinct corner marker IDs are required")

        self.width = width
        self.height = height
        self.corner_ids = tuple(int(i) for i in corner_ids)
        self.corners: Dict[int, Tuple[float, float]] = {}

    def reset(self):
        """Forget all corner positions."""
        self.corners.clear()

    @property
    def is_complete(self) -> bool:
        return all(marker_id in self.corners for marker_id in self.corner_ids)

    def update_table_on_frame(self, markers: List[ArucoMarker]) -> int:
        """
        Update corner positions from the markers detected in a frame.

        Returns:
            Number of corners updated
        """
        updated = 0
        for marker in markers:
            if marker.id in self.corner_ids:
                self.corners[marker.id] = marker.center
                updated += 1
        return updated

    def get_quad(self) -> Optional[np.ndarray]:
        """Image-space table corners (4x2 float32, clockwise from top-left), or None."""
        if not self.is_complete:
            return None
        return np.array([self.corners[i] for i in self.corner_ids], dtype=np.float32)

    def get_destination_quad(self) -> np.ndarray:
        return np.array([
            [0, 0],
            [self.width - 1, 0],
            [self.width - 1, self.height - 1],
            [0, self.height - 1]
        ], dtype=np.float32)

    def get_homography(self) -> Optional[np.ndarray]:
        """Perspective transform from the frame to the rectified table, or None."""
        quad = self.get_quad()
        if quad is None:
            return None
        return cv2.getPerspectiveTransform(quad, self.get_destination_quad())

    def draw_table_on_frame(self, frame: np.ndarray,
                            color: Tuple[int, int, int] = (0, 200, 255)) -> np.ndarray:
        """Draw known corners and, when complete, the table outline (in place)."""
        for marker_id, name in zip(self.corner_ids, CORNER_NAMES):
            if marker_id not in self.corners:
                continue
            x, y = (int(round(v)) for v in self.corners[marker_id])
            cv2.circle(frame, (x, y), 6, color, -1)
            cv2.putText(frame, f"{marker_id} {name}", (x + 8, y - 8),
                        cv2.FONT_HERSHEY_SIMPLEX, 0.5, color, 1, cv2.LINE_AA)

        quad = self.get_quad()
        if quad is not None:
            cv2.polylines(frame, [quad.astype(np.int32).reshape(-1, 1, 2)], True, color, 2)
        return frame

    def get_table_from_frame(self, frame: np.ndarray) -> np.ndarray:
        """Rectified ``width`` x ``height`` table image, or the frame itself if incomplete."""
        homography = self.get_homography()
        if homography is None:
            return frame
        return cv2.warpPerspective(frame, homography, (self.width, self.height))
