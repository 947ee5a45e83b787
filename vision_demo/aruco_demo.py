"""
ArUco Table Demo
================

Marker viewer: every frame is (optionally) undistorted, searched for
markers, used to update the table model, and then either shown with
overlays or replaced by the rectified table image.
"""

from typing import Optional

import cv2
import numpy as np

from .aruco import detect_aruco_on_frame, draw_markers_on_frame
from .frame_source import FrameSource
from .intrinsic_calibration import IntrinsicCalibrator
from .table import Table


WINDOW_NAME = "Aruco Demo"


class ArucoDemo:
    """Per-frame marker detection and table rectification."""

    def __init__(self, dictionary, parameters, table: Optional[Table] = None,
                 calibrator: Optional[IntrinsicCalibrator] = None,
                 draw_markers: bool = False, draw_table: bool = False,
                 warp_table: bool = True):
        """
        Args:
            dictionary: cv2.aruco dictionary
            parameters: cv2.aruco detector parameters
            table: Table model (default 1200x600 with corner IDs 0-3)
            calibrator: Loaded calibration used to undistort frames first
            draw_markers: Outline detected markers
            draw_table: Outline the table quadrilateral
            warp_table: Replace the frame by the rectified table once all
                corners are known
        """
        self.dictionary = dictionary
        self.parameters = parameters
        self.table = table if table is not None else Table()
        self.calibrator = calibrator
        self.draw_markers = draw_markers
        self.draw_table = draw_table
        self.warp_table = warp_table

        self.found = []
        self.rejected = []
        self.frames_processed = 0

    def process_frame(self, frame: np.ndarray) -> np.ndarray:
        """Run one frame through the pipeline and return the image to display."""
        if self.calibrator is not None:
            frame = self.calibrator.undistort(frame)

        self.found, self.rejected = detect_aruco_on_frame(frame, self.dictionary, self.parameters)

        if self.draw_markers:
            draw_markers_on_frame(frame, self.found)

        self.table.update_table_on_frame(self.found)

        if self.draw_table:
            self.table.draw_table_on_frame(frame)

        if self.warp_table:
            frame = self.table.get_table_from_frame(frame)

        self.frames_processed += 1
        return frame

    def run(self, source: FrameSource, show: bool = True,
            max_frames: Optional[int] = None, verbose: bool = False) -> int:
        """
        Process frames until the input ends or a key is pressed.

        Args:
            source: Frame provider
            show: Display frames in a HighGUI window
            max_frames: Stop after this many frames
            verbose: Print detected marker IDs per frame

        Returns:
            Number of processed frames
        """
        processed = 0
        if show:
            cv2.namedWindow(WINDOW_NAME)
        try:
            for frame in source:
                output = self.process_frame(frame)
                processed += 1

                if verbose:
                    ids = [m.id for m in self.found]
                    print(f"Frame {processed}: markers {ids}, table complete: {self.table.is_complete}")

                if show:
                    cv2.imshow(WINDOW_NAME, output)
                    if cv2.waitKey(10) >= 0:
                        break

                if max_frames is not None and processed >= max_frames:
                    break
        finally:
            source.release()
            if show:
                cv2.destroyWindow(WINDOW_NAME)
        return processed
