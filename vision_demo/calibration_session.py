"""
Interactive Calibration Session
===============================

Frame loop of the camera calibration:

- DETECTION: the pattern is detected and drawn, nothing is collected
  (live input only; press 'g' to start capturing)
- CAPTURING: detections are collected, at most one per ``Input_Delay`` ms
  for live input, until ``Calibrate_NrOfFrameToUse`` views are gathered
- CALIBRATED: the result has been saved; 'u' toggles undistortion

Image lists start in CAPTURING mode. When the input runs out before enough
views were collected, calibration runs on whatever was captured.

Keys: ESC quits, 'g' (re)starts capturing on live input, 'u' toggles the
undistorted view once calibrated.
"""

import time
from typing import List, Optional

import cv2
import numpy as np

from .intrinsic_calibration import IntrinsicCalibrator
from .settings import InputType, Settings


DETECTION = "detection"
CAPTURING = "capturing"
CALIBRATED = "calibrated"

ESC_KEY = 27
RED = (0, 0, 255)
GREEN = (0, 255, 0)
WINDOW_NAME = "Image View"


class CalibrationSession:
    """Runs the interactive calibration described by a Settings instance."""

    def __init__(self, settings: Settings, show: bool = True,
                 start_capturing: bool = False, verbose: bool = True):
        """
        Args:
            settings: Validated settings
            show: Display frames and read keys with HighGUI; when False the
                loop runs headless and no key is ever pressed
            start_capturing: Start live input in CAPTURING mode instead of
                waiting for 'g'
            verbose: Print progress
        """
        self.settings = settings
        self.show = show
        self.start_capturing = start_capturing
        self.verbose = verbose

        self.calibrator = IntrinsicCalibrator(settings)
        self.image_points: List[np.ndarray] = []
        self.image_size = None
        self.mode = DETECTION
        self.show_undistorted = settings.show_undistorted
        self.source = None
        self._prev_timestamp = 0.0

    def _calibrate(self) -> bool:
        if self.verbose:
            print(f"Running calibration with {len(self.image_points)} views")
        return self.calibrator.calibrate_and_save(self.image_points, self.image_size, verbose=self.verbose)

    def run(self) -> bool:
        """
        Run the frame loop until ESC or end of input.

        Returns:
            bool: False if the settings or input are unusable, True otherwise
        """
        s = self.settings
        if self.verbose:
            print("Initializing camera calibration process")

        if not s.good_input:
            print("❌ Invalid input detected. Application stopping.")
            for error in s.errors:
                print(f"   {error}")
            return False

        self.source = s.open_input()
        if self.source is None:
            print(f"❌ Could not open input: {s.input}")
            return False

        if s.input_type == InputType.IMAGE_LIST or self.start_capturing:
            self.mode = CAPTURING
        else:
            self.mode = DETECTION

        try:
            while True:
                if self.mode == CAPTURING and len(self.image_points) >= s.nr_frames:
                    self.mode = CALIBRATED if self._calibrate() else DETECTION

                view = self.source.next_image()
                if view is None:
                    if self.mode != CALIBRATED and self.image_points:
                        if self._calibrate():
                            self.mode = CALIBRATED
                    break

                view = self.process_frame(view)

                key = self._show_and_wait(view, 50 if self.source.is_live else s.delay)
                if key == ESC_KEY:
                    break
                if key == ord('u') and self.mode == CALIBRATED:
                    self.show_undistorted = not self.show_undistorted
                if self.source.is_live and key == ord('g'):
                    self.mode = CAPTURING
                    self.image_points = []

            if s.input_type == InputType.IMAGE_LIST and self.show_undistorted and self.show:
                self.show_undistorted_image_list()
        finally:
            self.source.release()
            if self.show:
                cv2.destroyWindow(WINDOW_NAME)

        return True

    def process_frame(self, view: np.ndarray) -> np.ndarray:
        """Detect, collect and annotate one frame; returns the frame to display."""
        s = self.settings
        self.image_size = (view.shape[1], view.shape[0])
        if s.flip_vertical:
            view = cv2.flip(view, 0)

        blink_output = False
        found, points, _ = s.calibration_pattern.detect_corners(view, fast_check=not s.use_fisheye)

        if found:
            if self.mode == CAPTURING and self._delay_elapsed():
                self.image_points.append(points)
                self._prev_timestamp = time.monotonic()
                blink_output = self.source is not None and self.source.is_live

            s.calibration_pattern.draw_corners(view, points, found)

        self.draw_status(view)

        if blink_output:
            view = cv2.bitwise_not(view)

        if self.mode == CALIBRATED and self.show_undistorted:
            view = self.calibrator.undistort(view)

        return view

    def _delay_elapsed(self) -> bool:
        if self.source is None or not self.source.is_live:
            return True
        return (time.monotonic() - self._prev_timestamp) * 1000.0 > self.settings.delay

    def status_message(self) -> str:
        if self.mode == CAPTURING:
            msg = f"{len(self.image_points)}/{self.settings.nr_frames}"
            return msg + " Undist" if self.show_undistorted else msg
        if self.mode == CALIBRATED:
            return "Calibrated"
        return "Press 'g' to start"

    def draw_status(self, view: np.ndarray) -> None:
        msg = self.status_message()
        (text_width, _), baseline = cv2.getTextSize(msg, cv2.FONT_HERSHEY_PLAIN, 1, 1)
        origin = (view.shape[1] - 2 * text_width - 10, view.shape[0] - 2 * baseline - 10)
        cv2.putText(view, msg, origin, cv2.FONT_HERSHEY_PLAIN, 1,
                    GREEN if self.mode == CALIBRATED else RED)

    def _show_and_wait(self, view: np.ndarray, delay: int) -> int:
        if not self.show:
            return -1
        cv2.imshow(WINDOW_NAME, view)
        return cv2.waitKey(max(int(delay), 1)) & 0xFF

    def show_undistorted_image_list(self) -> Optional[int]:
        """
        Replay the image list rectified with the calibration result.

        Returns:
            Number of images shown, or None if not calibrated
        """
        if not self.calibrator.is_calibrated() or self.image_size is None:
            return None

        map1, map2 = self.calibrator.build_undistort_maps(self.image_size)
        shown = 0
        for path in self.settings.image_list:
            view = cv2.imread(path, cv2.IMREAD_COLOR)
            if view is None:
                continue
            rview = cv2.remap(view, map1, map2, cv2.INTER_LINEAR)
            shown += 1
            if not self.show:
                continue
            cv2.imshow(WINDOW_NAME, rview)
            key = cv2.waitKey(0) & 0xFF
            if key in (ESC_KEY, ord('q'), ord('Q')):
                break
        return shown
