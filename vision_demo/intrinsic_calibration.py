"""
Intrinsic Camera Calibration Module
===================================

This module handles single camera intrinsic parameter calibration.
It estimates the camera matrix and distortion coefficients from image
points collected by the calibration session, with either the pinhole
model (``cv2.calibrateCamera``) or the fisheye model
(``cv2.fisheye.calibrate``), and persists the result with
``cv2.FileStorage`` in the layout of OpenCV's calibration sample.

Usage:
    calibrator = IntrinsicCalibrator(settings)
    if calibrator.calibrate_and_save(image_points, image_size):
        undistorted = calibrator.undistort(frame)
"""

import os
import time
from typing import List, Optional, Tuple

import cv2
import numpy as np


PINHOLE_FLAG_NAMES = [
    (cv2.CALIB_USE_INTRINSIC_GUESS, "use_intrinsic_guess"),
    (cv2.CALIB_FIX_ASPECT_RATIO, "fix_aspectRatio"),
    (cv2.CALIB_FIX_PRINCIPAL_POINT, "fix_principal_point"),
    (cv2.CALIB_ZERO_TANGENT_DIST, "zero_tangent_dist"),
    (cv2.CALIB_FIX_K1, "fix_k1"),
    (cv2.CALIB_FIX_K2, "fix_k2"),
    (cv2.CALIB_FIX_K3, "fix_k3"),
    (cv2.CALIB_FIX_K4, "fix_k4"),
    (cv2.CALIB_FIX_K5, "fix_k5"),
]

FISHEYE_FLAG_NAMES = [
    (cv2.fisheye.CALIB_FIX_SKEW, "fix_skew"),
    (cv2.fisheye.CALIB_FIX_K1, "fix_k1"),
    (cv2.fisheye.CALIB_FIX_K2, "fix_k2"),
    (cv2.fisheye.CALIB_FIX_K3, "fix_k3"),
    (cv2.fisheye.CALIB_FIX_K4, "fix_k4"),
    (cv2.fisheye.CALIB_RECOMPUTE_EXTRINSIC, "recompute_extrinsic"),
]


def describe_flags(flag: int, fisheye: bool = False) -> str:
    """Human readable summary of calibration flags, e.g. ``flags: +fix_k1 +fix_k2``."""
    names = FISHEYE_FLAG_NAMES if fisheye else PINHOLE_FLAG_NAMES
    return "flags:" + "".join(f" +{name}" for value, name in names if flag & value)


class IntrinsicCalibrator:
    """
    Camera intrinsic parameter calibration.

    Attributes after a successful calibration:
    - camera_matrix: 3x3 intrinsic matrix
    - distortion_coefficients: Nx1 (pinhole, N as returned by OpenCV) or 4x1 (fisheye)
    - rvecs, tvecs: per-view extrinsics
    - rms_error: RMS error reported by the OpenCV optimizer
    - avg_reprojection_error: RMS over all points recomputed by projection
    - per_image_errors: RMS error of each view
    """

    def __init__(self, settings=None, calibration_file: Optional[str] = None):
        """
        Initialize the calibrator.

        Args:
            settings: Validated Settings instance (required to calibrate)
            calibration_file: Optional result file to load right away
        """
        self.settings = settings

        self.camera_matrix = None
        self.distortion_coefficients = None
        self.fisheye = bool(settings.use_fisheye) if settings is not None else False
        self.image_size = None

        self.rvecs = None
        self.tvecs = None
        self.rms_error = None
        self.avg_reprojection_error = None
        self.per_image_errors = None
        self.calibration_completed = False

        if calibration_file is not None:
            if not self.load_calibration(calibration_file):
                raise FileNotFoundError(f"Could not load calibration file: {calibration_file}")

    def is_calibrated(self) -> bool:
        """Check if calibration has been completed or loaded."""
        return self.calibration_completed

    def calibrate(self, image_points: List[np.ndarray], image_size: Tuple[int, int],
                  verbose: bool = False) -> Optional[dict]:
        """
        Perform intrinsic camera calibration.

        Args:
            image_points: Detected feature points of each view, (N, 1, 2) float32
            image_size: Image size as (width, height)
            verbose: Whether to print the result

        Returns:
            Optional[dict]: 'camera_matrix', 'distortion_coefficients', 'rms_error'
            and 'avg_reprojection_error', or None if OpenCV returned
            non-finite parameters.

        Raises:
            ValueError: If no settings/pattern are available or no views were given
        """
        s = self.settings
        if s is None or s.calibration_pattern is None:
            raise ValueError("Settings with a valid calibration pattern are required")
        if not image_points:
            raise ValueError("Insufficient point correspondences: no views captured")

        self.fisheye = bool(s.use_fisheye)
        image_size = (int(image_size[0]), int(image_size[1]))

        camera_matrix = np.eye(3, dtype=np.float64)
        if s.flag & cv2.CALIB_FIX_ASPECT_RATIO and not self.fisheye:
            camera_matrix[0, 0] = s.aspect_ratio

        board_points = s.calibration_pattern.generate_object_points()
        object_points = [board_points.copy() for _ in image_points]

        if self.fisheye:
            dist_coeffs = np.zeros((4, 1), dtype=np.float64)
            obj = [p.reshape(-1, 1, 3).astype(np.float64) for p in object_points]
            img = [p.reshape(-1, 1, 2).astype(np.float64) for p in image_points]
            rms, camera_matrix, dist_coeffs, rvecs, tvecs = cv2.fisheye.calibrate(
                obj, img, image_size, camera_matrix, dist_coeffs, flags=s.flag
            )
        else:
            dist_coeffs = np.zeros((8, 1), dtype=np.float64)
            img = [p.reshape(-1, 1, 2).astype(np.float32) for p in image_points]
            rms, camera_matrix, dist_coeffs, rvecs, tvecs = cv2.calibrateCamera(
                object_points, img, image_size, camera_matrix, dist_coeffs, flags=s.flag
            )

        if verbose:
            print(f"Re-projection error reported by calibrateCamera: {rms}")

        ok = bool(np.all(np.isfinite(camera_matrix)) and np.all(np.isfinite(dist_coeffs)))

        total_avg_err, per_view = self.compute_reprojection_errors(
            object_points, image_points, rvecs, tvecs, camera_matrix, dist_coeffs, self.fisheye
        )

        if verbose:
            status = "Calibration succeeded" if ok else "Calibration failed"
            print(f"{'✅' if ok else '❌'} {status}. avg re projection error = {total_avg_err}")

        if not ok:
            return None

        self.camera_matrix = camera_matrix
        self.distortion_coefficients = np.asarray(dist_coeffs, dtype=np.float64).reshape(-1, 1)
        self.image_size = image_size
        self.rvecs = [np.asarray(r, dtype=np.float64).reshape(3, 1) for r in rvecs]
        self.tvecs = [np.asarray(t, dtype=np.float64).reshape(3, 1) for t in tvecs]
        self.rms_error = float(rms)
        self.avg_reprojection_error = float(total_avg_err)
        self.per_image_errors = per_view
        self.calibration_completed = True

        return {
            'camera_matrix': self.camera_matrix.copy(),
            'distortion_coefficients': self.distortion_coefficients.flatten(),
            'rms_error': self.rms_error,
            'avg_reprojection_error': self.avg_reprojection_error
        }

    @staticmethod
    def compute_reprojection_errors(object_points, image_points, rvecs, tvecs,
                                    camera_matrix, dist_coeffs,
                                    fisheye: bool = False) -> Tuple[float, List[float]]:
        """
        Reproject the board into every view and compare with the detections.

        Returns:
            (total RMS over all points, per-view RMS list)
        """
        total_points = 0
        total_err = 0.0
        per_view_errors = []

        for obj_pts, img_pts, rvec, tvec in zip(object_points, image_points, rvecs, tvecs):
            if fisheye:
                projected, _ = cv2.fisheye.projectPoints(
                    obj_pts.reshape(-1, 1, 3).astype(np.float64), rvec, tvec, camera_matrix, dist_coeffs
                )
            else:
                projected, _ = cv2.projectPoints(obj_pts, rvec, tvec, camera_matrix, dist_coeffs)

            detected = np.asarray(img_pts, dtype=np.float64).reshape(-1, 2)
            projected = np.asarray(projected, dtype=np.float64).reshape(-1, 2)
            err = cv2.norm(detected, projected, cv2.NORM_L2)

            n = len(obj_pts)
            per_view_errors.append(float(np.sqrt(err * err / n)))
            total_err += err * err
            total_points += n

        if total_points == 0:
            return 0.0, per_view_errors
        return float(np.sqrt(total_err / total_points)), per_view_errors

    def calibrate_and_save(self, image_points: List[np.ndarray], image_size: Tuple[int, int],
                           verbose: bool = True) -> bool:
        """
        Calibrate and, on success, write the result to ``settings.output_file_name``.

        Returns:
            bool: True if calibration succeeded
        """
        try:
            result = self.calibrate(image_points, image_size, verbose=verbose)
        except (ValueError, cv2.error) as e:
            if verbose:
                print(f"❌ Calibration failed with exception: {e}")
            return False

        if result is None:
            return False

        self.save_camera_params(self.settings.output_file_name, image_points, verbose=verbose)
        return True

    def save_camera_params(self, filepath: str, image_points: Optional[List[np.ndarray]] = None,
                           verbose: bool = False) -> None:
        """
        Save calibration results with cv2.FileStorage (XML or YAML by extension).

        Args:
            filepath: Output path
            image_points: Detected points of each view, written when the
                settings ask for them
        """
        if not self.calibration_completed:
            raise ValueError("No calibration data to save. Run calibration first.")

        s = self.settings
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        fs = cv2.FileStorage(filepath, cv2.FILE_STORAGE_WRITE)
        if not fs.isOpened():
            raise IOError(f"Could not open calibration file for writing: {filepath}")

        fs.write("calibration_time", time.strftime("%c"))

        nr_views = max(len(self.rvecs or []), len(self.per_image_errors or []))
        if nr_views:
            fs.write("nr_of_frames", int(nr_views))
        fs.write("image_width", int(self.image_size[0]))
        fs.write("image_height", int(self.image_size[1]))
        fs.write("board_width", int(s.board_width))
        fs.write("board_height", int(s.board_height))
        fs.write("square_size", float(s.square_size))

        if s.flag & cv2.CALIB_FIX_ASPECT_RATIO and not self.fisheye:
            fs.write("fix_aspect_ratio", float(s.aspect_ratio))

        if s.flag:
            fs.writeComment(describe_flags(s.flag, self.fisheye))

        fs.write("flags", int(s.flag))
        fs.write("fisheye_model", int(self.fisheye))
        fs.write("camera_matrix", self.camera_matrix)
        fs.write("distortion_coefficients", self.distortion_coefficients)
        fs.write("avg_reprojection_error", float(self.avg_reprojection_error))

        if s.write_extrinsics and self.per_image_errors:
            fs.write("per_view_reprojection_errors",
                     np.array(self.per_image_errors, dtype=np.float32).reshape(-1, 1))

        if s.write_extrinsics and self.rvecs and self.tvecs:
            extrinsics = np.hstack([
                np.array([r.flatten() for r in self.rvecs]),
                np.array([t.flatten() for t in self.tvecs])
            ]).astype(np.float64)
            fs.writeComment("a set of 6-tuples (rotation vector + translation vector) for each view")
            fs.write("extrinsic_parameters", extrinsics)

        if s.write_points and image_points:
            points = np.array([np.asarray(p, dtype=np.float32).reshape(-1, 2) for p in image_points],
                              dtype=np.float32)
            fs.write("image_points", points)

        fs.release()

        if verbose:
            print(f"✅ Calibration data saved to: {filepath}")

    def load_calibration(self, filepath: str, verbose: bool = False) -> bool:
        """
        Load camera matrix and distortion coefficients from a result file.

        Returns:
            bool: True if loaded successfully
        """
        if not os.path.isfile(filepath):
            print(f"❌ Calibration file not found: {filepath}")
            return False

        fs = cv2.FileStorage(filepath, cv2.FILE_STORAGE_READ)
        try:
            if not fs.isOpened():
                print(f"❌ Could not open calibration file: {filepath}")
                return False

            camera_matrix = fs.getNode("camera_matrix").mat()
            dist_coeffs = fs.getNode("distortion_coefficients").mat()
            if camera_matrix is None or dist_coeffs is None:
                print(f"❌ No camera parameters in: {filepath}")
                return False

            self.camera_matrix = camera_matrix.astype(np.float64)
            self.distortion_coefficients = dist_coeffs.astype(np.float64).reshape(-1, 1)

            node = fs.getNode("fisheye_model")
            self.fisheye = bool(int(node.real())) if not node.empty() else False

            width, height = fs.getNode("image_width"), fs.getNode("image_height")
            if not width.empty() and not height.empty():
                self.image_size = (int(width.real()), int(height.real()))

            node = fs.getNode("avg_reprojection_error")
            if not node.empty():
                self.avg_reprojection_error = float(node.real())

            errors = fs.getNode("per_view_reprojection_errors").mat()
            if errors is not None:
                self.per_image_errors = [float(e) for e in errors.flatten()]
        finally:
            fs.release()

        self.calibration_completed = True

        if verbose:
            print(f"✅ Calibration data loaded from: {filepath}")
            if self.avg_reprojection_error is not None:
                print(f"   Average reprojection error: {self.avg_reprojection_error:.4f} pixels")
        return True

    def get_camera_matrix(self) -> Optional[np.ndarray]:
        """Get calibrated camera matrix."""
        return self.camera_matrix

    def get_distortion_coefficients(self) -> Optional[np.ndarray]:
        """Get calibrated distortion coefficients."""
        return self.distortion_coefficients

    def get_reprojection_error(self) -> Tuple[Optional[float], Optional[List[float]]]:
        """Get overall and per-image reprojection errors."""
        return self.avg_reprojection_error, self.per_image_errors

    def undistort(self, image: np.ndarray) -> np.ndarray:
        """Return an undistorted copy of ``image``."""
        if not self.calibration_completed:
            raise ValueError("Camera is not calibrated")
        if self.fisheye:
            return cv2.fisheye.undistortImage(image, self.camera_matrix, self.distortion_coefficients,
                                              Knew=self.camera_matrix)
        return cv2.undistort(image, self.camera_matrix, self.distortion_coefficients)

    def build_undistort_maps(self, image_size: Tuple[int, int]) -> Tuple[np.ndarray, np.ndarray]:
        """
        Rectification maps for ``cv2.remap``, keeping all source pixels (alpha = 1).

        Args:
            image_size: (width, height)
        """
        if not self.calibration_completed:
            raise ValueError("Camera is not calibrated")

        if self.fisheye:
            new_camera_matrix = cv2.fisheye.estimateNewCameraMatrixForUndistortRectify(
                self.camera_matrix, self.distortion_coefficients, image_size, np.eye(3), balance=1
            )
            return cv2.fisheye.initUndistortRectifyMap(
                self.camera_matrix, self.distortion_coefficients, np.eye(3), new_camera_matrix,
                image_size, cv2.CV_16SC2
            )

        new_camera_matrix, _ = cv2.getOptimalNewCameraMatrix(
            self.camera_matrix, self.distortion_coefficients, image_size, 1, image_size, False
        )
        return cv2.initUndistortRectifyMap(
            self.camera_matrix, self.distortion_coefficients, None, new_camera_matrix,
            image_size, cv2.CV_16SC2
        )
