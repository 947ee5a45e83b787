"""
ArUco & Camera Calibration Demo - Core Module
=============================================

Glue around OpenCV for two small interactive tools:
- interactive intrinsic camera calibration driven by an XML/YAML settings file
- ArUco marker detection with a table overlay rectified from four corner markers

The calibration and detection algorithms themselves are OpenCV's.
"""

from .settings import Settings, InputType
from .frame_source import FrameSource
from .intrinsic_calibration import IntrinsicCalibrator
from .calibration_session import CalibrationSession
from .aruco import (
    ArucoMarker,
    create_dictionary,
    detect_aruco_on_frame,
    draw_markers_on_frame,
    load_parameters_from_file
)
from .table import Table
from .aruco_demo import ArucoDemo

__all__ = [
    'Settings',
    'InputType',
    'FrameSource',
    'IntrinsicCalibrator',
    'CalibrationSession',
    'ArucoMarker',
    'create_dictionary',
    'detect_aruco_on_frame',
    'draw_markers_on_frame',
    'load_parameters_from_file',
    'Table',
    'ArucoDemo'
]
