"""
Calibration Settings
====================

The settings record of the interactive calibration: board geometry,
calibration flags and I/O paths. It is stored as a ``Settings`` map in an
OpenCV XML/YAML file and (de)serialized with ``cv2.FileStorage``, so the
files stay compatible with OpenCV's own calibration sample.

Example file (``data/default.xml``)::

    <opencv_storage>
    <Settings>
      <BoardSize_Width>9</BoardSize_Width>
      <BoardSize_Height>6</BoardSize_Height>
      <Square_Size>50</Square_Size>
      <Calibrate_Pattern>"CHESSBOARD"</Calibrate_Pattern>
      <Input>"0"</Input>
      ...
    </Settings>
    </opencv_storage>
"""

import os
import re
from enum import Enum
from typing import List, Optional, Tuple

import cv2

from .calibration_patterns import get_pattern_manager
from .frame_source import FrameSource
from .utils import is_list_of_images, read_string_list


class InputType(Enum):
    INVALID = 0
    CAMERA = 1
    VIDEO_FILE = 2
    IMAGE_LIST = 3


# (file key, attribute, kind) in the order the keys are written
SETTINGS_FIELDS = [
    ("BoardSize_Width", "board_width", "int"),
    ("BoardSize_Height", "board_height", "int"),
    ("Square_Size", "square_size", "float"),
    ("Calibrate_Pattern", "pattern_to_use", "str"),
    ("Calibrate_NrOfFrameToUse", "nr_frames", "int"),
    ("Calibrate_FixAspectRatio", "aspect_ratio", "float"),
    ("Calibrate_AssumeZeroTangentialDistortion", "calib_zero_tangent_dist", "bool"),
    ("Calibrate_FixPrincipalPointAtTheCenter", "calib_fix_principal_point", "bool"),
    ("Calibrate_UseFisheyeModel", "use_fisheye", "bool"),
    ("Write_DetectedFeaturePoints", "write_points", "bool"),
    ("Write_extrinsicParameters", "write_extrinsics", "bool"),
    ("Write_outputFileName", "output_file_name", "str"),
    ("Show_UndistortedImage", "show_undistorted", "bool"),
    ("Input_FlipAroundHorizontalAxis", "flip_vertical", "bool"),
    ("Input_Delay", "delay", "int"),
    ("Input_Skip", "skip", "int"),
    ("Input", "input", "str"),
    ("Fix_K1", "fix_k1", "bool"),
    ("Fix_K2", "fix_k2", "bool"),
    ("Fix_K3", "fix_k3", "bool"),
    ("Fix_K4", "fix_k4", "bool"),
    ("Fix_K5", "fix_k5", "bool"),
]


def _read_node(node, kind: str, default):
    """Convert a FileNode to a Python value, keeping ``default`` for missing nodes."""
    if node.empty() or node.isNone():
        return default
    if kind == "str":
        if node.isString():
            return node.string()
        # Unquoted numbers (e.g. <Input>0</Input>) are parsed as numbers
        value = node.real()
        return str(int(value)) if float(value).is_integer() else str(value)
    value = node.real()
    if kind == "int":
        return int(value)
    if kind == "bool":
        return bool(int(value))
    return float(value)


class Settings:
    """Settings of the interactive camera calibration."""

    def __init__(self):
        self.board_width = 9
        self.board_height = 6
        self.square_size = 50.0
        self.pattern_to_use = "CHESSBOARD"
        self.nr_frames = 25
        self.aspect_ratio = 1.0
        self.calib_zero_tangent_dist = True
        self.calib_fix_principal_point = True
        self.use_fisheye = False
        self.write_points = True
        self.write_extrinsics = True
        self.output_file_name = "out_camera_data.xml"
        self.show_undistorted = True
        self.flip_vertical = False
        self.delay = 100
        self.skip = 1
        self.input = "0"
        self.fix_k1 = False
        self.fix_k2 = False
        self.fix_k3 = False
        self.fix_k4 = False
        self.fix_k5 = False

        # Derived by validate()
        self.good_input = False
        self.input_type = InputType.INVALID
        self.camera_id = 0
        self.image_list: List[str] = []
        self.flag = 0
        self.calibration_pattern = None
        self.errors: List[str] = []

    @property
    def board_size(self) -> Tuple[int, int]:
        return (self.board_width, self.board_height)

    # Serialization

    def read(self, node) -> None:
        """
        Read all known keys from a ``Settings`` FileNode and validate.

        Missing keys keep their current values.
        """
        for key, attribute, kind in SETTINGS_FIELDS:
            setattr(self, attribute, _read_node(node.getNode(key), kind, getattr(self, attribute)))
        self.validate()

    def write(self, filepath: str) -> None:
        """Write the settings as a ``Settings`` map (XML or YAML by extension)."""
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)

        fs = cv2.FileStorage(filepath, cv2.FILE_STORAGE_WRITE)
        if not fs.isOpened():
            raise IOError(f"Could not open settings file for writing: {filepath}")
        fs.startWriteStruct("Settings", cv2.FileNode_MAP)
        for key, attribute, kind in SETTINGS_FIELDS:
            value = getattr(self, attribute)
            if kind == "bool":
                value = int(bool(value))
            elif kind == "int":
                value = int(value)
            elif kind == "float":
                value = float(value)
            else:
                value = str(value)
            fs.write(key, value)
        fs.endWriteStruct()
        fs.release()

    @classmethod
    def from_file(cls, filepath: str, verbose: bool = False) -> 'Settings':
        """
        Load and validate settings from an XML/YAML file.

        Raises:
            FileNotFoundError: If the file does not exist or cannot be parsed
            ValueError: If board size, square size or frame count are invalid
        """
        if not os.path.isfile(filepath):
            raise FileNotFoundError(f'Could not open the configuration file: "{filepath}"')

        fs = cv2.FileStorage(filepath, cv2.FILE_STORAGE_READ)
        if not fs.isOpened():
            raise FileNotFoundError(f'Could not open the configuration file: "{filepath}"')

        settings = cls()
        try:
            node = fs.getNode("Settings")
            if node.empty():
                if verbose:
                    print(f"⚠️  No Settings node in {filepath}, using defaults")
                settings.validate()
            else:
                settings.read(node)
        finally:
            fs.release()

        if verbose:
            print(f"✅ Settings loaded from: {filepath}")
            for error in settings.errors:
                print(f"❌ {error}")
        return settings

    # Validation

    def validate(self) -> bool:
        """
        Validate numeric ranges, infer the input type and compute calibration flags.

        Board size, square size and frame count errors raise; an unusable
        input, skip value or pattern name only clears ``good_input`` and is
        recorded in ``errors``.

        Returns:
            bool: ``good_input``

        Raises:
            ValueError: For an invalid board size, square size or frame count
        """
        self.good_input = True
        self.errors = []

        if self.board_width <= 0 or self.board_height <= 0:
            self.good_input = False
            raise ValueError(f"Invalid Board size: {self.board_width} {self.board_height}")
        if self.square_size <= 10e-6:
            self.good_input = False
            raise ValueError(f"Invalid square size: {self.square_size}")
        if self.nr_frames <= 0:
            self.good_input = False
            raise ValueError(f"Invalid number of frames: {self.nr_frames}")

        self._infer_input_type()
        if self.input_type == InputType.INVALID:
            self._fail(f"Input does not exist: {self.input}")

        if self.skip <= 0:
            self._fail("Skip value must be greater than 0")
        elif self.input_type == InputType.IMAGE_LIST:
            visited = len(range(0, len(self.image_list), self.skip))
            self.nr_frames = min(self.nr_frames, visited)

        self.flag = self._compute_flags()

        manager = get_pattern_manager()
        self.calibration_pattern = None
        if not manager.has_pattern(self.pattern_to_use):
            self._fail(f"Camera calibration mode does not exist: {self.pattern_to_use}")
        else:
            self.calibration_pattern = manager.create_pattern(
                self.pattern_to_use,
                width=int(self.board_width),
                height=int(self.board_height),
                square_size=float(self.square_size)
            )

        return self.good_input

    def _fail(self, message: str):
        self.good_input = False
        self.errors.append(message)

    def _infer_input_type(self):
        self.image_list = []
        if not self.input:
            self.input_type = InputType.INVALID
        elif self.input[0].isdigit():
            # Leading digits name the camera, e.g. "12abc" -> 12
            self.camera_id = int(re.match(r"\d+", self.input).group())
            self.input_type = InputType.CAMERA
        elif is_list_of_images(self.input):
            images = read_string_list(self.input)
            if images is not None:
                self.image_list = self._resolve_image_paths(images)
                self.input_type = InputType.IMAGE_LIST
            else:
                self.input_type = InputType.VIDEO_FILE
        else:
            self.input_type = InputType.VIDEO_FILE

    def _resolve_image_paths(self, images: List[str]) -> List[str]:
        """Relative entries are taken relative to the list file."""
        base = os.path.dirname(os.path.abspath(self.input))
        return [p if os.path.isabs(p) else os.path.join(base, p) for p in images]

    def _compute_flags(self) -> int:
        if self.use_fisheye:
            # The fisheye model has its own flag values
            flag = cv2.fisheye.CALIB_FIX_SKEW | cv2.fisheye.CALIB_RECOMPUTE_EXTRINSIC
            if self.fix_k1:
                flag |= cv2.fisheye.CALIB_FIX_K1
            if self.fix_k2:
                flag |= cv2.fisheye.CALIB_FIX_K2
            if self.fix_k3:
                flag |= cv2.fisheye.CALIB_FIX_K3
            if self.fix_k4:
                flag |= cv2.fisheye.CALIB_FIX_K4
            if self.calib_fix_principal_point:
                flag |= cv2.fisheye.CALIB_FIX_PRINCIPAL_POINT
            return flag

        flag = 0
        if self.calib_fix_principal_point:
            flag |= cv2.CALIB_FIX_PRINCIPAL_POINT
        if self.calib_zero_tangent_dist:
            flag |= cv2.CALIB_ZERO_TANGENT_DIST
        if self.aspect_ratio:
            flag |= cv2.CALIB_FIX_ASPECT_RATIO
        if self.fix_k1:
            flag |= cv2.CALIB_FIX_K1
        if self.fix_k2:
            flag |= cv2.CALIB_FIX_K2
        if self.fix_k3:
            flag |= cv2.CALIB_FIX_K3
        if self.fix_k4:
            flag |= cv2.CALIB_FIX_K4
        if self.fix_k5:
            flag |= cv2.CALIB_FIX_K5
        return flag

    # Input

    def open_input(self) -> Optional[FrameSource]:
        """
        Open the configured input.

        Returns:
            FrameSource, or None if the input cannot be opened (``good_input``
            is cleared in that case)
        """
        if self.input_type == InputType.CAMERA:
            source = FrameSource.from_camera(self.camera_id)
        elif self.input_type == InputType.VIDEO_FILE:
            source = FrameSource.from_video(self.input)
        elif self.input_type == InputType.IMAGE_LIST:
            source = FrameSource.from_image_list(self.image_list, skip=self.skip)
        else:
            return None

        if not source.is_opened():
            self.input_type = InputType.INVALID
            self._fail(f"Input does not exist: {self.input}")
            return None
        return source
