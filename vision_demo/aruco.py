"""
ArUco Marker Utilities
======================

Thin helpers around ``cv2.aruco``:

- create_dictionary(): predefined dictionary by name or custom dictionary file
- write_dictionary(): export a dictionary in the same file layout
- load_parameters_from_file() / save_parameters_to_file(): detector tuning
- detect_aruco_on_frame(): marker detection returning ArucoMarker records
- draw_markers_on_frame(), generate_marker_image(): visualization

Dictionary files use OpenCV's layout::

    %YAML:1.0
    ---
    nmarkers: 2
    markersize: 5
    maxCorrectionBits: 1
    marker_0: "1011000101010010011101001"
    marker_1: "0110101100110101110010110"

Both the object API of OpenCV >= 4.7 and the older function API are supported.
"""

import os
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import cv2
import numpy as np


# (attribute, kind) of cv2.aruco.DetectorParameters read from / written to files
DETECTOR_PARAMETER_FIELDS = [
    ("adaptiveThreshWinSizeMin", "int"),
    ("adaptiveThreshWinSizeMax", "int"),
    ("adaptiveThreshWinSizeStep", "int"),
    ("adaptiveThreshConstant", "float"),
    ("minMarkerPerimeterRate", "float"),
    ("maxMarkerPerimeterRate", "float"),
    ("polygonalApproxAccuracyRate", "float"),
    ("minCornerDistanceRate", "float"),
    ("minDistanceToBorder", "int"),
    ("minMarkerDistanceRate", "float"),
    ("cornerRefinementMethod", "int"),
    ("cornerRefinementWinSize", "int"),
    ("cornerRefinementMaxIterations", "int"),
    ("cornerRefinementMinAccuracy", "float"),
    ("markerBorderBits", "int"),
    ("perspectiveRemovePixelPerCell", "int"),
    ("perspectiveRemoveIgnoredMarginPerCell", "float"),
    ("maxErroneousBitsInBorderRate", "float"),
    ("minOtsuStdDev", "float"),
    ("errorCorrectionRate", "float"),
    ("aprilTagQuadDecimate", "float"),
    ("aprilTagQuadSigma", "float"),
    ("aprilTagMinClusterPixels", "int"),
    ("aprilTagMaxNmaxima", "int"),
    ("aprilTagCriticalRad", "float"),
    ("aprilTagMaxLineFitMse", "float"),
    ("aprilTagMinWhiteBlackDiff", "int"),
    ("aprilTagDeglitch", "int"),
    ("detectInvertedMarker", "bool"),
    ("useAruco3Detection", "bool"),
    ("minSideLengthCanonicalImg", "int"),
    ("minMarkerLengthRatioOriginalImg", "float"),
]


@dataclass
class ArucoMarker:
    """A detected marker: its ID (-1 for rejected candidates) and 4 image corners."""

    id: int
    corners: np.ndarray = field(repr=False)

    def __post_init__(self):
        self.corners = np.asarray(self.corners, dtype=np.float32).reshape(4, 2)

    @property
    def center(self) -> Tuple[float, float]:
        cx, cy = self.corners.mean(axis=0)
        return float(cx), float(cy)

    def perimeter(self) -> float:
        return float(cv2.arcLength(self.corners.reshape(-1, 1, 2), True))


def _new_detector_parameters():
    try:
        # OpenCV 4.7+ method
        return cv2.aruco.DetectorParameters()
    except AttributeError:
        # Older OpenCV method
        return cv2.aruco.DetectorParameters_create()


def get_predefined_dictionary(name: str):
    """
    Get a predefined dictionary by name, e.g. ``DICT_5X5_100``.

    Raises:
        ValueError: If OpenCV has no dictionary with that name
    """
    dict_id = getattr(cv2.aruco, name, None)
    if not name.startswith("DICT_") or dict_id is None:
        raise ValueError(f"Unknown ArUco dictionary: {name}")
    return cv2.aruco.getPredefinedDictionary(dict_id)


def create_dictionary(source: Optional[str] = None, marker_size: int = 5):
    """
    Create the marker dictionary used for detection.

    Args:
        source: Path to a dictionary file, name of a predefined dictionary,
            or None for the ``DICT_{n}X{n}_250`` predefined dictionary
        marker_size: Marker size in bits; must match the file's ``markersize``

    Returns:
        cv2.aruco.Dictionary

    Raises:
        FileNotFoundError: If ``source`` is neither a file nor a dictionary name
        ValueError: If the file is malformed or its marker size differs
    """
    if source is None:
        return get_predefined_dictionary(f"DICT_{marker_size}X{marker_size}_250")

    if not os.path.isfile(source):
        if source.startswith("DICT_"):
            return get_predefined_dictionary(source)
        raise FileNotFoundError(f"ArUco dictionary file not found: {source}")

    return read_dictionary(source, marker_size)


def read_dictionary(filepath: str, marker_size: Optional[int] = None):
    """Read a dictionary file (see module docstring for the layout)."""
    fs = cv2.FileStorage(filepath, cv2.FILE_STORAGE_READ)
    try:
        if not fs.isOpened():
            raise ValueError(f"Could not open ArUco dictionary file: {filepath}")

        nmarkers_node = fs.getNode("nmarkers")
        size_node = fs.getNode("markersize")
        if nmarkers_node.empty():
            raise ValueError(f"Missing 'nmarkers' in dictionary file: {filepath}")

        file_marker_size = int(size_node.real()) if not size_node.empty() else marker_size
        if file_marker_size is None:
            raise ValueError(f"Missing 'markersize' in dictionary file: {filepath}")
        if marker_size is not None and file_marker_size != marker_size:
            raise ValueError(f"Dictionary marker size {file_marker_size} does not match "
                             f"expected size {marker_size}")

        correction_node = fs.getNode("maxCorrectionBits")
        max_correction_bits = int(correction_node.real()) if not correction_node.empty() else 0

        n_bits = file_marker_size * file_marker_size
        byte_lists = []
        for i in range(int(nmarkers_node.real())):
            bits = fs.getNode(f"marker_{i}").string()
            if len(bits) != n_bits or set(bits) - {"0", "1"}:
                raise ValueError(f"marker_{i} must be a string of {n_bits} bits")
            bit_matrix = np.array([int(b) for b in bits], dtype=np.uint8).reshape(
                file_marker_size, file_marker_size)
            byte_lists.append(cv2.aruco.Dictionary.getByteListFromBits(bit_matrix))
    finally:
        fs.release()

    if not byte_lists:
        raise ValueError(f"Dictionary file has no markers: {filepath}")

    bytes_list = np.concatenate(byte_lists, axis=0)
    return cv2.aruco.Dictionary(bytes_list, file_marker_size, max_correction_bits)


def dictionary_marker_bits(dictionary, marker_id: int) -> np.ndarray:
    """Bit matrix (markersize x markersize, 0/1) of one marker."""
    return cv2.aruco.Dictionary.getBitsFromByteList(
        dictionary.bytesList[marker_id:marker_id + 1], dictionary.markerSize)


def write_dictionary(filepath: str, dictionary, count: Optional[int] = None) -> int:
    """
    Write a dictionary (or its first ``count`` markers) to a file.

    Returns:
        Number of markers written
    """
    total = dictionary.bytesList.shape[0]
    count = total if count is None else min(count, total)
    if count <= 0:
        raise ValueError("Dictionary export needs at least one marker")

    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)

    fs = cv2.FileStorage(filepath, cv2.FILE_STORAGE_WRITE)
    fs.write("nmarkers", int(count))
    fs.write("markersize", int(dictionary.markerSize))
    fs.write("maxCorrectionBits", int(dictionary.maxCorrectionBits))
    for i in range(count):
        bits = dictionary_marker_bits(dictionary, i)
        fs.write(f"marker_{i}", "".join(str(int(b)) for b in bits.flatten()))
    fs.release()
    return count


def load_parameters_from_file(filepath: Optional[str], verbose: bool = False):
    """
    Load detector parameters; keys missing from the file keep OpenCV defaults.

    Args:
        filepath: YAML/XML file, or None for defaults

    Raises:
        FileNotFoundError: If a path is given but the file does not exist
    """
    params = _new_detector_parameters()
    if filepath is None:
        return params

    if not os.path.isfile(filepath):
        raise FileNotFoundError(f"Detector parameters file not found: {filepath}")

    fs = cv2.FileStorage(filepath, cv2.FILE_STORAGE_READ)
    try:
        for name, kind in DETECTOR_PARAMETER_FIELDS:
            node = fs.getNode(name)
            if node.empty() or not hasattr(params, name):
                continue
            value = node.real()
            if kind == "int":
                value = int(value)
            elif kind == "bool":
                value = bool(int(value))
            setattr(params, name, value)
    finally:
        fs.release()

    if verbose:
        print(f"✅ Detector parameters loaded from: {filepath}")
    return params


def save_parameters_to_file(filepath: str, params=None) -> None:
    """Write detector parameters (defaults when ``params`` is None)."""
    if params is None:
        params = _new_detector_parameters()

    directory = os.path.dirname(filepath)
    if directory:
        os.makedirs(directory, exist_ok=True)

    fs = cv2.FileStorage(filepath, cv2.FILE_STORAGE_WRITE)
    for name, kind in DETECTOR_PARAMETER_FIELDS:
        if not hasattr(params, name):
            continue
        value = getattr(params, name)
        fs.write(name, float(value) if kind == "float" else int(value))
    fs.release()


def detect_aruco_on_frame(frame: np.ndarray, dictionary, parameters=None
                          ) -> Tuple[List[ArucoMarker], List[ArucoMarker]]:
    """
    Detect markers in a frame.

    Returns:
        (found, rejected): decoded markers sorted by ID, and rejected
        candidates with ``id == -1``
    """
    if parameters is None:
        parameters = _new_detector_parameters()

    gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY) if frame.ndim == 3 else frame

    try:
        # OpenCV 4.7+ method
        detector = cv2.aruco.ArucoDetector(dictionary, parameters)
        corners, ids, rejected_corners = detector.detectMarkers(gray)
    except AttributeError:
        # Older OpenCV method
        corners, ids, rejected_corners = cv2.aruco.detectMarkers(
            gray, dictionary, parameters=parameters
        )

    found = []
    if ids is not None:
        for marker_corners, marker_id in zip(corners, ids.flatten()):
            found.append(ArucoMarker(int(marker_id), marker_corners))
        found.sort(key=lambda m: m.id)

    rejected = [ArucoMarker(-1, c) for c in (rejected_corners if rejected_corners is not None else [])]
    return found, rejected


def draw_markers_on_frame(frame: np.ndarray, markers: List[ArucoMarker],
                          color: Tuple[int, int, int] = (0, 255, 0)) -> np.ndarray:
    """Draw marker outlines and IDs in place."""
    if not markers:
        return frame

    corners = [m.corners.reshape(1, 4, 2) for m in markers]
    ids = np.array([[m.id] for m in markers], dtype=np.int32)
    if all(m.id < 0 for m in markers):
        ids = None
    cv2.aruco.drawDetectedMarkers(frame, corners, ids, color)
    return frame


def generate_marker_image(dictionary, marker_id: int, side_pixels: int = 200,
                          border_bits: int = 1) -> np.ndarray:
    """Render one marker as a grayscale image."""
    if not 0 <= marker_id < dictionary.bytesList.shape[0]:
        raise ValueError(f"Marker id {marker_id} is outside the dictionary")
    try:
        # OpenCV 4.7+ method
        return cv2.aruco.generateImageMarker(dictionary, marker_id, side_pixels, borderBits=border_bits)
    except AttributeError:
        # Older OpenCV method
        return cv2.aruco.drawMarker(dictionary, marker_id, side_pixels, borderBits=border_bits)
