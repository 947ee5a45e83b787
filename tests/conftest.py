"""
pytest configuration file for the ArUco & calibration demo
"""
import pytest
import sys
import numpy as np
import cv2
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from vision_demo.calibration_patterns import StandardChessboard
from vision_demo.aruco import generate_marker_image

IMAGE_SIZE = (640, 480)

# Board rendering used by the synthetic views
BOARD_PIXELS_PER_SQUARE = 40
BOARD_BORDER_PIXELS = 40

# Poses (rvec, tvec in board units) of the synthetic calibration views
SYNTHETIC_POSES = [
    ((0.0, 0.0, 0.0), (-112.5, -62.5, 520.0)),
    ((0.25, 0.0, 0.0), (-112.5, -62.5, 540.0)),
    ((-0.25, 0.05, 0.0), (-112.5, -62.5, 540.0)),
    ((0.0, 0.3, 0.05), (-100.0, -62.5, 560.0)),
    ((0.0, -0.3, -0.05), (-125.0, -62.5, 560.0)),
    ((0.2, 0.2, 0.1), (-112.5, -70.0, 580.0)),
    ((-0.2, -0.2, -0.1), (-112.5, -55.0, 580.0)),
]


@pytest.fixture(scope="session")
def project_root_dir():
    """Get the project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture(scope="session")
def data_dir(project_root_dir):
    """Get the sample data directory."""
    return project_root_dir / "data"


@pytest.fixture
def temp_output_dir(tmp_path):
    """Create a temporary directory for test outputs."""
    output_dir = tmp_path / "test_output"
    output_dir.mkdir()
    return output_dir


@pytest.fixture
def mock_camera_matrix():
    """Sample camera matrix for testing (principal point at the image center)."""
    return np.array([
        [600.0, 0.0, 320.0],
        [0.0, 600.0, 240.0],
        [0.0, 0.0, 1.0]
    ], dtype=np.float64)


@pytest.fixture
def chessboard():
    """9x6 inner corners, 25 units per square."""
    return StandardChessboard(width=9, height=6, square_size=25.0)


@pytest.fixture
def synthetic_chessboard_image(chessboard):
    """A fronto-parallel chessboard with a white border."""
    return chessboard.generate_pattern_image(
        pixel_per_square=BOARD_PIXELS_PER_SQUARE,
        border_pixels=BOARD_BORDER_PIXELS
    )


@pytest.fixture
def synthetic_image_points(chessboard, mock_camera_matrix):
    """Exact projections of the board for every synthetic pose."""
    object_points = chessboard.generate_object_points()
    views = []
    for rvec, tvec in SYNTHETIC_POSES:
        projected, _ = cv2.projectPoints(
            object_points, np.array(rvec), np.array(tvec), mock_camera_matrix, np.zeros(5)
        )
        views.append(projected.astype(np.float32))
    return views


@pytest.fixture
def synthetic_calibration_images(chessboard, synthetic_chessboard_image, mock_camera_matrix):
    """
    Render the board as seen by an ideal camera from every synthetic pose.

    The board image is mapped to the board plane (z=0, in board units) and
    projected with K [r1 r2 t].
    """
    s = chessboard.square_size
    pps = BOARD_PIXELS_PER_SQUARE
    offset = BOARD_BORDER_PIXELS + pps
    pixels_to_board = np.array([
        [s / pps, 0.0, -offset * s / pps],
        [0.0, s / pps, -offset * s / pps],
        [0.0, 0.0, 1.0]
    ])

    images = []
    for rvec, tvec in SYNTHETIC_POSES:
        rotation, _ = cv2.Rodrigues(np.array(rvec, dtype=np.float64))
        plane_to_image = mock_camera_matrix @ np.column_stack(
            [rotation[:, 0], rotation[:, 1], np.array(tvec, dtype=np.float64)]
        )
        homography = plane_to_image @ pixels_to_board
        images.append(cv2.warpPerspective(
            synthetic_chessboard_image, homography, IMAGE_SIZE,
            flags=cv2.INTER_LINEAR, borderValue=(255, 255, 255)
        ))
    return images


@pytest.fixture
def aruco_dictionary():
    return cv2.aruco.getPredefinedDictionary(cv2.aruco.DICT_4X4_50)


@pytest.fixture
def marker_canvas(aruco_dictionary):
    """
    White 800x600 canvas with markers 0-3 (100 px) near its corners.

    Marker centers: 0 -> (100, 100), 1 -> (700, 100), 2 -> (700, 500), 3 -> (100, 500)
    """
    canvas = np.full((600, 800), 255, dtype=np.uint8)
    for marker_id, (x, y) in enumerate([(50, 50), (650, 50), (650, 450), (50, 450)]):
        canvas[y:y + 100, x:x + 100] = generate_marker_image(aruco_dictionary, marker_id, 100)
    return cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)


# Configure test collection
def pytest_collection_modifyitems(config, items):
    """Modify test collection to add markers and organize tests."""
    for item in items:
        # Mark slow tests
        if "slow" in item.nodeid:
            item.add_marker(pytest.mark.slow)

        # Mark tests that require OpenCV
        if any(module in str(item.fspath) for module in ["calibration", "pattern", "aruco"]):
            item.add_marker(pytest.mark.opencv)


# Test markers
def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "opencv: marks tests that require OpenCV"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
