"""
Integration tests for calibration workflows.

Tests complete workflows from end-to-end, including settings files,
image lists, pattern detection, calibration and the command line,
with synthetic data to ensure components work together.
"""
import pytest
import cv2

import main as cli
from vision_demo.calibration_session import (
    CalibrationSession,
    CAPTURING,
    CALIBRATED,
    DETECTION,
    ESC_KEY
)
from vision_demo.intrinsic_calibration import IntrinsicCalibrator
from vision_demo.settings import Settings
from vision_demo.utils import write_string_list


class ScriptedLiveSource:
    """Stands in for a camera: hands out the given frames, then runs dry."""

    is_live = True

    def __init__(self, frames):
        self.frames = list(frames)
        self.released = False

    def next_image(self):
        if not self.frames:
            return None
        return self.frames.pop(0).copy()

    def release(self):
        self.released = True


def camera_settings(temp_output_dir, **overrides):
    settings = Settings()
    settings.input = "0"
    settings.board_width = 9
    settings.board_height = 6
    settings.square_size = 25.0
    settings.output_file_name = str(temp_output_dir / "out_camera_data.xml")
    for key, value in overrides.items():
        setattr(settings, key, value)
    settings.validate()
    return settings


@pytest.fixture
def image_list_settings(temp_output_dir, synthetic_calibration_images):
    """Settings file pointing to an image list of the synthetic views."""
    names = []
    for i, image in enumerate(synthetic_calibration_images):
        name = f"view_{i:02d}.png"
        cv2.imwrite(str(temp_output_dir / name), image)
        names.append(name)
    write_string_list(str(temp_output_dir / "images.xml"), names)

    settings = Settings()
    settings.board_width = 9
    settings.board_height = 6
    settings.square_size = 25.0
    settings.nr_frames = 5
    settings.input = str(temp_output_dir / "images.xml")
    settings.output_file_name = str(temp_output_dir / "out_camera_data.xml")

    settings_path = str(temp_output_dir / "settings.xml")
    settings.write(settings_path)
    return settings_path


class TestCalibrationSessionWorkflow:
    """Headless calibration over image lists."""

    @pytest.mark.integration
    def test_image_list_calibration(self, image_list_settings, temp_output_dir, mock_camera_matrix):
        settings = Settings.from_file(image_list_settings)
        assert settings.good_input

        session = CalibrationSession(settings, show=False, verbose=False)
        assert session.run()
        assert session.mode == CALIBRATED
        assert 0 < len(session.image_points) <= 5
        assert session.image_size == (640, 480)

        result_file = temp_output_dir / "out_camera_data.xml"
        assert result_file.exists()

        loaded = IntrinsicCalibrator(calibration_file=str(result_file))
        assert loaded.get_camera_matrix()[0, 0] == pytest.approx(mock_camera_matrix[0, 0], rel=0.05)
        assert loaded.avg_reprojection_error < 1.0

    @pytest.mark.integration
    def test_calibrates_with_fewer_views_at_end_of_input(self, image_list_settings):
        settings = Settings.from_file(image_list_settings)
        settings.nr_frames = 100

        session = CalibrationSession(settings, show=False, verbose=False)
        assert session.run()
        assert session.mode == CALIBRATED
        assert len(session.image_points) < 100

    @pytest.mark.integration
    def test_invalid_input_stops(self, temp_output_dir):
        settings = Settings()
        settings.input = str(temp_output_dir / "missing.avi")
        settings.validate()

        session = CalibrationSession(settings, show=False, verbose=False)
        assert session.run() is False

    @pytest.mark.integration
    def test_unknown_pattern_stops(self, image_list_settings):
        settings = Settings.from_file(image_list_settings)
        settings.pattern_to_use = "HEXAGONS"
        settings.validate()
        assert CalibrationSession(settings, show=False, verbose=False).run() is False


class TestCalibrationSessionFrames:
    """Per-frame behaviour without running the loop."""

    @pytest.mark.integration
    def test_detection_mode_collects_nothing(self, synthetic_calibration_images):
        settings = Settings()
        settings.board_width = 9
        settings.board_height = 6
        settings.validate()

        session = CalibrationSession(settings, show=False, verbose=False)
        session.process_frame(synthetic_calibration_images[0].copy())
        assert session.mode == DETECTION
        assert session.image_points == []
        assert session.status_message() == "Press 'g' to start"

    @pytest.mark.integration
    def test_capturing_collects_views(self, synthetic_calibration_images):
        settings = Settings()
        settings.board_width = 9
        settings.board_height = 6
        settings.nr_frames = 10
        settings.show_undistorted = False
        settings.validate()

        session = CalibrationSession(settings, show=False, verbose=False)
        session.mode = CAPTURING
        for image in synthetic_calibration_images[:3]:
            output = session.process_frame(image.copy())
            assert output.shape == image.shape
        assert len(session.image_points) == 3
        assert session.status_message() == "3/10"

    @pytest.mark.integration
    def test_flip_is_applied(self, synthetic_calibration_images):
        settings = Settings()
        settings.flip_vertical = True
        settings.validate()

        session = CalibrationSession(settings, show=False, verbose=False)
        session.mode = CAPTURING
        session.process_frame(synthetic_calibration_images[0].copy())
        assert len(session.image_points) == 1


class TestLiveCalibration:
    """Camera-like input: capture delay, blinking and keys."""

    @pytest.mark.integration
    def test_capture_blinks_and_respects_delay(self, temp_output_dir, synthetic_calibration_images):
        settings = camera_settings(temp_output_dir, delay=1000, show_undistorted=False)
        session = CalibrationSession(settings, show=False, verbose=False)
        session.source = ScriptedLiveSource([])
        session.mode = CAPTURING

        image = synthetic_calibration_images[0]
        assert image.mean() > 128

        captured = session.process_frame(image.copy())
        assert len(session.image_points) == 1
        # The captured frame is shown inverted
        assert captured.mean() < 128

        throttled = session.process_frame(image.copy())
        assert len(session.image_points) == 1
        assert throttled.mean() > 128

    @pytest.mark.integration
    def test_image_list_frames_do_not_blink(self, temp_output_dir, synthetic_calibration_images):
        settings = camera_settings(temp_output_dir, delay=1000, show_undistorted=False)
        session = CalibrationSession(settings, show=False, verbose=False)
        session.mode = CAPTURING

        image = synthetic_calibration_images[0]
        for _ in range(2):
            assert session.process_frame(image.copy()).mean() > 128
        assert len(session.image_points) == 2

    @pytest.mark.integration
    def test_keys_start_capture_and_toggle_undistortion(self, temp_output_dir, monkeypatch,
                                                        synthetic_calibration_images):
        settings = camera_settings(temp_output_dir, delay=0, nr_frames=3)
        source = ScriptedLiveSource(synthetic_calibration_images * 3)
        monkeypatch.setattr(settings, "open_input", lambda: source)

        session = CalibrationSession(settings, show=False, verbose=False)
        pressed = []

        def press_keys(view, delay):
            if session.mode == DETECTION:
                key = ord('g')
            elif session.mode == CALIBRATED:
                key = ESC_KEY if ord('u') in pressed else ord('u')
            else:
                key = -1
            pressed.append(key)
            return key

        session._show_and_wait = press_keys
        assert session.show_undistorted

        assert session.run()
        assert pressed[0] == ord('g')
        assert session.mode == CALIBRATED
        assert session.show_undistorted is False
        assert pressed[-1] == ESC_KEY
        assert source.released
        assert (temp_output_dir / "out_camera_data.xml").exists()


class TestCommandLine:
    """main.py modes."""

    @pytest.mark.integration
    def test_init_mode(self, temp_output_dir, synthetic_calibration_images):
        images_dir = temp_output_dir / "images"
        images_dir.mkdir()
        for i, image in enumerate(synthetic_calibration_images[:2]):
            cv2.imwrite(str(images_dir / f"{i}.png"), image)

        settings_path = temp_output_dir / "settings.xml"
        params_path = temp_output_dir / "params.yml"
        exit_code = cli.main([
            "--mode", "init",
            "--settings", str(settings_path),
            "--images_dir", str(images_dir),
            "--detector_params", str(params_path)
        ])
        assert exit_code == 0
        assert params_path.exists()

        settings = Settings.from_file(str(settings_path))
        assert len(settings.image_list) == 2

    @pytest.mark.integration
    def test_init_mode_writes_to_working_directory(self, temp_output_dir, monkeypatch, data_dir):
        samples = {name: (data_dir / name).read_bytes() for name in ["default.xml", "config-aruco.yaml"]}
        monkeypatch.chdir(temp_output_dir)

        assert cli.main(["--mode", "init"]) == 0
        assert (temp_output_dir / "default.xml").exists()
        assert (temp_output_dir / "config-aruco.yaml").exists()
        for name, content in samples.items():
            assert (data_dir / name).read_bytes() == content

    @pytest.mark.integration
    def test_calibrate_mode(self, image_list_settings, temp_output_dir):
        exit_code = cli.main(["--mode", "calibrate", "--settings", image_list_settings, "--no_display"])
        assert exit_code == 0
        assert (temp_output_dir / "out_camera_data.xml").exists()

    @pytest.mark.integration
    def test_calibrate_mode_missing_settings(self, temp_output_dir, capsys):
        exit_code = cli.main(["--mode", "calibrate", "--settings", str(temp_output_dir / "none.xml")])
        assert exit_code == 1
        assert "FAILURE" in capsys.readouterr().err

    @pytest.mark.integration
    def test_dictionary_mode(self, temp_output_dir):
        output = temp_output_dir / "markers.yml"
        images_dir = temp_output_dir / "markers"
        exit_code = cli.main([
            "--mode", "dictionary",
            "--dict_name", "DICT_4X4_50",
            "--count", "4",
            "--output", str(output),
            "--marker_images_dir", str(images_dir),
            "--marker_pixels", "120"
        ])
        assert exit_code == 0
        assert output.exists()
        assert len(list(images_dir.glob("marker_*.png"))) == 4

    @pytest.mark.integration
    def test_aruco_mode_missing_input(self, temp_output_dir, capsys):
        exit_code = cli.main(["--mode", "aruco", "-i", str(temp_output_dir / "missing.mp4")])
        assert exit_code == 1
        assert "does not exist" in capsys.readouterr().err

    @pytest.mark.integration
    def test_aruco_mode_requires_input(self):
        assert cli.main(["--mode", "aruco"]) == 1

    @pytest.mark.integration
    def test_aruco_mode_on_video(self, temp_output_dir, marker_canvas):
        video_path = str(temp_output_dir / "table.avi")
        writer = cv2.VideoWriter(video_path, cv2.VideoWriter_fourcc(*"MJPG"), 10, (800, 600))
        if not writer.isOpened():
            pytest.skip("No MJPG video writer available")
        for _ in range(3):
            writer.write(marker_canvas)
        writer.release()

        exit_code = cli.main([
            "--mode", "aruco",
            "-i", video_path,
            "-d", "DICT_4X4_50",
            "--no_display",
            "--max_frames", "2"
        ])
        assert exit_code == 0

    @pytest.mark.integration
    def test_aruco_mode_on_video_named_with_digits(self, temp_output_dir, monkeypatch, marker_canvas):
        monkeypatch.chdir(temp_output_dir)
        writer = cv2.VideoWriter("2024_table.avi", cv2.VideoWriter_fourcc(*"MJPG"), 10, (800, 600))
        if not writer.isOpened():
            pytest.skip("No MJPG video writer available")
        writer.write(marker_canvas)
        writer.release()

        exit_code = cli.main([
            "--mode", "aruco",
            "-i", "2024_table.avi",
            "-d", "DICT_4X4_50",
            "--no_display",
            "--max_frames", "1"
        ])
        assert exit_code == 0
