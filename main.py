#!/usr/bin/env python3
"""
ArUco & Camera Calibration Demo - Main Entry Point
==================================================

Command-line interface to the demo tools:

    # Marker viewer with table rectification
    python main.py --mode aruco -i video.mp4 -d data/aruco_dictionary.yml

    # Interactive calibration configured by a settings file
    python main.py --mode calibrate --settings data/default.xml

    # Write default.xml and config-aruco.yaml into the working directory
    python main.py --mode init --images_dir ./calib_images

    # Export a predefined dictionary (and printable markers)
    python main.py --mode dictionary --dict_name DICT_5X5_50 --count 4 --output markers.yml
"""

import argparse
import os
import sys

import cv2

from vision_demo.aruco import (
    create_dictionary,
    generate_marker_image,
    get_predefined_dictionary,
    load_parameters_from_file,
    save_parameters_to_file,
    write_dictionary
)
from vision_demo.aruco_demo import ArucoDemo
from vision_demo.calibration_session import CalibrationSession
from vision_demo.frame_source import FrameSource
from vision_demo.intrinsic_calibration import IntrinsicCalibrator
from vision_demo.settings import Settings
from vision_demo.table import Table
from vision_demo.utils import load_images_from_directory, write_string_list


DATA_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "data")
DEFAULT_SETTINGS = os.path.join(DATA_DIR, "default.xml")
DEFAULT_DETECTOR_PARAMS = os.path.join(DATA_DIR, "config-aruco.yaml")
INIT_SETTINGS = "default.xml"
INIT_DETECTOR_PARAMS = "config-aruco.yaml"


def build_parser():
    parser = argparse.ArgumentParser(description="ArUco & Camera Calibration Demo")

    parser.add_argument("--mode", choices=['aruco', 'calibrate', 'init', 'dictionary'],
                        default='aruco', help="Tool to run")
    parser.add_argument("--verbose", action="store_true", help="Print progress information")
    parser.add_argument("--no_display", action="store_true",
                        help="Run without HighGUI windows")

    aruco_group = parser.add_argument_group("aruco mode")
    aruco_group.add_argument("-i", "--input_path", help="Input video file path or camera index")
    aruco_group.add_argument("-d", "--aruco_path",
                             help="ArUco dictionary file or predefined name (default: DICT_5X5_250)")
    aruco_group.add_argument("--marker_size", type=int, default=5, help="Marker size in bits")
    aruco_group.add_argument("--detector_params", default=None,
                             help="Detector parameters file (default: data/config-aruco.yaml)")
    aruco_group.add_argument("--calibration_path", help="Calibration result used to undistort frames")
    aruco_group.add_argument("--table_width", type=int, default=1200, help="Rectified table width")
    aruco_group.add_argument("--table_height", type=int, default=600, help="Rectified table height")
    aruco_group.add_argument("--corner_ids", type=int, nargs=4, default=[0, 1, 2, 3],
                             metavar="ID", help="Corner marker IDs: TL TR BR BL")
    aruco_group.add_argument("--draw_markers", action="store_true", help="Outline detected markers")
    aruco_group.add_argument("--draw_table", action="store_true", help="Outline the table")
    aruco_group.add_argument("--no_warp", action="store_true", help="Do not rectify the table")
    aruco_group.add_argument("--max_frames", type=int, help="Stop after this many frames")

    calib_group = parser.add_argument_group("calibrate / init modes")
    calib_group.add_argument("--settings", default=None,
                             help="Settings file (XML/YAML); calibrate reads data/default.xml "
                                  "and init writes ./default.xml when omitted")
    calib_group.add_argument("--start", action="store_true",
                             help="Start capturing immediately on live input")
    calib_group.add_argument("--images_dir", help="Directory of calibration images (init mode)")
    calib_group.add_argument("--image_list", help="Image list file to write (init mode)")

    dict_group = parser.add_argument_group("dictionary mode")
    dict_group.add_argument("--dict_name", default="DICT_5X5_50", help="Predefined dictionary")
    dict_group.add_argument("--count", type=int, help="Number of markers to export")
    dict_group.add_argument("--output", help="Dictionary file to write")
    dict_group.add_argument("--marker_images_dir", help="Also write one PNG per marker here")
    dict_group.add_argument("--marker_pixels", type=int, default=400, help="Marker image side")

    return parser


def fail(message):
    print(f"FAILURE: {message}", file=sys.stderr)
    return 1


def run_aruco(args, parser):
    if not args.input_path:
        parser.print_help(sys.stderr)
        return 1

    try:
        source = FrameSource.from_input(args.input_path)
    except FileNotFoundError as e:
        return fail(str(e))

    params_path = args.detector_params
    if params_path is None and os.path.isfile(DEFAULT_DETECTOR_PARAMS):
        params_path = DEFAULT_DETECTOR_PARAMS

    try:
        dictionary = create_dictionary(args.aruco_path, args.marker_size)
        parameters = load_parameters_from_file(params_path, verbose=args.verbose)
        table = Table(args.table_width, args.table_height, args.corner_ids)
        calibrator = None
        if args.calibration_path:
            calibrator = IntrinsicCalibrator(calibration_file=args.calibration_path)
    except (FileNotFoundError, ValueError, cv2.error) as e:
        source.release()
        return fail(str(e))

    demo = ArucoDemo(
        dictionary,
        parameters,
        table=table,
        calibrator=calibrator,
        draw_markers=args.draw_markers,
        draw_table=args.draw_table,
        warp_table=not args.no_warp
    )
    processed = demo.run(source, show=not args.no_display, max_frames=args.max_frames,
                         verbose=args.verbose)
    if args.verbose:
        print(f"Processed {processed} frames")
    return 0


def run_calibrate(args):
    try:
        settings = Settings.from_file(args.settings or DEFAULT_SETTINGS, verbose=args.verbose)
    except (FileNotFoundError, ValueError) as e:
        return fail(str(e))

    session = CalibrationSession(
        settings,
        show=not args.no_display,
        start_capturing=args.start,
        verbose=True
    )
    if not session.run():
        return 1
    return 0 if session.calibrator.is_calibrated() else 1


def run_init(args):
    # Written to the working directory so the samples in data/ stay untouched
    settings_path = args.settings or INIT_SETTINGS
    params_path = args.detector_params or INIT_DETECTOR_PARAMS
    settings = Settings()

    if args.images_dir:
        image_paths = load_images_from_directory(args.images_dir)
        if not image_paths:
            return fail(f"No valid images found in {args.images_dir}")
        list_path = args.image_list or os.path.join(os.path.dirname(settings_path) or ".", "images.xml")
        write_string_list(list_path, [os.path.abspath(p) for p in image_paths])
        settings.input = list_path
        print(f"✅ Image list with {len(image_paths)} images written to: {list_path}")

    settings.write(settings_path)
    print(f"✅ Settings written to: {settings_path}")

    save_parameters_to_file(params_path)
    print(f"✅ Detector parameters written to: {params_path}")
    return 0


def run_dictionary(args):
    if not args.output:
        return fail("--output is required in dictionary mode")

    try:
        dictionary = get_predefined_dictionary(args.dict_name)
        count = write_dictionary(args.output, dictionary, args.count)
    except ValueError as e:
        return fail(str(e))
    print(f"✅ {count} markers of {args.dict_name} written to: {args.output}")

    if args.marker_images_dir:
        os.makedirs(args.marker_images_dir, exist_ok=True)
        for marker_id in range(count):
            image = generate_marker_image(dictionary, marker_id, args.marker_pixels)
            cv2.imwrite(os.path.join(args.marker_images_dir, f"marker_{marker_id}.png"), image)
        print(f"✅ Marker images written to: {args.marker_images_dir}")
    return 0


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.mode == 'aruco':
        return run_aruco(args, parser)
    elif args.mode == 'calibrate':
        return run_calibrate(args)
    elif args.mode == 'init':
        return run_init(args)
    elif args.mode == 'dictionary':
        return run_dictionary(args)
    return 1


if __name__ == "__main__":
    sys.exit(main())
