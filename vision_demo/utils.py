"""
Utility functions
=================

File helpers shared by the settings loader, the calibration session and
the command line: OpenCV string-list files and image directory scanning.
"""

import os
from glob import glob
from typing import List, Optional

import cv2


IMAGE_LIST_EXTENSIONS = ('.xml', '.yaml', '.yml')


def is_list_of_images(filename: str) -> bool:
    """Whether the file name looks like an OpenCV XML/YAML image list."""
    return os.path.splitext(filename)[1].lower() in IMAGE_LIST_EXTENSIONS


def read_string_list(filename: str) -> Optional[List[str]]:
    """
    Read the first top-level sequence of an OpenCV XML/YAML file.

    Args:
        filename: Path to the file

    Returns:
        List of strings, or None if the file cannot be opened or its first
        top-level node is not a sequence
    """
    if not os.path.isfile(filename):
        return None

    fs = cv2.FileStorage(filename, cv2.FILE_STORAGE_READ)
    try:
        if not fs.isOpened():
            return None
        node = fs.getFirstTopLevelNode()
        if node.empty() or not node.isSeq():
            return None
        return [node.at(i).string() for i in range(node.size())]
    finally:
        fs.release()


def write_string_list(filename: str, strings: List[str], name: str = "images") -> None:
    """Write strings as a single top-level sequence (the image list format)."""
    directory = os.path.dirname(filename)
    if directory:
        os.makedirs(directory, exist_ok=True)

    fs = cv2.FileStorage(filename, cv2.FILE_STORAGE_WRITE)
    fs.startWriteStruct(name, cv2.FileNode_SEQ)
    for s in strings:
        fs.write("", s)
    fs.endWriteStruct()
    fs.release()


def load_images_from_directory(directory_path, extensions=None):
    """
    Load all image paths from a directory.

    Args:
        directory_path: Path to the directory containing images
        extensions: List of glob patterns to look for

    Returns:
        Sorted list of image file paths
    """
    if extensions is None:
        extensions = ['*.jpg', '*.jpeg', '*.png', '*.bmp', '*.tiff', '*.tif']

    image_paths = []
    for ext in extensions:
        image_paths.extend(glob(os.path.join(directory_path, ext)))
        image_paths.extend(glob(os.path.join(directory_path, ext.upper())))

    # Case-insensitive filesystems report the same file twice
    image_paths = list(dict.fromkeys(image_paths))

    def sort_key(path):
        stem = os.path.splitext(os.path.basename(path))[0]
        return (0, int(stem), stem) if stem.isdigit() else (1, 0, stem)

    image_paths.sort(key=sort_key)
    return image_paths
