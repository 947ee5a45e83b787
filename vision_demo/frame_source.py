"""
Frame Acquisition
=================

A single iterator over the three kinds of input the demos accept:
a camera index, a video file, or a list of still images.
"""

import os
from typing import List, Optional

import cv2
import numpy as np


class FrameSource:
    """
    Sequential frame provider.

    Live sources (camera or video file) are backed by ``cv2.VideoCapture``;
    image lists are read from disk with ``cv2.imread``, visiting every
    ``skip``-th entry starting with the first one.
    """

    CAMERA = "camera"
    VIDEO_FILE = "video_file"
    IMAGE_LIST = "image_list"

    def __init__(self, kind: str, capture: Optional[cv2.VideoCapture] = None,
                 image_list: Optional[List[str]] = None, skip: int = 1):
        if skip <= 0:
            raise ValueError(f"Skip value must be greater than 0, got {skip}")

        self.kind = kind
        self.capture = capture
        self.image_list = list(image_list) if image_list is not None else []
        self.skip = skip
        self.position = 0

    @classmethod
    def from_camera(cls, camera_id: int) -> 'FrameSource':
        return cls(cls.CAMERA, capture=cv2.VideoCapture(camera_id))

    @classmethod
    def from_video(cls, path: str) -> 'FrameSource':
        return cls(cls.VIDEO_FILE, capture=cv2.VideoCapture(path))

    @classmethod
    def from_image_list(cls, image_paths: List[str], skip: int = 1) -> 'FrameSource':
        return cls(cls.IMAGE_LIST, image_list=image_paths, skip=skip)

    @classmethod
    def from_input(cls, source: str) -> 'FrameSource':
        """
        Open a camera when ``source`` is a plain index like "1", a video file otherwise.

        Raises:
            FileNotFoundError: If ``source`` is neither a camera index nor an existing file
        """
        if source.isdigit():
            return cls.from_camera(int(source))
        if not os.path.exists(source):
            raise FileNotFoundError(f'Input file "{source}" does not exist.')
        return cls.from_video(source)

    @property
    def is_live(self) -> bool:
        """True while frames come from an open VideoCapture."""
        return self.capture is not None and self.capture.isOpened()

    def is_opened(self) -> bool:
        if self.kind == self.IMAGE_LIST:
            return True
        return self.is_live

    def frame_count(self) -> int:
        """Number of frames an image list will yield (0 for live sources)."""
        if self.kind != self.IMAGE_LIST:
            return 0
        return len(range(0, len(self.image_list), self.skip))

    def next_image(self) -> Optional[np.ndarray]:
        """
        Get the next frame.

        Returns:
            BGR image, or None once the input is exhausted
        """
        if self.capture is not None:
            if not self.capture.isOpened():
                return None
            ok, frame = self.capture.read()
            return frame if ok else None

        while self.position < len(self.image_list):
            path = self.image_list[self.position]
            self.position += self.skip
            image = cv2.imread(path, cv2.IMREAD_COLOR)
            if image is not None:
                return image
            print(f"⚠️  Could not load image: {path}")
        return None

    def release(self):
        if self.capture is not None:
            self.capture.release()

    def __iter__(self):
        while True:
            frame = self.next_image()
            if frame is None:
                return
            yield frame

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
