# =============================================================================
# camera.py
# Camera capability interface, the OpenCV implementation of it, and the
# MediaCaptureController that owns the single live capture session.
# =============================================================================

import glob
import logging
import os
import re
import sys
import threading
from abc import ABC, abstractmethod
from typing import Callable, List, Optional

import cv2
import numpy as np

from constants import CAPTURE_JPEG_QUALITY, MAX_CAMERA_INDEX
from errors import CameraError, CameraUnavailable, CaptureFailed
from models import CameraDevice, ImagePayload, PermissionState

log = logging.getLogger(__name__)

FACING_ENVIRONMENT = "environment"
FACING_USER        = "user"
FACING_UNKNOWN     = "unknown"

_ENVIRONMENT_WORDS = ("back", "rear", "environment", "world")
_USER_WORDS        = ("front", "user", "facetime", "integrated", "selfie")


def facing_from_label(label: str) -> str:
    """Best-effort facing hint from a human device label."""
    lower = label.lower()
    if any(w in lower for w in _ENVIRONMENT_WORDS):
        return FACING_ENVIRONMENT
    if any(w in lower for w in _USER_WORDS):
        return FACING_USER
    return FACING_UNKNOWN


def encode_frame(frame: np.ndarray, quality: int = CAPTURE_JPEG_QUALITY) -> ImagePayload:
    """Encode a BGR frame, at its own resolution, into a JPEG payload."""
    if frame is None or frame.size == 0:
        raise CaptureFailed("The camera returned an empty frame.")
    ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
    if not ok:
        raise CaptureFailed("Could not encode the camera image.")
    return ImagePayload(data=buf.tobytes(), mime_type="image/jpeg")


# =============================================================================
# CAPABILITY INTERFACE
# =============================================================================

class VideoStream(ABC):
    """A live stream bound to one device."""

    device_id: str

    @abstractmethod
    def read_frame(self) -> Optional[np.ndarray]:
        """Return the current BGR frame, or None if nothing could be read."""

    @abstractmethod
    def stop(self):
        """Stop every underlying track. Must be safe to call twice."""


class CameraBackend(ABC):
    """Platform binding used by MediaCaptureController."""

    @abstractmethod
    def is_supported(self) -> bool:
        ...

    @abstractmethod
    def enumerate_devices(self) -> List[CameraDevice]:
        ...

    @abstractmethod
    def open_stream(self, device_id: Optional[str] = None,
                    facing: Optional[str] = None) -> VideoStream:
        """
        Open a stream under an exact-device constraint, a facing preference,
        or no constraint at all. Raises CameraError when it cannot.
        """


# =============================================================================
# OPENCV BINDING
# =============================================================================

class OpenCVStream(VideoStream):
    def __init__(self, device_id: str, cap):
        self.device_id = device_id
        self._cap = cap

    def read_frame(self) -> Optional[np.ndarray]:
        if self._cap is None:
            return None
        ok, frame = self._cap.read()
        return frame if ok else None

    def stop(self):
        if self._cap is not None:
            self._cap.release()
            self._cap = None


class OpenCVCameraBackend(CameraBackend):
    """
    Enumerates /dev/video* nodes on Linux (labels read from sysfs) and
    probes consecutive indices elsewhere.
    """

    def __init__(self, max_index: int = MAX_CAMERA_INDEX):
        self.max_index = max_index

    def is_supported(self) -> bool:
        return hasattr(cv2, "VideoCapture")

    def enumerate_devices(self) -> List[CameraDevice]:
        if sys.platform.startswith("linux"):
            devices = self._enumerate_linux()
        else:
            devices = self._enumerate_indices()
        log.debug("Enumerated %d camera(s): %s", len(devices),
                  ", ".join(d.label for d in devices))
        return devices

    def _enumerate_linux(self) -> List[CameraDevice]:
        devices = []
        for node in sorted(glob.glob("/dev/video*"), key=_node_index):
            index = _node_index(node)
            if index < 0:
                continue
            label = _read_sysfs_name(index) or f"Camera {index}"
            if not _is_capture_node(index):
                continue
            devices.append(CameraDevice(device_id=str(index), label=label,
                                        facing=facing_from_label(label)))
        return devices

    def _enumerate_indices(self) -> List[CameraDevice]:
        devices = []
        for index in range(self.max_index):
            cap = cv2.VideoCapture(index)
            try:
                # indices can have gaps, and a busy device fails to open
                if not cap.isOpened():
                    continue
            finally:
                cap.release()
            label = f"Camera {index}"
            devices.append(CameraDevice(device_id=str(index), label=label,
                                        facing=facing_from_label(label)))
        return devices

    def open_stream(self, device_id: Optional[str] = None,
                    facing: Optional[str] = None) -> VideoStream:
        if device_id is None:
            devices = self.enumerate_devices()
            if facing is not None:
                devices = [d for d in devices if d.facing == facing]
                if not devices:
                    raise CameraError(f"No {facing}-facing camera found.")
            candidates = [d.device_id for d in devices] or ["0"]
        else:
            candidates = [device_id]

        for candidate in candidates:
            cap = cv2.VideoCapture(int(candidate) if candidate.isdigit() else candidate)
            if cap.isOpened():
                log.info("Opened camera %s", candidate)
                return OpenCVStream(candidate, cap)
            cap.release()
        raise CameraError(f"Could not open camera {', '.join(candidates)}.")


def _node_index(path: str) -> int:
    m = re.search(r"video(\d+)$", path)
    return int(m.group(1)) if m else -1


def _read_sysfs_name(index: int) -> Optional[str]:
    try:
        with open(f"/sys/class/video4linux/video{index}/name", encoding="utf-8") as fh:
            return fh.read().strip() or None
    except OSError:
        return None


def _is_capture_node(index: int) -> bool:
    # UVC devices expose a metadata node next to each capture node; only
    # index 0 of a device accepts frames.
    try:
        with open(f"/sys/class/video4linux/video{index}/index", encoding="utf-8") as fh:
            return fh.read().strip() == "0"
    except OSError:
        return os.path.exists(f"/dev/video{index}")


# =============================================================================
# CAPTURE SESSION + CONTROLLER
# =============================================================================

class CaptureSession:
    """Handle to the live stream. Only MediaCaptureController creates these."""

    def __init__(self, stream: VideoStream):
        self.stream = stream
        self.device_id = stream.device_id
        self.active = True

    def close(self):
        if self.active:
            self.active = False
            self.stream.stop()

    def __repr__(self):
        return f"CaptureSession(device_id={self.device_id!r}, active={self.active})"


class MediaCaptureController:
    """
    Owns camera enumeration, the one active CaptureSession, device switching
    and still capture. All transitions run under one lock, so an acquire
    never overlaps the release of the session before it.
    """

    def __init__(self, backend: CameraBackend,
                 on_notice: Optional[Callable[[str, str], None]] = None):
        self.backend = backend
        self._on_notice = on_notice
        self._lock = threading.RLock()
        self._session: Optional[CaptureSession] = None
        self.permission = PermissionState.UNKNOWN
        self.devices: List[CameraDevice] = []
        self.current_index = 0

    # -- State ----------------------------------------------------------------

    @property
    def session(self) -> Optional[CaptureSession]:
        return self._session

    @property
    def is_active(self) -> bool:
        return self._session is not None and self._session.active

    @property
    def current_device(self) -> Optional[CameraDevice]:
        if 0 <= self.current_index < len(self.devices):
            return self.devices[self.current_index]
        return None

    def _notice(self, title: str, message: str):
        log.info("%s: %s", title, message)
        if self._on_notice:
            self._on_notice(title, message)

    # -- Acquisition ----------------------------------------------------------

    def acquire(self, device_id: Optional[str] = None) -> CaptureSession:
        """
        Start a stream on `device_id`, or on a rear camera when none is given
        (falling back to any camera). Raises CameraUnavailable on failure.
        """
        with self._lock:
            self._release_locked()

            if not self.backend.is_supported():
                self.permission = PermissionState.DENIED
                raise CameraUnavailable(
                    "This platform does not support camera access. Please upload a photo."
                )

            # Enumerate while no stream is held: some capture APIs refuse a
            # second open of the live device.
            devices = self.backend.enumerate_devices() or self.devices
            self.permission = PermissionState.UNKNOWN
            try:
                if device_id is not None:
                    stream = self.backend.open_stream(device_id=device_id)
                else:
                    try:
                        stream = self.backend.open_stream(facing=FACING_ENVIRONMENT)
                    except CameraError as e:
                        log.warning("Rear camera unavailable (%s), trying the default camera.", e)
                        stream = self.backend.open_stream()
            except CameraError as e:
                self.permission = PermissionState.DENIED
                log.error("Camera access failed: %s", e)
                raise CameraUnavailable(
                    "Camera access denied or no camera found. "
                    "Enable camera permissions or upload a photo instead."
                ) from e

            self._session = CaptureSession(stream)
            self.permission = PermissionState.GRANTED
            self.devices = devices
            self.current_index = next(
                (i for i, d in enumerate(self.devices) if d.device_id == stream.device_id),
                0,
            )
            log.info("Camera session started on device %s (%d/%d)",
                     stream.device_id, self.current_index + 1, len(self.devices))
            return self._session

    def switch_to_next(self) -> Optional[CaptureSession]:
        """Cycle to the next enumerated device; a notice only when there is one."""
        with self._lock:
            if len(self.devices) <= 1:
                self._notice("Single camera", "Only one camera was detected.")
                return self._session
            next_index = (self.current_index + 1) % len(self.devices)
            return self.acquire(self.devices[next_index].device_id)

    # -- Capture --------------------------------------------------------------

    def capture_frame(self) -> ImagePayload:
        with self._lock:
            if not self.is_active:
                raise CaptureFailed("No active camera session.")
            frame = self._session.stream.read_frame()
            if frame is None:
                raise CaptureFailed("Could not read an image from the camera.")
            payload = encode_frame(frame)
            log.info("Captured %dx%d frame (%d bytes)",
                     frame.shape[1], frame.shape[0], len(payload.data))
            return payload

    def read_preview(self) -> Optional[np.ndarray]:
        """Latest frame for live preview, or None when no session is active."""
        with self._lock:
            if not self.is_active:
                return None
            return self._session.stream.read_frame()

    # -- Release --------------------------------------------------------------

    def release(self):
        with self._lock:
            self._release_locked()

    def _release_locked(self):
        if self._session is not None:
            log.debug("Releasing camera session on device %s", self._session.device_id)
            try:
                self._session.close()
            finally:
                self._session = None

    def reset(self):
        """Release the session and forget the enumerated devices."""
        with self._lock:
            self._release_locked()
            self.permission = PermissionState.UNKNOWN
            self.devices = []
            self.current_index = 0
