import io

import numpy as np
import pytest
from PIL import Image

import camera
from camera import (MediaCaptureController, OpenCVCameraBackend, encode_frame,
                    facing_from_label)
from errors import CameraUnavailable, CaptureFailed
from models import CameraDevice, ImagePayload, PermissionState

from conftest import FakeCameraBackend


def test_acquire_prefers_rear_camera(backend):
    controller = MediaCaptureController(backend)
    session = controller.acquire()
    assert session.device_id == "1"
    assert backend.open_calls == [(None, "environment")]
    assert controller.permission == PermissionState.GRANTED
    assert controller.current_index == 1
    assert controller.current_device.label == "Back Camera"


def test_acquire_falls_back_to_any_camera_without_rear():
    backend = FakeCameraBackend(devices=[CameraDevice("7", "Integrated Webcam", "user")])
    controller = MediaCaptureController(backend)
    session = controller.acquire()
    assert session.device_id == "7"
    assert backend.open_calls == [(None, "environment"), (None, None)]
    assert controller.current_index == 0


def test_acquire_exact_device(backend):
    controller = MediaCaptureController(backend)
    controller.acquire("0")
    assert backend.open_calls == [("0", None)]
    assert controller.current_index == 0


class _UnlistedStreamBackend(FakeCameraBackend):
    def open_stream(self, device_id=None, facing=None):
        stream = super().open_stream(device_id, facing)
        stream.device_id = "not-enumerated"
        return stream


def test_unknown_active_device_defaults_to_index_zero():
    controller = MediaCaptureController(_UnlistedStreamBackend())
    controller.acquire("1")
    assert controller.current_index == 0


def test_permission_denied_raises_unavailable():
    backend = FakeCameraBackend(denied=True)
    controller = MediaCaptureController(backend)
    with pytest.raises(CameraUnavailable):
        controller.acquire()
    assert controller.permission == PermissionState.DENIED
    assert controller.session is None
    assert not controller.is_active


def test_unsupported_platform_raises_unavailable():
    backend = FakeCameraBackend(supported=False)
    controller = MediaCaptureController(backend)
    with pytest.raises(CameraUnavailable):
        controller.acquire()
    assert controller.permission == PermissionState.DENIED
    assert backend.open_calls == []


def test_double_acquire_leaves_one_active_session(backend):
    controller = MediaCaptureController(backend)
    first = controller.acquire()
    second = controller.acquire()
    assert not first.active
    assert second.active
    assert len(backend.open_streams) == 1
    assert backend.open_streams[0] is second.stream


def test_failed_reacquire_still_releases_previous(backend):
    controller = MediaCaptureController(backend)
    first = controller.acquire()
    backend.denied = True
    with pytest.raises(CameraUnavailable):
        controller.acquire()
    assert not first.active
    assert backend.open_streams == []


def test_switch_cycles_through_devices(backend):
    controller = MediaCaptureController(backend)
    controller.acquire("0")
    assert controller.current_index == 0
    controller.switch_to_next()
    assert controller.current_index == 1
    controller.switch_to_next()
    assert controller.current_index == 0
    assert len(backend.open_streams) == 1


def test_switch_visits_every_device_before_repeating():
    devices = [CameraDevice(str(i), f"Cam {i}") for i in range(3)]
    backend = FakeCameraBackend(devices=devices)
    controller = MediaCaptureController(backend)
    controller.acquire("0")
    seen = []
    for _ in range(3):
        controller.switch_to_next()
        seen.append(controller.current_index)
    assert seen == [1, 2, 0]


def test_switch_with_single_camera_is_noop_with_notice():
    backend = FakeCameraBackend(devices=[CameraDevice("0", "Only", "user")])
    notices = []
    controller = MediaCaptureController(backend, on_notice=lambda t, m: notices.append(t))
    session = controller.acquire()
    opens = len(backend.open_calls)
    assert controller.switch_to_next() is session
    assert session.active
    assert len(backend.open_calls) == opens
    assert notices == ["Single camera"]


def test_capture_frame_produces_jpeg_at_native_size(backend):
    controller = MediaCaptureController(backend)
    controller.acquire()
    payload = controller.capture_frame()
    assert isinstance(payload, ImagePayload)
    assert payload.mime_type == "image/jpeg"
    with Image.open(io.BytesIO(payload.data)) as im:
        assert im.size == (64, 48)


def test_capture_without_session_fails(backend):
    controller = MediaCaptureController(backend)
    with pytest.raises(CaptureFailed):
        controller.capture_frame()


def test_capture_after_release_fails(backend):
    controller = MediaCaptureController(backend)
    controller.acquire()
    controller.release()
    with pytest.raises(CaptureFailed):
        controller.capture_frame()


def test_capture_with_unreadable_frame_fails(backend):
    controller = MediaCaptureController(backend)
    session = controller.acquire()
    session.stream.frame = None
    session.stream.stopped = True
    with pytest.raises(CaptureFailed):
        controller.capture_frame()


def test_release_is_idempotent(backend):
    controller = MediaCaptureController(backend)
    controller.acquire()
    controller.release()
    controller.release()
    assert controller.session is None
    assert backend.open_streams == []


def test_reset_forgets_devices(backend):
    controller = MediaCaptureController(backend)
    controller.acquire()
    controller.reset()
    assert controller.devices == []
    assert controller.current_index == 0
    assert controller.permission == PermissionState.UNKNOWN
    assert backend.open_streams == []


def test_read_preview_without_session_is_none(backend):
    assert MediaCaptureController(backend).read_preview() is None


def test_encode_frame_rejects_empty_frame():
    with pytest.raises(CaptureFailed):
        encode_frame(np.zeros((0, 0, 3), dtype=np.uint8))


@pytest.mark.parametrize("label,facing", [
    ("Back Camera", "environment"),
    ("camera2 1, facing rear", "environment"),
    ("FaceTime HD Camera", "user"),
    ("Integrated Webcam", "user"),
    ("USB Video Device", "unknown"),
])
def test_facing_from_label(label, facing):
    assert facing_from_label(label) == facing


class _ExclusiveCapture:
    """cv2.VideoCapture stand-in where each index can only be opened once."""

    present = {0, 1}
    held = set()

    def __init__(self, index):
        self.index = index
        self._open = index in self.present and index not in self.held
        if self._open:
            self.held.add(index)

    def isOpened(self):
        return self._open

    def read(self):
        return True, np.zeros((48, 64, 3), dtype=np.uint8)

    def release(self):
        if self._open:
            self.held.discard(self.index)
            self._open = False


@pytest.fixture
def exclusive_cv2(monkeypatch):
    _ExclusiveCapture.present = {0, 1}
    _ExclusiveCapture.held = set()
    monkeypatch.setattr(camera.sys, "platform", "win32")
    monkeypatch.setattr(camera.cv2, "VideoCapture", _ExclusiveCapture)
    return _ExclusiveCapture


def test_enumerated_devices_survive_an_exclusive_open(exclusive_cv2):
    controller = MediaCaptureController(OpenCVCameraBackend(max_index=4))
    controller.acquire()
    assert [d.device_id for d in controller.devices] == ["0", "1"]
    assert controller.current_device.device_id == "0"

    controller.switch_to_next()
    assert controller.current_device.device_id == "1"
    assert exclusive_cv2.held == {1}
    controller.switch_to_next()
    assert controller.current_device.device_id == "0"
    controller.release()
    assert exclusive_cv2.held == set()


def test_index_scan_skips_missing_indices(exclusive_cv2):
    exclusive_cv2.present = {1, 3}
    devices = OpenCVCameraBackend(max_index=5).enumerate_devices()
    assert [d.device_id for d in devices] == ["1", "3"]


def test_empty_enumeration_keeps_last_known_devices(backend):
    controller = MediaCaptureController(backend)
    controller.acquire("0")
    known = list(backend.devices)
    backend.enumerate_devices = lambda: []
    controller.switch_to_next()
    assert controller.devices == known
    assert controller.current_index == 1


@pytest.mark.hardware
def test_opencv_backend_captures_from_real_camera():
    controller = MediaCaptureController(OpenCVCameraBackend())
    try:
        controller.acquire()
        payload = controller.capture_frame()
        assert payload.data
    finally:
        controller.release()
