"""Shared pytest configuration and fixtures for the Frô test suite."""

import io
import sys
from pathlib import Path

import numpy as np
import pytest
from PIL import Image

# Ensure the project root is in the path for imports
PROJECT_ROOT = Path(__file__).parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from camera import CameraBackend, VideoStream  # noqa: E402
from errors import CameraError  # noqa: E402
from models import CameraDevice, ImagePayload  # noqa: E402


# =============================================================================
# Pytest Configuration
# =============================================================================

def pytest_configure(config):
    config.addinivalue_line(
        "markers", "hardware: mark test as requiring a physical camera"
    )


def pytest_addoption(parser):
    parser.addoption(
        "--run-hardware",
        action="store_true",
        default=False,
        help="Run tests that require a physical camera",
    )


def pytest_collection_modifyitems(config, items):
    if config.getoption("--run-hardware"):
        return
    skip_hardware = pytest.mark.skip(reason="Need --run-hardware option to run")
    for item in items:
        if "hardware" in item.keywords:
            item.add_marker(skip_hardware)


# =============================================================================
# Fake camera platform
# =============================================================================

class FakeStream(VideoStream):
    def __init__(self, device_id: str, frame=None):
        self.device_id = device_id
        self.frame = frame if frame is not None else np.full((48, 64, 3), 120, dtype=np.uint8)
        self.stopped = False

    def read_frame(self):
        if self.stopped:
            return None
        return self.frame

    def stop(self):
        self.stopped = True


class FakeCameraBackend(CameraBackend):
    """
    In-memory camera platform. `denied` makes every open fail, and
    `open_streams` counts streams that were opened and not yet stopped.
    """

    def __init__(self, devices=None, supported=True, denied=False):
        self.devices = list(devices) if devices is not None else [
            CameraDevice("0", "Front Camera", "user"),
            CameraDevice("1", "Back Camera", "environment"),
        ]
        self.supported = supported
        self.denied = denied
        self.opened = []
        self.open_calls = []

    @property
    def open_streams(self):
        return [s for s in self.opened if not s.stopped]

    def is_supported(self):
        return self.supported

    def enumerate_devices(self):
        return list(self.devices)

    def open_stream(self, device_id=None, facing=None):
        self.open_calls.append((device_id, facing))
        if self.denied:
            raise CameraError("Permission denied")
        if device_id is not None:
            matches = [d for d in self.devices if d.device_id == device_id]
        elif facing is not None:
            matches = [d for d in self.devices if d.facing == facing]
        else:
            matches = self.devices[:1]
        if not matches:
            raise CameraError(f"No camera for device_id={device_id} facing={facing}")
        stream = FakeStream(matches[0].device_id)
        self.opened.append(stream)
        return stream


@pytest.fixture
def backend():
    return FakeCameraBackend()


# =============================================================================
# Sample images
# =============================================================================

def _image_bytes(fmt: str, size=(32, 24), color=(40, 140, 60)) -> bytes:
    buf = io.BytesIO()
    Image.new("RGB", size, color).save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture
def jpeg_bytes():
    return _image_bytes("JPEG")


@pytest.fixture
def png_bytes():
    return _image_bytes("PNG")


@pytest.fixture
def payload(jpeg_bytes):
    return ImagePayload(data=jpeg_bytes, mime_type="image/jpeg")


@pytest.fixture
def large_jpeg_bytes():
    return _image_bytes("JPEG", size=(2048, 1536))
