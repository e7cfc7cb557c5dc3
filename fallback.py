# =============================================================================
# fallback.py
# File-upload path used when the camera cannot be acquired. Produces the
# same ImagePayload a camera capture does.
# =============================================================================

import io
import logging
from pathlib import Path
from typing import Optional, Union

from PIL import Image, UnidentifiedImageError

from constants import IMG_EXTS
from errors import CameraUnavailable, FileReadError
from models import ImagePayload

log = logging.getLogger(__name__)


class CaptureFallbackHandler:
    """Tracks whether upload is the only way in, and reads uploaded files."""

    def __init__(self):
        self.active = False
        self.reason: Optional[str] = None

    def activate(self, reason: str):
        self.active = True
        self.reason = reason
        log.warning("Camera unavailable, switching to file upload: %s", reason)

    def deactivate(self):
        self.active = False
        self.reason = None

    def handle_unavailable(self, exc: CameraUnavailable):
        self.activate(str(exc))

    def check_platform(self, backend) -> bool:
        """Activate right away if the backend cannot acquire cameras at all."""
        if not backend.is_supported():
            self.activate("This platform does not support camera access.")
        return self.active

    def read_selected_file(self, path: Union[str, Path]) -> ImagePayload:
        """Read a user-chosen image file into an ImagePayload."""
        path = Path(path)
        if path.suffix.lower() not in IMG_EXTS:
            raise FileReadError(f"Unsupported file type: {path.suffix or path.name}")
        try:
            data = path.read_bytes()
        except OSError as e:
            raise FileReadError(f"Failed to read the file: {e}")
        if not data:
            raise FileReadError(f"The file {path.name} is empty.")

        try:
            with Image.open(io.BytesIO(data)) as im:
                fmt = im.format
                im.verify()
        except (UnidentifiedImageError, OSError, SyntaxError) as e:
            raise FileReadError(f"{path.name} is not a readable image: {e}")

        mime_type = Image.MIME.get(fmt, "")
        if not mime_type.startswith("image/"):
            raise FileReadError(f"Unsupported image format: {fmt}")
        log.info("Loaded %s (%s, %d bytes)", path.name, mime_type, len(data))
        return ImagePayload(data=data, mime_type=mime_type)
