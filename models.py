# =============================================================================
# models.py
# Dataclasses for image payloads, camera devices, analysis results, and the
# analysis cycle state.
# =============================================================================

import base64
import binascii
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


@dataclass(frozen=True)
class ImagePayload:
    """
    Encoded image bytes plus their MIME type. Camera captures and uploaded
    files both produce this, so consumers never need to know the origin.
    """
    data: bytes
    mime_type: str

    def __post_init__(self):
        if not self.data:
            raise ValueError("ImagePayload cannot be empty")
        if not self.mime_type.startswith("image/"):
            raise ValueError(f"Not an image MIME type: {self.mime_type!r}")

    @property
    def b64(self) -> str:
        return base64.b64encode(self.data).decode("ascii")

    def to_data_uri(self) -> str:
        return f"data:{self.mime_type};base64,{self.b64}"

    @classmethod
    def from_data_uri(cls, uri: str) -> "ImagePayload":
        """Parse a 'data:<mime>;base64,<payload>' string."""
        if not uri.startswith("data:") or "," not in uri:
            raise ValueError("Not a data URI")
        header, encoded = uri[5:].split(",", 1)
        mime_type, _, encoding = header.partition(";")
        if encoding != "base64":
            raise ValueError("Only base64 data URIs are supported")
        try:
            data = base64.b64decode(encoded, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 payload: {e}")
        return cls(data=data, mime_type=mime_type)

    def __repr__(self):
        return f"ImagePayload(mime_type={self.mime_type!r}, bytes={len(self.data)})"


@dataclass(frozen=True)
class CameraDevice:
    device_id: str
    label: str
    facing: str = "unknown"   # "environment", "user" or "unknown"


class PermissionState(Enum):
    UNKNOWN = "unknown"
    GRANTED = "granted"
    DENIED  = "denied"


# -- Remote results -----------------------------------------------------------

@dataclass(frozen=True)
class IdentificationResult:
    common_name: str
    latin_name: str
    confidence: float
    description: str

    @classmethod
    def from_dict(cls, d: dict) -> "IdentificationResult":
        return cls(
            common_name=d["commonName"],
            latin_name=d["latinName"],
            confidence=d["confidence"],
            description=d["description"],
        )


@dataclass(frozen=True)
class HealthAnalysisResult:
    is_healthy: bool
    diagnosis: str
    care_tips: str

    @classmethod
    def from_dict(cls, d: dict) -> "HealthAnalysisResult":
        return cls(
            is_healthy=d["isHealthy"],
            diagnosis=d["diagnosis"],
            care_tips=d["careTips"],
        )


@dataclass(frozen=True)
class CareGuide:
    care_tips: str


# -- Analysis cycle -----------------------------------------------------------

class AnalysisState(Enum):
    IDLE             = "idle"
    IDENTIFYING      = "identifying"
    HEALTH_ANALYZING = "health_analyzing"
    DONE             = "done"
    ERROR            = "error"


IN_FLIGHT_STATES = frozenset({AnalysisState.IDENTIFYING, AnalysisState.HEALTH_ANALYZING})


@dataclass
class AnalysisCycle:
    """One identify -> health-analyze attempt over a single image."""
    payload: Optional[ImagePayload] = None
    state: AnalysisState = AnalysisState.IDLE
    task_label: Optional[str] = None
    identification: Optional[IdentificationResult] = None
    health: Optional[HealthAnalysisResult] = None
    care_guide: Optional[CareGuide] = None
    error: Optional[str] = None
    history: List[AnalysisState] = field(default_factory=list)

    @property
    def is_loading(self) -> bool:
        return self.state in IN_FLIGHT_STATES

    def transition(self, state: AnalysisState, task_label: Optional[str] = None):
        self.history.append(self.state)
        self.state = state
        self.task_label = task_label

    def discard_results(self):
        self.identification = None
        self.health = None
        self.care_guide = None
