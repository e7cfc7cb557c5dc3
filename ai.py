# =============================================================================
# ai.py
# Remote model collaborators: plant identification and health analysis with
# the vision model, and the detailed care guide with the text model.
# All three go through Ollama's chat endpoint with a JSON schema as format.
# =============================================================================

import base64
import io
import json
import logging
import socket
import urllib.error
import urllib.request
from typing import Dict, List, Optional, Tuple

from PIL import Image

from constants import (OLLAMA_CHAT_URL, VISION_MODEL, TEXT_MODEL, REQUEST_TIMEOUT,
                       MAX_IMAGE_WIDTH, IDENTIFY_PROMPT, HEALTH_PROMPT,
                       CARE_TIPS_PROMPT, DEFAULT_DESCRIPTION)
from errors import AnalysisTimeout, RemoteError
from models import CareGuide, HealthAnalysisResult, IdentificationResult, ImagePayload

log = logging.getLogger(__name__)


# =============================================================================
# OUTPUT SCHEMAS
# =============================================================================

IDENTIFY_SCHEMA = {
    "type": "object",
    "properties": {
        "commonName":  {"type": "string"},
        "latinName":   {"type": "string"},
        "confidence":  {"type": "number"},
        "description": {"type": "string"},
    },
    "required": ["commonName", "latinName", "confidence", "description"],
}

HEALTH_SCHEMA = {
    "type": "object",
    "properties": {
        "isHealthy": {"type": "boolean"},
        "diagnosis": {"type": "string"},
        "careTips":  {"type": "string"},
    },
    "required": ["isHealthy", "diagnosis", "careTips"],
}

CARE_TIPS_SCHEMA = {
    "type": "object",
    "properties": {"careTips": {"type": "string"}},
    "required": ["careTips"],
}

_JSON_TYPES = {
    "string":  (str,),
    "number":  (int, float),
    "boolean": (bool,),
}


# =============================================================================
# TRANSPORT
# =============================================================================

def _encode_payload_for_model(payload: ImagePayload) -> str:
    """Resize to MAX_IMAGE_WIDTH wide and base64-encode as JPEG."""
    try:
        with Image.open(io.BytesIO(payload.data)) as im:
            img = im.convert("RGB")
    except OSError as e:
        raise RemoteError(f"Could not prepare the image for analysis: {e}")
    if img.width > MAX_IMAGE_WIDTH:
        ratio = MAX_IMAGE_WIDTH / img.width
        img = img.resize((MAX_IMAGE_WIDTH, int(img.height * ratio)), Image.LANCZOS)
    buf = io.BytesIO()
    img.save(buf, format="JPEG", quality=85)
    return base64.b64encode(buf.getvalue()).decode("utf-8")


def _chat(model: str, prompt: str, schema: dict,
          images: Optional[List[str]] = None,
          timeout: float = REQUEST_TIMEOUT) -> str:
    """
    Send one chat turn and return the raw message content.
    Raises AnalysisTimeout on timeout and RemoteError on any other failure.
    """
    message = {"role": "user", "content": prompt}
    if images:
        message["images"] = images
    body = json.dumps({
        "model": model,
        "messages": [message],
        "stream": False,
        "format": schema,
        "options": {"temperature": 0.2, "num_ctx": 4096},
    }).encode()

    req = urllib.request.Request(
        OLLAMA_CHAT_URL, data=body,
        headers={"Content-Type": "application/json"}, method="POST"
    )
    log.debug("POST %s model=%s images=%d", OLLAMA_CHAT_URL, model, len(images or []))
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            raw = resp.read().decode("utf-8")
    except urllib.error.HTTPError as e:
        try:
            detail = e.read().decode("utf-8", errors="replace")
        except OSError:
            detail = str(e)
        raise RemoteError(f"The model service returned HTTP {e.code}.\nDetail: {detail}")
    except urllib.error.URLError as e:
        if isinstance(e.reason, (socket.timeout, TimeoutError)):
            raise AnalysisTimeout(f"The model did not answer within {timeout:.0f}s.")
        raise RemoteError(f"Could not reach the model service at {OLLAMA_CHAT_URL}.\nDetail: {e.reason}")
    except (socket.timeout, TimeoutError):
        raise AnalysisTimeout(f"The model did not answer within {timeout:.0f}s.")
    except OSError as e:
        raise RemoteError(f"Connection to the model service failed.\nDetail: {e}")

    try:
        data = json.loads(raw)
    except json.JSONDecodeError:
        raise RemoteError("The model service returned a non-JSON response.")
    if not isinstance(data, dict):
        raise RemoteError("The model service response was not a JSON object.")
    if data.get("error"):
        raise RemoteError(f"The model service reported an error: {data['error']}")
    content = (data.get("message") or {}).get("content")
    if not isinstance(content, str):
        raise RemoteError("The model service response had no message content.")
    return content


def _parse_structured(content: str, schema: dict) -> Dict:
    """Decode the model's JSON answer and check it against a flat schema."""
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError:
        raise RemoteError("The model answer was not valid JSON.")
    if not isinstance(parsed, dict):
        raise RemoteError("The model answer was not a JSON object.")

    for key in schema["required"]:
        if key not in parsed:
            raise RemoteError(f"The model answer is missing '{key}'.")
        expected = _JSON_TYPES[schema["properties"][key]["type"]]
        value = parsed[key]
        # bool is an int subclass; keep it out of numeric fields
        if not isinstance(value, expected) or (
                bool not in expected and isinstance(value, bool)):
            raise RemoteError(f"The model answer has an invalid '{key}'.")
    return parsed


# =============================================================================
# COLLABORATORS
# =============================================================================

def identify_plant(payload: ImagePayload) -> IdentificationResult:
    """Identify the plant species in the image."""
    content = _chat(VISION_MODEL, IDENTIFY_PROMPT, IDENTIFY_SCHEMA,
                    images=[_encode_payload_for_model(payload)])
    parsed = _parse_structured(content, IDENTIFY_SCHEMA)
    parsed["commonName"]  = parsed["commonName"].strip()
    parsed["latinName"]   = parsed["latinName"].strip()
    parsed["description"] = parsed["description"].strip()
    parsed["confidence"], clamped = _clamp_confidence(parsed["confidence"])
    if clamped:
        log.warning("Confidence outside [0, 1] from model, clamped to %s", parsed["confidence"])
    result = IdentificationResult.from_dict(parsed)
    log.info("Identified: %s (%s) confidence=%.2f",
             result.common_name or "<none>", result.latin_name, result.confidence)
    return result


def analyze_plant_health(payload: ImagePayload, description: str) -> HealthAnalysisResult:
    """Diagnose the plant's health from the image and its description."""
    prompt = HEALTH_PROMPT.format(description=description or DEFAULT_DESCRIPTION)
    content = _chat(VISION_MODEL, prompt, HEALTH_SCHEMA,
                    images=[_encode_payload_for_model(payload)])
    parsed = _parse_structured(content, HEALTH_SCHEMA)
    result = HealthAnalysisResult.from_dict(parsed)
    log.info("Health analysis: %s", "healthy" if result.is_healthy else "needs attention")
    return result


def generate_care_tips(plant_name: str, health_analysis: str) -> CareGuide:
    """Write a detailed care guide from the plant name and health analysis."""
    prompt = CARE_TIPS_PROMPT.format(plant_name=plant_name,
                                     health_analysis=health_analysis)
    content = _chat(TEXT_MODEL, prompt, CARE_TIPS_SCHEMA)
    parsed = _parse_structured(content, CARE_TIPS_SCHEMA)
    return CareGuide(care_tips=parsed["careTips"].strip())


def _clamp_confidence(value: float) -> Tuple[float, bool]:
    clamped = min(1.0, max(0.0, float(value)))
    return clamped, clamped != value
