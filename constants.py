# =============================================================================
# constants.py
# Shared constants, model endpoints, prompt text, and file extension sets.
# Every setting can be overridden from the environment (FRO_* variables).
# =============================================================================

import os
from pathlib import Path

# -- Ollama -------------------------------------------------------------------
OLLAMA_HOST     = os.environ.get("FRO_OLLAMA_HOST", "http://localhost:11434").rstrip("/")
OLLAMA_CHAT_URL = f"{OLLAMA_HOST}/api/chat"
OLLAMA_TAGS_URL = f"{OLLAMA_HOST}/api/tags"
VISION_MODEL    = os.environ.get("FRO_VISION_MODEL", "llava-llama3")
TEXT_MODEL      = os.environ.get("FRO_TEXT_MODEL", "llama3")

# Seconds before a remote call is abandoned and reported as a timeout.
REQUEST_TIMEOUT = float(os.environ.get("FRO_REQUEST_TIMEOUT", "60"))

RESPONSE_LANGUAGE = os.environ.get("FRO_LANGUAGE", "Brazilian Portuguese")

# -- Images -------------------------------------------------------------------
IMG_EXTS = frozenset({".jpg", ".jpeg", ".png", ".gif", ".bmp", ".webp", ".tiff", ".tif"})
IMG_FILETYPES = [("Image files", "*.jpg *.jpeg *.png *.bmp *.gif *.webp *.tiff *.tif")]

MAX_IMAGE_WIDTH      = 1024   # downscale before upload
CAPTURE_JPEG_QUALITY = 90
MAX_CAMERA_INDEX     = 10     # highest index probed where /dev/video* is unavailable

# -- Preferences --------------------------------------------------------------
PREFERENCES_PATH = Path(
    os.environ.get("FRO_PREFERENCES", str(Path.home() / ".fro" / "preferences.json"))
)
TUTORIAL_SEEN_KEY = "fro-tutorial-seen"

# -- Analysis -----------------------------------------------------------------
DEFAULT_DESCRIPTION = "Image of the plant"

TASK_IDENTIFYING     = "Frô is identifying..."
TASK_HEALTH          = "Frô is analysing plant health..."
TASK_CARE_GUIDE      = "Frô is writing a care guide..."

# -- Prompts ------------------------------------------------------------------
IDENTIFY_PROMPT = (
    "You are Frô, a botanical AI specialised in plant identification. "
    "Use the photo to identify the plant species. Provide the common name, "
    "the scientific (Latin) name and a very concise description (at most "
    "2 sentences, suited to a phone screen). Also estimate a confidence "
    "level for the identification between 0 and 1. "
    "If there is no plant in the photo, return an empty commonName. "
    f"Give every answer in {RESPONSE_LANGUAGE}. "
    "Respond only with JSON matching the requested schema."
)

HEALTH_PROMPT = (
    "You are Frô, a botanical AI specialised in plant health. Your answers "
    "must be clear and objective, ideal for reading on a smartphone.\n\n"
    "Based on the photo and the description, do the following:\n"
    "1. Diagnosis: a direct and concise diagnosis (2-3 sentences at most) "
    "of the plant's health.\n"
    "2. Immediate care tips: short, practical advice for immediate action "
    "(use short topics where needed).\n\n"
    "Description: {description}\n\n"
    "Be direct and objective. Do not use markdown formatting such as "
    f"asterisks for bold. Give every answer in {RESPONSE_LANGUAGE}. "
    "Respond only with JSON matching the requested schema."
)

CARE_TIPS_PROMPT = (
    "You are Frô, an AI specialised in plant care. Write a complete but "
    "objective care guide that is easy to read on a smartphone.\n\n"
    "Based on the plant name and the health analysis, write personalised "
    "care tips organised under these topics, using plain text titles without "
    "markdown:\n"
    "- Watering: frequency and amount.\n"
    "- Light: sunlight needs (direct, indirect).\n"
    "- Soil: ideal soil type.\n"
    "- Fertilising: when and with what.\n"
    "- Common problems: how to deal with the problems mentioned in the "
    "health analysis.\n\n"
    "Plant name: {plant_name}\n"
    "Health analysis: {health_analysis}\n\n"
    f"Keep the language simple and practical. Answer in {RESPONSE_LANGUAGE}. "
    "Respond only with JSON matching the requested schema."
)

# -- Tutorial -----------------------------------------------------------------
# (title, body) for each step of the first-run tutorial.
TUTORIAL_STEPS = [
    ("1. Capture your plant",
     "Use your camera or upload a photo of your plant. Try to get a clear, "
     "well-lit picture."),
    ("2. Analysis with Frô",
     "Frô, our AI, identifies the species of your plant and checks its "
     "health, looking for signs of trouble."),
    ("3. Get tips",
     "You receive a care guide with tips on watering, light, soil and how "
     "to solve specific problems."),
]
