# =============================================================================
# install.py
# First-run setup for Frô:
#
#   python install.py
#
# Installs the project into the current interpreter, then makes sure the
# Ollama server has the vision and text models Frô talks to.
# =============================================================================

import json
import os
import subprocess
import sys
import urllib.request
from typing import List, Optional

from constants import OLLAMA_HOST, OLLAMA_TAGS_URL, VISION_MODEL, TEXT_MODEL

MIN_PYTHON = (3, 9)
PROJECT_DIR = os.path.dirname(os.path.abspath(__file__))


def report(ok: bool, msg: str):
    print(f"  [{'x' if ok else ' '}] {msg}")


# =============================================================================
# PYTHON + PROJECT
# =============================================================================

def check_python(version_info=None) -> bool:
    found = tuple((version_info or sys.version_info)[:3])
    label = ".".join(str(n) for n in found)
    good = found[:2] >= MIN_PYTHON
    report(good, f"Python {label} (need {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+)")
    return good


def install_project() -> bool:
    cmd = [sys.executable, "-m", "pip", "install", "-e", PROJECT_DIR]
    result = subprocess.run(cmd, capture_output=True, text=True)
    report(result.returncode == 0, "pip install -e .")
    if result.returncode != 0:
        print(result.stderr[-2000:])
    return result.returncode == 0


# =============================================================================
# OLLAMA MODELS
# =============================================================================

def local_models() -> Optional[List[str]]:
    """Names of the models the Ollama server holds, or None when it is down."""
    try:
        with urllib.request.urlopen(OLLAMA_TAGS_URL, timeout=3) as resp:
            tags = json.loads(resp.read().decode())
    except (OSError, ValueError):
        return None
    return [m.get("name", "") for m in tags.get("models", [])]


def has_model(models: List[str], wanted: str) -> bool:
    # Ollama reports "llama3:latest" for a model pulled as "llama3".
    return any(name == wanted or name.startswith(wanted + ":") for name in models)


def ensure_models() -> bool:
    models = local_models()
    if models is None:
        report(False, f"Ollama server at {OLLAMA_HOST} (start it with: ollama serve)")
        return False
    report(True, f"Ollama server at {OLLAMA_HOST}")

    ready = True
    for wanted in (VISION_MODEL, TEXT_MODEL):
        if not has_model(models, wanted):
            print(f"  pulling {wanted}...")
            pulled = subprocess.run(["ollama", "pull", wanted]).returncode == 0
        else:
            pulled = True
        report(pulled, wanted)
        ready = ready and pulled
    return ready


def main() -> int:
    print("Frô setup")
    if not check_python():
        return 1
    if not install_project():
        return 1
    if not ensure_models():
        print("\nAnalysis needs Ollama; camera and upload work without it.")
    print("\nLaunch with: python main.py  (or: fro)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
