# =============================================================================
# preferences.py
# Tiny JSON-backed store for client-side flags (tutorial already shown).
# =============================================================================

import json
import logging
from pathlib import Path
from typing import Any, Optional

from constants import PREFERENCES_PATH, TUTORIAL_SEEN_KEY

log = logging.getLogger(__name__)


class Preferences:
    def __init__(self, path: Optional[Path] = None):
        self.path = Path(path) if path else PREFERENCES_PATH

    def _load(self) -> dict:
        try:
            with open(self.path, encoding="utf-8") as fh:
                data = json.load(fh)
        except FileNotFoundError:
            return {}
        except (OSError, json.JSONDecodeError) as e:
            log.warning("Ignoring unreadable preferences file %s: %s", self.path, e)
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._load().get(key, default)

    def set(self, key: str, value: Any):
        data = self._load()
        data[key] = value
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        with open(tmp, "w", encoding="utf-8") as fh:
            json.dump(data, fh, indent=2)
        tmp.replace(self.path)

    # -- Tutorial ---------------------------------------------------------------

    @property
    def tutorial_seen(self) -> bool:
        return self.get(TUTORIAL_SEEN_KEY) is True

    def mark_tutorial_seen(self):
        self.set(TUTORIAL_SEEN_KEY, True)
