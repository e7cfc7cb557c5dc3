# =============================================================================
# main.py
# Entry point -- run this file to launch Frô.
#
# Usage:
#   python main.py
#
# Dependencies:
#   pip install -e .      (opencv-python Pillow numpy)
#   Ollama running with a vision model pulled (see install.py)
# =============================================================================

import logging
import os

from gui import FroGUI


def main():
    logging.basicConfig(
        level=os.environ.get("FRO_LOG_LEVEL", "INFO").upper(),
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
    )
    app = FroGUI()
    app.run()


if __name__ == "__main__":
    main()
