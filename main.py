"""
OkanAssist — Entry Point.

Single entry point: `python main.py` restores the saved session, prefetches
the home-screen data and sends any due reminder alerts.
"""

import logging

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
)

from okanassist.app import main

if __name__ == "__main__":
    main()
