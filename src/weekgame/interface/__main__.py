"""
Run the weekgame command line.

Usage:
    python -m weekgame.interface new-island alice=Alice bob=Bob carol=Carol
    python -m weekgame.interface begin <game>
"""

import sys

from .cli import main

if __name__ == "__main__":
    sys.exit(main())
