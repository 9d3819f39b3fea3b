"""Sideport: runtime capture and extension bridge.

Captures a host engine that never exposes itself, patches it in place, and
sideloads extensions the host knows nothing about. This entry point runs
the offline tools.

Usage:
    python main.py encode project.json -u myExt=https://example.com/ext.py
    python main.py decode project.json
    python main.py inspect my_extension.py
    python main.py settings --show
"""

import sys
from pathlib import Path

# Allow running from a checkout without installing
sys.path.insert(0, str(Path(__file__).parent))

from sideport.cli.cli import main


if __name__ == "__main__":
    main()
