#!/usr/bin/env python3
"""
Management script for running recordstage CLI commands from a checkout
"""

import sys
from pathlib import Path

project_root = Path(__file__).parent
sys.path.insert(0, str(project_root))

if __name__ == "__main__":
    from recordstage.interfaces.cli.main import main

    sys.exit(main())
