#!/usr/bin/env python3
"""
Mix Planner main entry point.

Allows Mix Planner to be run as a module: python3 -m mixplanner
"""

import sys

from mixplanner.cli import main

if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        sys.exit(130)
