"""
Main entry point for running the package as a module.

Usage:
    python -m cuticle thumbnail -s 800 photo.jpg
    python -m cuticle plan -s 800^ -c photo.jpg
"""

import sys
from .cli import main

if __name__ == '__main__':
    sys.exit(main())
