#!/usr/bin/env python3
"""
main.py - Quick-start entry point.

Drop tile images into ``tiles/`` and source photos into ``images/``, then run:

    python main.py batch

Or build a single mosaic:

    python -m photo_mosaic.cli create my_photo.jpg --tiles tiles/
"""

from photo_mosaic.cli import app

if __name__ == "__main__":
    app()
