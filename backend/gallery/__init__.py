"""
Gallery photo pipeline: places, photo sequences, blob storage, derived
images and background maintenance.
"""

__version__ = "1.0.0"
