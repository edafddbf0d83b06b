"""MindSketch - a local mind-mapping editor core."""

__version__ = "1.0.0"
