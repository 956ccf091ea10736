"""
imagevec: raster → clean foreground → SVG.

Background removal, pixel preprocessing, mask refinement, contour cropping
and external vectorizer orchestration.
"""

__version__ = "0.1.0"
