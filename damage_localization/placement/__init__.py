"""
Placement Module

Anchors detections in 3D, either on the scanned room's surfaces or by
unprojecting depth in the depth-capture session's own frame.
"""

from .surface_matcher import SurfaceMatcher, SurfaceMatch, RayHit, WallCursor, wall_label
from .position_calculator import PositionCalculator

__all__ = ['SurfaceMatcher', 'SurfaceMatch', 'RayHit', 'WallCursor', 'wall_label', 'PositionCalculator']
