"""
Damage Localization and Measurement Engine

Turns 2D damage detections from an external vision model into real-world
measurements and 3D positions anchored to a scanned room.

This package implements:
- Robust median depth sampling from raw depth-sensor buffers
- Pinhole-model size estimation with a measurement confidence
- Ray-plane wall matching with physical bounds checking
- Depth unprojection and surface-anchored placement, labelled by coordinate frame
- Cross-photo deduplication by bounding-box overlap and size similarity
"""

__version__ = "1.0.0"
__author__ = "Damage Localization Team"

from .depth import DepthSampler
from .measurement import SizeCalculator, RealDimensions
from .placement import SurfaceMatcher, PositionCalculator, WallCursor
from .dedup import Deduplicator, calculate_iou
from .analysis import AnalysisOrchestrator, VisionClient, ReplayVisionClient
from .data_models import (
    BoundingBox, CameraIntrinsics, DepthFrame, SurfaceRecord, RoomModel,
    DamageDetection, DetectedDamage, DamageWorldPosition, AnalysisResult,
    DamageType, DamageSeverity, SurfaceCategory, OverallCondition,
    CoordinateFrame, PlacementMethod
)

__all__ = [
    # Depth
    'DepthSampler',
    # Measurement
    'SizeCalculator', 'RealDimensions',
    # Placement
    'SurfaceMatcher', 'PositionCalculator', 'WallCursor',
    # Deduplication
    'Deduplicator', 'calculate_iou',
    # Analysis
    'AnalysisOrchestrator', 'VisionClient', 'ReplayVisionClient',
    # Data Models
    'BoundingBox', 'CameraIntrinsics', 'DepthFrame', 'SurfaceRecord', 'RoomModel',
    'DamageDetection', 'DetectedDamage', 'DamageWorldPosition', 'AnalysisResult',
    'DamageType', 'DamageSeverity', 'SurfaceCategory', 'OverallCondition',
    'CoordinateFrame', 'PlacementMethod'
]
