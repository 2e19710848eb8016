"""
Measurement Module

Converts image-space bounding boxes into real-world dimensions.
"""

from .size_calculator import SizeCalculator, RealDimensions, ConfidenceModel, depth_pixel_for_bbox

__all__ = ['SizeCalculator', 'RealDimensions', 'ConfidenceModel', 'depth_pixel_for_bbox']
