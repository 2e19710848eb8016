"""
Deduplication Module

Merges observations of the same physical damage across photos.
"""

from .deduplicator import Deduplicator, calculate_iou

__all__ = ['Deduplicator', 'calculate_iou']
