"""
Depth Sampling Module

Robust depth lookup in raw depth-sensor buffers.
"""

from .depth_sampler import DepthSampler

__all__ = ['DepthSampler']
