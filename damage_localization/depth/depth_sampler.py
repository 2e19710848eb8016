"""
Depth Sampler

Extracts a robust depth value around a pixel of a raw float32 depth buffer.
"""

import logging
import math
from typing import Optional

import numpy as np

from ..utils.config_manager import ConfigManager

FLOAT_SIZE = 4
_LE_FLOAT32 = np.dtype('<f4')


class DepthSampler:
    """Median depth over a small clamped window of a depth buffer."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        """
        Initialize depth sampler.

        Args:
            config_manager: Configuration manager instance
        """
        self.config = config_manager or ConfigManager()
        self.logger = logging.getLogger(__name__)

        depth_config = self.config.get_depth_params()

        # Reliable range of the depth sensor in meters
        self.min_depth = float(depth_config.get('min_depth', 0.1))
        self.max_depth = float(depth_config.get('max_depth', 5.0))
        self.window_size = int(depth_config.get('window_size', 3))

        self.logger.info(f"Depth sampler initialized: range=[{self.min_depth}, {self.max_depth}] m, "
                         f"window={self.window_size}x{self.window_size}")

    def sample(self,
               buffer: bytes,
               x: int,
               y: int,
               width: int,
               height: int,
               min_depth: Optional[float] = None,
               max_depth: Optional[float] = None,
               row_stride: Optional[int] = None) -> Optional[float]:
        """
        Sample depth around (x, y).

        Offsets falling outside the buffer are clamped to the border so edge
        pixels still get a full window. Non-finite values and values outside
        [min_depth, max_depth] are discarded.

        Args:
            buffer: Raw little-endian float32 depth values in meters, row-major
            x: Column in depth-buffer pixels
            y: Row in depth-buffer pixels
            width: Depth buffer width
            height: Depth buffer height
            min_depth: Minimum accepted depth (defaults to configured value)
            max_depth: Maximum accepted depth (defaults to configured value)
            row_stride: Bytes per row (defaults to width * 4)

        Returns:
            Median of the surviving samples, or None if none survive
        """
        if width <= 0 or height <= 0:
            return None

        lo = self.min_depth if min_depth is None else min_depth
        hi = self.max_depth if max_depth is None else max_depth
        stride = row_stride or width * FLOAT_SIZE
        half = self.window_size // 2
        buffer_size = len(buffer)

        samples = []
        for dy in range(-half, half + 1):
            for dx in range(-half, half + 1):
                col = min(max(x + dx, 0), width - 1)
                row = min(max(y + dy, 0), height - 1)

                offset = row * stride + col * FLOAT_SIZE
                if offset < 0 or offset + FLOAT_SIZE > buffer_size:
                    continue

                value = float(np.frombuffer(buffer, dtype=_LE_FLOAT32, count=1, offset=offset)[0])
                if math.isfinite(value) and lo <= value <= hi:
                    samples.append(value)

        if not samples:
            self.logger.debug(f"No valid depth around ({x}, {y})")
            return None

        samples.sort()
        return samples[len(samples) // 2]

