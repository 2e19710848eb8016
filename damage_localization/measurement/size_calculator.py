"""
Damage Size Calculator

Applies the pinhole camera model to turn a normalized bounding box and a
sampled depth into real-world width, height and area.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..data_models import BoundingBox, DepthFrame, format_area, format_length
from ..depth.depth_sampler import DepthSampler
from ..utils.config_manager import ConfigManager


@dataclass(frozen=True)
class RealDimensions:
    """Real-world dimensions of a damage."""
    width: float  # meters
    height: float  # meters
    area: float  # square meters
    depth: float  # distance from camera in meters, 0 when unknown
    confidence: float  # measurement confidence (0.0-1.0)

    @property
    def formatted_width(self) -> str:
        return format_length(self.width)

    @property
    def formatted_height(self) -> str:
        return format_length(self.height)

    @property
    def formatted_area(self) -> str:
        return format_area(self.area)

    @property
    def formatted_dimensions(self) -> str:
        return f"{self.formatted_width} × {self.formatted_height}"


class ConfidenceModel:
    """Multiplicative confidence penalties for depth and bbox size."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        self.config = config_manager or ConfigManager()
        params = self.config.get_measurement_params()

        self.far_depth = float(params.get('far_depth', 3.0))
        self.far_depth_factor = float(params.get('far_depth_factor', 0.8))
        self.mid_depth = float(params.get('mid_depth', 2.0))
        self.mid_depth_factor = float(params.get('mid_depth_factor', 0.9))
        self.tiny_bbox_area = float(params.get('tiny_bbox_area', 0.01))
        self.tiny_bbox_factor = float(params.get('tiny_bbox_factor', 0.7))
        self.small_bbox_area = float(params.get('small_bbox_area', 0.05))
        self.small_bbox_factor = float(params.get('small_bbox_factor', 0.85))
        self.large_bbox_area = float(params.get('large_bbox_area', 0.5))
        self.large_bbox_factor = float(params.get('large_bbox_factor', 0.8))

    def score(self, depth: float, bbox_width: float, bbox_height: float) -> float:
        """
        Confidence of a depth-based measurement.

        Args:
            depth: Sampled depth in meters
            bbox_width: Normalized bbox width
            bbox_height: Normalized bbox height

        Returns:
            Confidence clamped to [0, 1]
        """
        confidence = 1.0

        # Depth accuracy degrades with distance
        if depth > self.far_depth:
            confidence *= self.far_depth_factor
        elif depth > self.mid_depth:
            confidence *= self.mid_depth_factor

        bbox_area = bbox_width * bbox_height
        if bbox_area < self.tiny_bbox_area:
            confidence *= self.tiny_bbox_factor
        elif bbox_area < self.small_bbox_area:
            confidence *= self.small_bbox_factor

        # Large boxes may span several depths
        if bbox_area > self.large_bbox_area:
            confidence *= self.large_bbox_factor

        return min(max(confidence, 0.0), 1.0)


def depth_pixel_for_bbox(bbox: BoundingBox,
                         image_width: int,
                         image_height: int,
                         depth_width: int,
                         depth_height: int) -> Tuple[float, float, int, int]:
    """
    Map a bbox center into image pixels and into depth-buffer pixels.

    The depth buffer may have a different aspect ratio than the image, so
    each axis is scaled independently.

    Returns:
        (center_x, center_y) in image pixels followed by (col, row) in the depth buffer
    """
    pixel_x, pixel_y, pixel_w, pixel_h = bbox.to_pixels(image_width, image_height)
    center_x = pixel_x + pixel_w / 2.0
    center_y = pixel_y + pixel_h / 2.0

    scale_x = depth_width / image_width
    scale_y = depth_height / image_height

    return center_x, center_y, int(center_x * scale_x), int(center_y * scale_y)


class SizeCalculator:
    """Real-world damage size from bounding boxes and depth data."""

    def __init__(self,
                 config_manager: Optional[ConfigManager] = None,
                 depth_sampler: Optional[DepthSampler] = None):
        """
        Initialize size calculator.

        Args:
            config_manager: Configuration manager instance
            depth_sampler: Depth sampler, built from the configuration if omitted
        """
        self.config = config_manager or ConfigManager()
        self.logger = logging.getLogger(__name__)

        self.depth_sampler = depth_sampler or DepthSampler(self.config)
        self.confidence_model = ConfidenceModel(self.config)

        params = self.config.get_measurement_params()
        self.surface_fallback_confidence = float(params.get('surface_fallback_confidence', 0.7))

        self.logger.info("Size calculator initialized")

    def calculate_size(self, bbox: BoundingBox, frame: DepthFrame) -> Optional[RealDimensions]:
        """
        Calculate real-world size using the pinhole camera model.

        Args:
            bbox: Normalized bounding box from damage detection
            frame: Photo the detection was made on

        Returns:
            Real-world dimensions, or None if the frame has no usable depth
        """
        capture = frame.depth_capture
        if capture is None:
            return None

        intrinsics = capture.intrinsics
        if not intrinsics.is_valid:
            self.logger.debug("Non-positive focal length, skipping measurement")
            return None

        _, _, depth_x, depth_y = depth_pixel_for_bbox(
            bbox, frame.image_width, frame.image_height, capture.width, capture.height
        )

        depth = self.depth_sampler.sample(
            capture.buffer, depth_x, depth_y, capture.width, capture.height,
            row_stride=capture.bytes_per_row
        )
        if depth is None:
            self.logger.debug(f"No valid depth at depth pixel ({depth_x}, {depth_y})")
            return None

        _, _, pixel_w, pixel_h = bbox.to_pixels(frame.image_width, frame.image_height)

        # real_size = depth * pixel_size / focal_length
        real_width = depth * pixel_w / intrinsics.fx
        real_height = depth * pixel_h / intrinsics.fy

        return RealDimensions(
            width=real_width,
            height=real_height,
            area=real_width * real_height,
            depth=depth,
            confidence=self.confidence_model.score(depth, bbox.width, bbox.height)
        )

    def calculate_size_from_surface(self,
                                    bbox: BoundingBox,
                                    surface_width: float,
                                    surface_height: float) -> RealDimensions:
        """
        Estimate size from the known extents of the matched surface.

        Only meaningful when the photo frames the whole surface.

        Args:
            bbox: Normalized bounding box
            surface_width: Surface width in meters
            surface_height: Surface height in meters

        Returns:
            Estimated dimensions with unknown depth
        """
        real_width = bbox.width * surface_width
        real_height = bbox.height * surface_height

        return RealDimensions(
            width=real_width,
            height=real_height,
            area=real_width * real_height,
            depth=0.0,
            confidence=self.surface_fallback_confidence
        )
