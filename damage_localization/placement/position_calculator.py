"""
Damage Position Calculator

Produces 3D markers for detected damages using two strategies:

- depth unprojection: bbox center + sampled depth + intrinsics, transformed
  by the photo's camera pose. Expressed in the depth-capture session's frame,
  which does not share an origin with the room scan.
- surface anchoring: the matched room surface's center pushed slightly out
  along its normal. Expressed in the room scan's frame and safe to combine
  with the exported room model.
"""

import logging
from typing import List, Optional, Sequence

import numpy as np

from ..data_models import (
    CoordinateFrame, DamageWorldPosition, DepthFrame, DetectedDamage,
    PlacementMethod
)
from ..depth.depth_sampler import DepthSampler
from ..measurement.size_calculator import ConfidenceModel, depth_pixel_for_bbox
from ..utils.config_manager import ConfigManager
from .surface_matcher import SurfaceMatch, is_usable_pose


def frame_for(damage: DetectedDamage, frames: Optional[Sequence[DepthFrame]]) -> Optional[DepthFrame]:
    """Source frame of a damage, looked up by photo index."""
    if not frames or not 0 <= damage.image_index < len(frames):
        return None
    return frames[damage.image_index]


class PositionCalculator:
    """Calculates world positions for detected damages."""

    def __init__(self,
                 config_manager: Optional[ConfigManager] = None,
                 depth_sampler: Optional[DepthSampler] = None):
        """
        Initialize position calculator.

        Args:
            config_manager: Configuration manager instance
            depth_sampler: Depth sampler, built from the configuration if omitted
        """
        self.config = config_manager or ConfigManager()
        self.logger = logging.getLogger(__name__)

        self.depth_sampler = depth_sampler or DepthSampler(self.config)
        self.confidence_model = ConfidenceModel(self.config)

        params = self.config.get_placement_params()
        self.surface_offset = float(params.get('surface_offset', 0.05))
        self.ray_match_confidence = float(params.get('ray_match_confidence', 0.85))
        self.fallback_confidence = float(params.get('fallback_confidence', 0.7))

        self.logger.info(f"Position calculator initialized: surface offset={self.surface_offset} m")

    def calculate_world_position(self,
                                 damage: DetectedDamage,
                                 frame: DepthFrame) -> Optional[DamageWorldPosition]:
        """
        Unproject the bbox center using depth and the camera pose.

        Args:
            damage: Detected damage with a bounding box
            frame: Source photo of the damage

        Returns:
            Position in the depth-session frame, or None when depth is unusable
        """
        bbox = damage.bounding_box
        capture = frame.depth_capture
        if bbox is None or capture is None or not is_usable_pose(frame.camera_transform):
            return None

        intrinsics = capture.intrinsics
        if not intrinsics.is_valid:
            return None

        center_x, center_y, depth_x, depth_y = depth_pixel_for_bbox(
            bbox, frame.image_width, frame.image_height, capture.width, capture.height
        )

        depth = self.depth_sampler.sample(
            capture.buffer, depth_x, depth_y, capture.width, capture.height,
            row_stride=capture.bytes_per_row
        )
        if depth is None:
            return None

        camera_point = np.array([
            (center_x - intrinsics.cx) * depth / intrinsics.fx,
            (center_y - intrinsics.cy) * depth / intrinsics.fy,
            depth,
            1.0
        ])
        world_point = frame.camera_transform @ camera_point

        # No surface at this point; face the marker back toward the camera
        toward_camera = frame.camera_transform[:3, 2]
        norm = np.linalg.norm(toward_camera)
        normal = toward_camera / norm if norm > 0 else toward_camera

        return DamageWorldPosition(
            position=world_point[:3],
            normal=normal,
            damage_id=damage.id,
            confidence=self.confidence_model.score(depth, bbox.width, bbox.height),
            frame=CoordinateFrame.DEPTH_SESSION,
            method=PlacementMethod.DEPTH_UNPROJECTION
        )

    def position_on_surface(self, damage: DetectedDamage, match: SurfaceMatch) -> DamageWorldPosition:
        """Marker just off the matched surface, in the room-scan frame."""
        confidence = self.ray_match_confidence if match.matched_by_ray else self.fallback_confidence

        return DamageWorldPosition(
            position=match.center + match.normal * self.surface_offset,
            normal=match.normal,
            damage_id=damage.id,
            confidence=confidence,
            frame=CoordinateFrame.ROOM_SCAN,
            method=match.method,
            surface_id=match.surface.identifier if match.surface is not None else None
        )

    def calculate_all_positions(self,
                                damages: Sequence[DetectedDamage],
                                frames: Sequence[DepthFrame]) -> List[DamageWorldPosition]:
        """
        Depth-unprojected positions, in the depth-session frame.

        Args:
            damages: Detected damages
            frames: Source photos indexed by photo index

        Returns:
            Positions for every damage with usable depth
        """
        positions = []

        for damage in damages:
            frame = frame_for(damage, frames)
            if frame is None:
                continue
            position = self.calculate_world_position(damage, frame)
            if position is not None:
                positions.append(position)

        return positions
