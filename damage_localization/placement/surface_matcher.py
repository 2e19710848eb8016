"""
Surface Matcher

Decides which scanned surface a detection belongs to. With a camera pose the
viewing ray is intersected with every wall plane and only hits inside the
physical wall bounds are accepted; otherwise walls are assigned round-robin.
"""

import logging
import string
from dataclasses import dataclass
from typing import Dict, List, Optional

import numpy as np

from ..data_models import PlacementMethod, RoomModel, SurfaceCategory, SurfaceRecord
from ..utils.config_manager import ConfigManager


@dataclass(frozen=True)
class RayHit:
    """Intersection of the camera ray with a wall, in bounds."""
    surface: SurfaceRecord
    t: float
    point: np.ndarray
    local_x: float
    local_y: float


@dataclass(frozen=True)
class SurfaceMatch:
    """Surface chosen for a detection together with its anchor frame."""
    center: np.ndarray
    normal: np.ndarray
    method: PlacementMethod
    surface: Optional[SurfaceRecord] = None  # None for the synthesized ceiling

    @property
    def matched_by_ray(self) -> bool:
        return self.method == PlacementMethod.RAY_CAST


class WallCursor:
    """Round-robin wall assignment owned by a single analysis run."""

    def __init__(self, start: int = 0):
        self.position = start

    def next_index(self, wall_count: int) -> int:
        if wall_count <= 0:
            raise ValueError("wall_count must be positive")
        index = self.position % wall_count
        self.position += 1
        return index

    def reset(self) -> None:
        self.position = 0


def wall_label(index: int) -> str:
    """Spreadsheet-style letters: 0 -> 'Wall A', 25 -> 'Wall Z', 26 -> 'Wall AA'."""
    letters = ''
    n = index + 1
    while n > 0:
        n, remainder = divmod(n - 1, 26)
        letters = string.ascii_uppercase[remainder] + letters
    return f"Wall {letters}"


def is_usable_pose(pose: Optional[np.ndarray]) -> bool:
    return pose is not None and np.shape(pose) == (4, 4) and bool(np.all(np.isfinite(pose)))


class SurfaceMatcher:
    """Matches detections to the planar surfaces of one room scan."""

    def __init__(self, room: RoomModel, config_manager: Optional[ConfigManager] = None):
        """
        Initialize surface matcher.

        Args:
            room: Scanned room, read-only for the matcher's lifetime
            config_manager: Configuration manager instance
        """
        self.room = room
        self.config = config_manager or ConfigManager()
        self.logger = logging.getLogger(__name__)

        params = self.config.get_placement_params()
        self.t_min = float(params.get('ray_t_min', 0.1))
        self.t_max = float(params.get('ray_t_max', 10.0))
        self.parallel_epsilon = float(params.get('parallel_epsilon', 1e-6))

        self.walls = room.walls
        self._surface_names: Optional[Dict[str, str]] = None

        self.logger.info(f"Surface matcher initialized: {len(room.surfaces)} surfaces, "
                         f"{len(self.walls)} walls")

    @property
    def surface_names(self) -> Dict[str, str]:
        """Human-readable wall labels by surface identifier, built once per room."""
        if self._surface_names is None:
            self._surface_names = {
                wall.identifier: wall_label(i) for i, wall in enumerate(self.walls)
            }
        return self._surface_names

    def name_of(self, surface: Optional[SurfaceRecord]) -> Optional[str]:
        if surface is None:
            return None
        return self.surface_names.get(surface.identifier)

    def cast_ray(self, camera_pose: np.ndarray) -> Optional[RayHit]:
        """
        Intersect the camera's viewing ray with every wall.

        The camera looks along the negated local Z axis of its pose. A hit
        counts only if it lies in front of the camera within (t_min, t_max)
        and inside half the wall's width and height.

        Args:
            camera_pose: 4x4 camera-to-world transform

        Returns:
            Nearest in-bounds hit along the ray, or None
        """
        camera_pos = camera_pose[:3, 3]
        forward = -np.asarray(camera_pose[:3, 2], dtype=np.float64)
        norm = np.linalg.norm(forward)
        if norm == 0:
            return None
        forward = forward / norm

        best: Optional[RayHit] = None
        for wall in self.walls:
            normal = wall.normal
            denom = float(np.dot(forward, normal))
            if abs(denom) < self.parallel_epsilon:
                continue

            t = float(np.dot(wall.center - camera_pos, normal)) / denom
            if not self.t_min < t < self.t_max:
                continue

            point = camera_pos + forward * t
            offset = point - wall.center
            local_x = float(np.dot(offset, wall.axis_x))
            local_y = float(np.dot(offset, wall.axis_y))
            if abs(local_x) > wall.width / 2.0 or abs(local_y) > wall.height / 2.0:
                self.logger.debug(f"Ray hits plane of {wall.identifier} outside its bounds "
                                  f"({local_x:.2f}, {local_y:.2f})")
                continue

            if best is None or t < best.t:
                best = RayHit(surface=wall, t=t, point=point, local_x=local_x, local_y=local_y)

        return best

    def nearest_wall(self, camera_pose: np.ndarray) -> Optional[SurfaceRecord]:
        """Wall whose center is closest to the camera position."""
        if not self.walls:
            return None
        camera_pos = camera_pose[:3, 3]
        distances = [np.linalg.norm(wall.center - camera_pos) for wall in self.walls]
        return self.walls[int(np.argmin(distances))]

    def match_wall(self,
                   camera_pose: Optional[np.ndarray],
                   cursor: WallCursor) -> Optional[SurfaceMatch]:
        """
        Pick the wall a wall-category detection belongs to.

        Args:
            camera_pose: Pose of the source photo, if any
            cursor: Round-robin cursor of the current run

        Returns:
            Matched wall, or None when the room has no walls
        """
        if not self.walls:
            return None

        if is_usable_pose(camera_pose):
            hit = self.cast_ray(camera_pose)
            if hit is not None:
                return self._match(hit.surface, PlacementMethod.RAY_CAST)
            self.logger.debug("No in-bounds wall hit, falling back to nearest wall")
            return self._match(self.nearest_wall(camera_pose), PlacementMethod.NEAREST_WALL)

        wall = self.walls[cursor.next_index(len(self.walls))]
        return self._match(wall, PlacementMethod.ROUND_ROBIN)

    def match(self,
              category: SurfaceCategory,
              camera_pose: Optional[np.ndarray],
              cursor: WallCursor) -> Optional[SurfaceMatch]:
        """
        Select the anchor surface for a detection's surface category.

        Args:
            category: Surface category of the detection
            camera_pose: Pose of the source photo, if any
            cursor: Round-robin cursor of the current run

        Returns:
            Surface match, or None when the room has no suitable surface
        """
        if category == SurfaceCategory.WALL:
            return self.match_wall(camera_pose, cursor)
        if category in (SurfaceCategory.FLOOR, SurfaceCategory.DOOR, SurfaceCategory.WINDOW):
            return self._first_of(category)
        if category == SurfaceCategory.CEILING:
            return self._ceiling()
        if category == SurfaceCategory.UNKNOWN:
            return self._first_of(SurfaceCategory.WALL)
        raise ValueError(f"Unhandled surface category: {category}")

    def match_identifier(self, identifier: Optional[str]) -> Optional[SurfaceMatch]:
        """Match a surface the photo was explicitly tagged with."""
        surface = self.room.find(identifier)
        if surface is None:
            return None
        return self._match(surface, PlacementMethod.CATEGORY_DEFAULT)

    def _first_of(self, category: SurfaceCategory) -> Optional[SurfaceMatch]:
        candidates = self.room.of_category(category)
        if not candidates:
            return None
        return self._match(candidates[0], PlacementMethod.CATEGORY_DEFAULT)

    def _ceiling(self) -> Optional[SurfaceMatch]:
        floors = self.room.of_category(SurfaceCategory.FLOOR)
        if not floors:
            return None
        floor = floors[0]
        center = floor.center
        center[1] += self.room.ceiling_height  # world Y is up
        return SurfaceMatch(center=center, normal=floor.normal,
                            method=PlacementMethod.CATEGORY_DEFAULT)

    @staticmethod
    def _match(surface: SurfaceRecord, method: PlacementMethod) -> SurfaceMatch:
        return SurfaceMatch(center=surface.center, normal=surface.normal,
                            method=method, surface=surface)
