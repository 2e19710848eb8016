"""
Data Models for Damage Localization

Defines all data structures used throughout the system.
"""

import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import numpy as np


class DamageType(Enum):
    """Damage categories reported by the vision model."""
    CRACK = "crack"
    WATER_DAMAGE = "water_damage"
    HOLE = "hole"
    WEATHERING = "weathering"
    MOLD = "mold"
    PEELING = "peeling"
    STAIN = "stain"
    STRUCTURAL_DAMAGE = "structural_damage"
    OTHER = "other"

    @classmethod
    def parse(cls, value: Optional[str]) -> "DamageType":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.OTHER

    @property
    def display_name(self) -> str:
        return self.value.replace('_', ' ').title()


class DamageSeverity(Enum):
    """Severity levels, ordered low < moderate < high < critical."""
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: Optional[str]) -> "DamageSeverity":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.LOW

    @property
    def numeric_value(self) -> int:
        return _SEVERITY_ORDER[self]

    def __lt__(self, other):
        if not isinstance(other, DamageSeverity):
            return NotImplemented
        return self.numeric_value < other.numeric_value

    def __le__(self, other):
        if not isinstance(other, DamageSeverity):
            return NotImplemented
        return self.numeric_value <= other.numeric_value

    def __gt__(self, other):
        if not isinstance(other, DamageSeverity):
            return NotImplemented
        return self.numeric_value > other.numeric_value

    def __ge__(self, other):
        if not isinstance(other, DamageSeverity):
            return NotImplemented
        return self.numeric_value >= other.numeric_value


_SEVERITY_ORDER = {
    DamageSeverity.LOW: 1,
    DamageSeverity.MODERATE: 2,
    DamageSeverity.HIGH: 3,
    DamageSeverity.CRITICAL: 4,
}


class SurfaceCategory(Enum):
    """Surface categories produced by the room scan."""
    WALL = "wall"
    FLOOR = "floor"
    CEILING = "ceiling"
    DOOR = "door"
    WINDOW = "window"
    UNKNOWN = "unknown"

    @classmethod
    def parse(cls, value: Optional[str]) -> "SurfaceCategory":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.UNKNOWN


class OverallCondition(Enum):
    """Overall room condition, ordered from best to worst."""
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"
    CRITICAL = "critical"

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["OverallCondition"]:
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return None

    @property
    def priority(self) -> int:
        return list(OverallCondition).index(self)


class CoordinateFrame(Enum):
    """World frame a DamageWorldPosition is expressed in."""
    ROOM_SCAN = "room_scan"          # safe to combine with the exported room model
    DEPTH_SESSION = "depth_session"  # local to the depth-capture session only


class PlacementMethod(Enum):
    """How a DamageWorldPosition was obtained."""
    DEPTH_UNPROJECTION = "depth_unprojection"
    RAY_CAST = "ray_cast"
    NEAREST_WALL = "nearest_wall"
    ROUND_ROBIN = "round_robin"
    CATEGORY_DEFAULT = "category_default"


@dataclass(frozen=True)
class BoundingBox:
    """Normalized rectangle (origin top-left) relative to a photo."""
    x: float
    y: float
    width: float
    height: float

    @classmethod
    def clamped(cls, x: float, y: float, width: float, height: float) -> "BoundingBox":
        """Build a box clamped into the unit square."""
        x = min(max(float(x), 0.0), 1.0)
        y = min(max(float(y), 0.0), 1.0)
        width = min(max(float(width), 0.0), 1.0 - x)
        height = min(max(float(height), 0.0), 1.0 - y)
        return cls(x=x, y=y, width=width, height=height)

    @property
    def area(self) -> float:
        return self.width * self.height

    @property
    def center(self) -> Tuple[float, float]:
        return self.x + self.width / 2.0, self.y + self.height / 2.0

    def to_pixels(self, image_width: int, image_height: int) -> Tuple[float, float, float, float]:
        """Return (x, y, width, height) in pixel units of the given image."""
        return (self.x * image_width, self.y * image_height,
                self.width * image_width, self.height * image_height)

    def to_dict(self) -> Dict[str, float]:
        return {'x': self.x, 'y': self.y, 'width': self.width, 'height': self.height}


@dataclass(frozen=True)
class CameraIntrinsics:
    """Pinhole intrinsics in pixels: focal lengths and principal point."""
    fx: float
    fy: float
    cx: float
    cy: float

    @classmethod
    def from_matrix(cls, matrix) -> "CameraIntrinsics":
        """Build from a row-major 3x3 matrix [[fx, 0, cx], [0, fy, cy], [0, 0, 1]]."""
        K = np.asarray(matrix, dtype=np.float64)
        if K.shape != (3, 3):
            raise ValueError(f"Camera intrinsics must be 3x3, got {K.shape}")
        return cls(fx=float(K[0, 0]), fy=float(K[1, 1]), cx=float(K[0, 2]), cy=float(K[1, 2]))

    @property
    def is_valid(self) -> bool:
        return self.fx > 0 and self.fy > 0

    def to_matrix(self) -> np.ndarray:
        return np.array([
            [self.fx, 0, self.cx],
            [0, self.fy, self.cy],
            [0, 0, 1]
        ], dtype=np.float64)


def as_transform(matrix) -> np.ndarray:
    """Validate and return a 4x4 homogeneous transform as float64."""
    T = np.asarray(matrix, dtype=np.float64)
    if T.shape != (4, 4):
        raise ValueError(f"Transform must be 4x4, got {T.shape}")
    return T


@dataclass(frozen=True)
class DepthCapture:
    """Depth data of a frame that has everything needed for metric measurement."""
    buffer: bytes  # little-endian float32 meters, row-major
    width: int
    height: int
    intrinsics: CameraIntrinsics
    row_stride: Optional[int] = None  # bytes per row, defaults to width * 4

    @property
    def bytes_per_row(self) -> int:
        return self.row_stride or self.width * 4


@dataclass
class DepthFrame:
    """One captured photo with its optional depth data and camera pose."""
    image_width: int
    image_height: int
    camera_transform: Optional[np.ndarray] = None  # 4x4 camera-to-world
    depth_data: Optional[bytes] = None
    depth_width: Optional[int] = None
    depth_height: Optional[int] = None
    intrinsics: Optional[CameraIntrinsics] = None
    surface_category: SurfaceCategory = SurfaceCategory.WALL
    surface_id: Optional[str] = None
    image_path: Optional[str] = None

    def __post_init__(self):
        if self.image_width <= 0 or self.image_height <= 0:
            raise ValueError("Image dimensions must be positive")
        if self.camera_transform is not None:
            self.camera_transform = as_transform(self.camera_transform)

    @classmethod
    def from_depth_map(cls, image_width: int, image_height: int, depth_map: np.ndarray,
                       intrinsics: CameraIntrinsics, camera_transform=None, **kwargs) -> "DepthFrame":
        """Build a frame from a 2D depth map in meters."""
        depth_map = np.asarray(depth_map)
        if depth_map.ndim != 2:
            raise ValueError("Depth map must be 2-dimensional")
        height, width = depth_map.shape
        return cls(
            image_width=image_width,
            image_height=image_height,
            camera_transform=camera_transform,
            depth_data=depth_map.astype('<f4').tobytes(),
            depth_width=width,
            depth_height=height,
            intrinsics=intrinsics,
            **kwargs
        )

    @property
    def depth_capture(self) -> Optional[DepthCapture]:
        """Depth capability of this frame, or None when it is depth-free."""
        if (self.depth_data is None or self.intrinsics is None
                or not self.depth_width or not self.depth_height):
            return None
        return DepthCapture(
            buffer=self.depth_data,
            width=self.depth_width,
            height=self.depth_height,
            intrinsics=self.intrinsics
        )

    @property
    def has_depth(self) -> bool:
        return self.depth_capture is not None


@dataclass
class SurfaceRecord:
    """Planar surface from the room scan; local Z is the surface normal."""
    identifier: str
    category: SurfaceCategory
    transform: np.ndarray  # 4x4 local-to-world
    width: float  # local X extent, meters
    height: float  # local Y extent, meters

    def __post_init__(self):
        self.transform = as_transform(self.transform)
        if self.width < 0 or self.height < 0:
            raise ValueError("Surface dimensions must be non-negative")

    @property
    def center(self) -> np.ndarray:
        return self.transform[:3, 3].copy()

    @property
    def normal(self) -> np.ndarray:
        return _unit(self.transform[:3, 2])

    @property
    def axis_x(self) -> np.ndarray:
        return _unit(self.transform[:3, 0])

    @property
    def axis_y(self) -> np.ndarray:
        return _unit(self.transform[:3, 1])

    @property
    def has_extents(self) -> bool:
        return self.width > 0 and self.height > 0


def _unit(v: np.ndarray) -> np.ndarray:
    norm = np.linalg.norm(v)
    if norm == 0:
        return np.asarray(v, dtype=np.float64)
    return np.asarray(v, dtype=np.float64) / norm


@dataclass
class RoomModel:
    """Surfaces of one room scan plus its measured ceiling height."""
    surfaces: List[SurfaceRecord]
    ceiling_height: float = 2.4

    def of_category(self, category: SurfaceCategory) -> List[SurfaceRecord]:
        return [s for s in self.surfaces if s.category == category]

    @property
    def walls(self) -> List[SurfaceRecord]:
        return self.of_category(SurfaceCategory.WALL)

    def find(self, identifier: Optional[str]) -> Optional[SurfaceRecord]:
        if identifier is None:
            return None
        for surface in self.surfaces:
            if surface.identifier == identifier:
                return surface
        return None


@dataclass(frozen=True)
class DamageDetection:
    """One raw vision-model finding for one photo."""
    damage_type: DamageType
    description: str
    confidence: float
    image_index: int
    severity: DamageSeverity = DamageSeverity.LOW
    bounding_box: Optional[BoundingBox] = None
    recommendation: Optional[str] = None


@dataclass(frozen=True)
class DetectedDamage:
    """Damage record of the analysis, optionally carrying real-world measurements."""
    damage_type: DamageType
    severity: DamageSeverity
    description: str
    surface_category: SurfaceCategory
    confidence: float
    image_index: int = 0
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    surface_id: Optional[str] = None
    surface_name: Optional[str] = None
    bounding_box: Optional[BoundingBox] = None
    recommendation: Optional[str] = None
    real_width: Optional[float] = None  # meters
    real_height: Optional[float] = None  # meters
    real_area: Optional[float] = None  # square meters
    distance_from_camera: Optional[float] = None  # meters
    measurement_confidence: Optional[float] = None

    @property
    def has_measurements(self) -> bool:
        return (self.real_width is not None and self.real_height is not None
                and self.real_area is not None)

    def with_measurements(self, width: Optional[float], height: Optional[float]) -> "DetectedDamage":
        """Copy with a manual measurement; area is recomputed from width x height."""
        area = width * height if width is not None and height is not None else None
        return replace(self, real_width=width, real_height=height, real_area=area,
                       measurement_confidence=1.0)

    @property
    def formatted_area(self) -> Optional[str]:
        if self.real_area is None:
            return None
        return format_area(self.real_area)

    @property
    def formatted_dimensions(self) -> Optional[str]:
        if self.real_width is None or self.real_height is None:
            return None
        return f"{format_length(self.real_width)} × {format_length(self.real_height)}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': self.damage_type.value,
            'severity': self.severity.value,
            'description': self.description,
            'surface_type': self.surface_category.value,
            'surface_id': self.surface_id,
            'wall_name': self.surface_name,
            'confidence': self.confidence,
            'bounding_box': self.bounding_box.to_dict() if self.bounding_box else None,
            'recommendation': self.recommendation,
            'image_index': self.image_index,
            'real_width': self.real_width,
            'real_height': self.real_height,
            'real_area': self.real_area,
            'distance_from_camera': self.distance_from_camera,
            'measurement_confidence': self.measurement_confidence
        }


def format_length(meters: float) -> str:
    """Format a length in mm, cm or m depending on magnitude."""
    if meters < 0.01:
        return f"{meters * 1000:.1f} mm"
    if meters < 1.0:
        return f"{meters * 100:.1f} cm"
    return f"{meters:.2f} m"


def format_area(square_meters: float) -> str:
    """Format an area in cm² or m² depending on magnitude."""
    if square_meters < 0.01:
        return f"{square_meters * 10000:.1f} cm²"
    if square_meters < 1.0:
        return f"{square_meters * 10000:.0f} cm²"
    return f"{square_meters:.2f} m²"


@dataclass(frozen=True)
class DamageWorldPosition:
    """3D marker for a damage, labelled with the frame it is expressed in."""
    position: np.ndarray
    normal: np.ndarray
    damage_id: str
    confidence: float
    frame: CoordinateFrame
    method: PlacementMethod
    surface_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'damage_id': self.damage_id,
            'position': [float(v) for v in self.position],
            'normal': [float(v) for v in self.normal],
            'confidence': self.confidence,
            'frame': self.frame.value,
            'method': self.method.value,
            'surface_id': self.surface_id
        }


@dataclass
class ImageAnalysisResult:
    """Outcome of the vision-model call for one photo."""
    image_index: int
    detections: List[DamageDetection] = field(default_factory=list)
    overall_condition: Optional[OverallCondition] = None
    summary: Optional[str] = None
    error: Optional[Exception] = None

    @property
    def is_success(self) -> bool:
        return self.error is None


@dataclass
class AnalysisResult:
    """Final result of one analysis run."""
    detected_damages: List[DetectedDamage]
    overall_condition: OverallCondition
    analyzed_image_count: int
    failed_image_count: int
    processing_time_seconds: float
    image_results: List[ImageAnalysisResult] = field(default_factory=list)
    room_positions: List[DamageWorldPosition] = field(default_factory=list)  # room-scan frame
    session_positions: List[DamageWorldPosition] = field(default_factory=list)  # depth-session frame
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    analysis_date: datetime = field(default_factory=datetime.now)

    @property
    def damages_by_severity(self) -> Dict[DamageSeverity, List[DetectedDamage]]:
        return _group(self.detected_damages, lambda d: d.severity)

    @property
    def damages_by_surface(self) -> Dict[SurfaceCategory, List[DetectedDamage]]:
        return _group(self.detected_damages, lambda d: d.surface_category)

    @property
    def damages_by_type(self) -> Dict[DamageType, List[DetectedDamage]]:
        return _group(self.detected_damages, lambda d: d.damage_type)

    @property
    def critical_count(self) -> int:
        return sum(1 for d in self.detected_damages if d.severity == DamageSeverity.CRITICAL)

    @property
    def high_priority_count(self) -> int:
        return sum(1 for d in self.detected_damages if d.severity >= DamageSeverity.HIGH)

    @property
    def has_damages(self) -> bool:
        return bool(self.detected_damages)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'analysis_date': self.analysis_date.isoformat(),
            'overall_condition': self.overall_condition.value,
            'analyzed_image_count': self.analyzed_image_count,
            'failed_image_count': self.failed_image_count,
            'processing_time_seconds': self.processing_time_seconds,
            'detected_damages': [d.to_dict() for d in self.detected_damages]
        }


def _group(items, key) -> Dict[Any, list]:
    groups: Dict[Any, list] = {}
    for item in items:
        groups.setdefault(key(item), []).append(item)
    return groups
