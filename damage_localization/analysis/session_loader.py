"""
Session Loader

Reads a recorded capture session from disk:

    {
      "room": {"ceiling_height": 2.5,
               "surfaces": [{"id": "w1", "category": "wall",
                             "transform": [[...4x4...]], "width": 4.0, "height": 2.5}]},
      "frames": [{"image": "photo_0.jpg", "image_width": 1920, "image_height": 1440,
                  "depth": "depth_0.npy", "intrinsics": [[...3x3...]],
                  "camera_transform": [[...4x4...]], "surface": "wall"}],
      "responses": [{"damages": [...], "overallCondition": "good"}, null]
    }

Paths are resolved relative to the session file. Image dimensions are read
from the image itself when not given.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import cv2
import numpy as np

from ..data_models import CameraIntrinsics, DepthFrame, RoomModel, SurfaceCategory, SurfaceRecord

logger = logging.getLogger(__name__)


@dataclass
class CaptureSession:
    """Everything needed to replay one analysis run."""
    frames: List[DepthFrame]
    room: Optional[RoomModel] = None
    responses: List[Optional[Any]] = field(default_factory=list)


def _load_room(data: Dict[str, Any], default_ceiling_height: float) -> RoomModel:
    surfaces = [
        SurfaceRecord(
            identifier=str(s['id']),
            category=SurfaceCategory.parse(s.get('category')),
            transform=np.array(s['transform'], dtype=np.float64),
            width=float(s.get('width', 0.0)),
            height=float(s.get('height', 0.0))
        )
        for s in data.get('surfaces', [])
    ]
    return RoomModel(surfaces=surfaces,
                     ceiling_height=float(data.get('ceiling_height', default_ceiling_height)))


def _image_size(entry: Dict[str, Any], base_dir: Path):
    if 'image_width' in entry and 'image_height' in entry:
        return int(entry['image_width']), int(entry['image_height'])

    image_path = base_dir / entry['image']
    image = cv2.imread(str(image_path))
    if image is None:
        raise FileNotFoundError(f"Could not read image: {image_path}")
    height, width = image.shape[:2]
    return width, height


def _load_frame(entry: Dict[str, Any], base_dir: Path) -> DepthFrame:
    width, height = _image_size(entry, base_dir)
    camera_transform = entry.get('camera_transform')
    intrinsics = entry.get('intrinsics')

    kwargs = dict(
        camera_transform=np.array(camera_transform, dtype=np.float64) if camera_transform is not None else None,
        surface_category=SurfaceCategory.parse(entry.get('surface', 'wall')),
        surface_id=entry.get('surface_id'),
        image_path=str(base_dir / entry['image']) if entry.get('image') else None
    )

    if entry.get('depth') and intrinsics is not None:
        depth_map = np.load(base_dir / entry['depth'])
        return DepthFrame.from_depth_map(width, height, depth_map,
                                         CameraIntrinsics.from_matrix(intrinsics), **kwargs)

    return DepthFrame(image_width=width, image_height=height, **kwargs)


def load_session(session_path: str, default_ceiling_height: float = 2.4) -> CaptureSession:
    """
    Load a capture session description.

    Args:
        session_path: Path to the session JSON file
        default_ceiling_height: Used when the room omits its ceiling height

    Returns:
        Loaded session
    """
    path = Path(session_path)
    with open(path, 'r') as file:
        data = json.load(file)

    base_dir = path.parent
    frames = [_load_frame(entry, base_dir) for entry in data.get('frames', [])]
    room = _load_room(data['room'], default_ceiling_height) if data.get('room') else None

    logger.info(f"Loaded session {path.name}: {len(frames)} frames, "
                f"{len(room.surfaces) if room else 0} surfaces")

    return CaptureSession(frames=frames, room=room, responses=data.get('responses', []))
