"""
Pytest configuration and fixtures for damage localization tests.
"""

import pytest
import numpy as np

from damage_localization.data_models import (
    CameraIntrinsics, DepthFrame, RoomModel, SurfaceCategory, SurfaceRecord
)
from damage_localization.utils.config_manager import ConfigManager


def make_transform(center, x_axis, y_axis, z_axis):
    """4x4 transform from a translation and three axis columns."""
    T = np.eye(4)
    T[:3, 0] = x_axis
    T[:3, 1] = y_axis
    T[:3, 2] = z_axis
    T[:3, 3] = center
    return T


def camera_pose(position, look_direction):
    """Camera-to-world pose looking along look_direction (level, Y up)."""
    forward = np.asarray(look_direction, dtype=np.float64)
    forward = forward / np.linalg.norm(forward)
    z_axis = -forward
    x_axis = np.cross([0.0, 1.0, 0.0], z_axis)
    x_axis = x_axis / np.linalg.norm(x_axis)
    y_axis = np.cross(z_axis, x_axis)
    return make_transform(position, x_axis, y_axis, z_axis)


@pytest.fixture
def config_manager():
    """Fixture providing a configuration manager instance."""
    return ConfigManager()


@pytest.fixture
def sample_intrinsics():
    """Fixture providing pinhole intrinsics for a 640x480 image."""
    return CameraIntrinsics(fx=500.0, fy=500.0, cx=320.0, cy=240.0)


@pytest.fixture
def make_depth_frame(sample_intrinsics):
    """Factory fixture building a frame with a constant (or given) depth map."""
    def _make(depth=2.0, depth_shape=(480, 640), image_size=(640, 480),
              intrinsics=None, pose=None, **kwargs):
        if np.isscalar(depth):
            depth_map = np.full(depth_shape, depth, dtype=np.float32)
        else:
            depth_map = np.asarray(depth, dtype=np.float32)
        return DepthFrame.from_depth_map(
            image_size[0], image_size[1], depth_map,
            intrinsics or sample_intrinsics,
            camera_transform=np.eye(4) if pose is None else pose,
            **kwargs
        )
    return _make


@pytest.fixture
def sample_room():
    """
    4 m x 4 m room centered on the origin, walls 2.5 m high, normals inward.

    Scan order: north (z=-2), east (x=2), south (z=2), west (x=-2), then
    floor, door and window.
    """
    up = [0.0, 1.0, 0.0]
    surfaces = [
        SurfaceRecord('north', SurfaceCategory.WALL,
                      make_transform([0, 1.25, -2], [1, 0, 0], up, [0, 0, 1]), 4.0, 2.5),
        SurfaceRecord('east', SurfaceCategory.WALL,
                      make_transform([2, 1.25, 0], [0, 0, 1], up, [-1, 0, 0]), 4.0, 2.5),
        SurfaceRecord('south', SurfaceCategory.WALL,
                      make_transform([0, 1.25, 2], [-1, 0, 0], up, [0, 0, -1]), 4.0, 2.5),
        SurfaceRecord('west', SurfaceCategory.WALL,
                      make_transform([-2, 1.25, 0], [0, 0, -1], up, [1, 0, 0]), 4.0, 2.5),
        SurfaceRecord('floor', SurfaceCategory.FLOOR,
                      make_transform([0, 0, 0], [1, 0, 0], [0, 0, -1], up), 4.0, 4.0),
        SurfaceRecord('door', SurfaceCategory.DOOR,
                      make_transform([1, 1.0, 2], [-1, 0, 0], up, [0, 0, -1]), 0.9, 2.0),
        SurfaceRecord('window', SurfaceCategory.WINDOW,
                      make_transform([-2, 1.5, 0.5], [0, 0, -1], up, [1, 0, 0]), 1.2, 1.0),
    ]
    return RoomModel(surfaces=surfaces, ceiling_height=2.5)


@pytest.fixture
def center_pose():
    """Camera at eye height in the room center, looking at the north wall."""
    return camera_pose([0.0, 1.25, 0.0], [0.0, 0.0, -1.0])
