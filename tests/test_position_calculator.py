"""
Tests for Position Calculator
"""

import pytest
import numpy as np

from damage_localization.data_models import (
    BoundingBox, CoordinateFrame, DamageSeverity, DamageType, DepthFrame,
    DetectedDamage, PlacementMethod, SurfaceCategory
)
from damage_localization.placement.position_calculator import PositionCalculator
from damage_localization.placement.surface_matcher import SurfaceMatcher, WallCursor

from conftest import make_transform


def make_damage(image_index=0, surface=SurfaceCategory.WALL, bbox=None, **kwargs):
    return DetectedDamage(
        damage_type=kwargs.pop('damage_type', DamageType.CRACK),
        severity=DamageSeverity.MODERATE,
        description="test damage",
        surface_category=surface,
        confidence=kwargs.pop('confidence', 0.8),
        image_index=image_index,
        bounding_box=bbox,
        **kwargs
    )


class TestPositionCalculator:
    """Test suite for position calculator."""

    @pytest.fixture
    def calculator(self):
        """Fixture providing a position calculator instance."""
        return PositionCalculator()

    @pytest.fixture
    def matcher(self, sample_room):
        return SurfaceMatcher(sample_room)

    def test_depth_unprojection_center(self, calculator, make_depth_frame):
        """Test unprojecting the principal point and moving it into world space."""
        pose = make_transform([1.0, 2.0, 3.0], [1, 0, 0], [0, 1, 0], [0, 0, 1])
        frame = make_depth_frame(depth=2.0, pose=pose)
        damage = make_damage(bbox=BoundingBox(0.4, 0.4, 0.2, 0.2))

        position = calculator.calculate_world_position(damage, frame)

        np.testing.assert_allclose(position.position, [1.0, 2.0, 5.0], atol=1e-9)
        assert position.frame == CoordinateFrame.DEPTH_SESSION
        assert position.method == PlacementMethod.DEPTH_UNPROJECTION
        assert position.damage_id == damage.id
        assert position.confidence == pytest.approx(0.85)  # small bbox penalty only

    def test_depth_unprojection_off_center(self, calculator, make_depth_frame):
        """Test camera-space X and Y from the principal point offset."""
        frame = make_depth_frame(depth=2.0)
        damage = make_damage(bbox=BoundingBox(0.7, 0.0, 0.1, 0.25))  # center (480, 60)

        position = calculator.calculate_world_position(damage, frame)

        np.testing.assert_allclose(position.position,
                                   [160 * 2.0 / 500.0, -180 * 2.0 / 500.0, 2.0], atol=1e-6)

    def test_depth_unprojection_rotated_pose(self, calculator, make_depth_frame):
        """Test that the pose rotation is applied."""
        # Camera Z axis points along world -X
        pose = make_transform([0, 0, 0], [0, 0, 1], [0, 1, 0], [-1, 0, 0])
        frame = make_depth_frame(depth=1.5, pose=pose)
        position = calculator.calculate_world_position(make_damage(bbox=BoundingBox(0.4, 0.4, 0.2, 0.2)), frame)
        np.testing.assert_allclose(position.position, [-1.5, 0.0, 0.0], atol=1e-6)

    def test_depth_unprojection_requires_bbox_and_depth(self, calculator, make_depth_frame):
        assert calculator.calculate_world_position(make_damage(), make_depth_frame()) is None

        no_depth = DepthFrame(image_width=640, image_height=480, camera_transform=np.eye(4))
        bbox = BoundingBox(0.4, 0.4, 0.2, 0.2)
        assert calculator.calculate_world_position(make_damage(bbox=bbox), no_depth) is None

        invalid = make_depth_frame(depth=0.01)
        assert calculator.calculate_world_position(make_damage(bbox=bbox), invalid) is None

    def test_depth_unprojection_rejects_non_finite_pose(self, calculator, make_depth_frame):
        """Test that a pose with NaN or infinity yields no position."""
        bbox = BoundingBox(0.4, 0.4, 0.2, 0.2)
        for bad in (np.nan, np.inf):
            pose = np.eye(4)
            pose[0, 3] = bad
            frame = make_depth_frame(depth=2.0, pose=pose)
            assert calculator.calculate_world_position(make_damage(bbox=bbox), frame) is None

    def test_surface_position_ray_cast(self, calculator, matcher, center_pose):
        """Test surface anchoring on the wall the camera looks at."""
        damage = make_damage()
        match = matcher.match(SurfaceCategory.WALL, center_pose, WallCursor())
        position = calculator.position_on_surface(damage, match)

        np.testing.assert_allclose(position.position, [0.0, 1.25, -1.95], atol=1e-9)
        np.testing.assert_allclose(position.normal, [0.0, 0.0, 1.0])
        assert position.damage_id == damage.id
        assert position.confidence == pytest.approx(0.85)
        assert position.frame == CoordinateFrame.ROOM_SCAN
        assert position.method == PlacementMethod.RAY_CAST
        assert position.surface_id == 'north'

    def test_surface_position_without_pose(self, calculator, matcher):
        match = matcher.match(SurfaceCategory.WALL, None, WallCursor())
        position = calculator.position_on_surface(make_damage(), match)
        assert position.confidence == pytest.approx(0.7)
        assert position.method == PlacementMethod.ROUND_ROBIN

    def test_ceiling_position(self, calculator, matcher):
        damage = make_damage(surface=SurfaceCategory.CEILING)
        match = matcher.match(SurfaceCategory.CEILING, None, WallCursor())
        position = calculator.position_on_surface(damage, match)

        np.testing.assert_allclose(position.position, [0.0, 2.55, 0.0], atol=1e-9)
        assert position.surface_id is None

    def test_all_positions_skip_missing_frames(self, calculator, make_depth_frame):
        bbox = BoundingBox(0.4, 0.4, 0.2, 0.2)
        damages = [make_damage(image_index=0, bbox=bbox), make_damage(image_index=3, bbox=bbox)]

        positions = calculator.calculate_all_positions(damages, [make_depth_frame()])

        assert len(positions) == 1
        assert positions[0].damage_id == damages[0].id

    def test_all_positions_only_depth_session(self, calculator, make_depth_frame):
        """Test that frames without depth contribute no session positions."""
        bbox = BoundingBox(0.4, 0.4, 0.2, 0.2)
        frames = [make_depth_frame(), DepthFrame(image_width=640, image_height=480)]
        damages = [make_damage(image_index=0, bbox=bbox), make_damage(image_index=1, bbox=bbox)]

        positions = calculator.calculate_all_positions(damages, frames)

        assert [p.frame for p in positions] == [CoordinateFrame.DEPTH_SESSION]
