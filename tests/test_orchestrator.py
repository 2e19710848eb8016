"""
Tests for Analysis Orchestrator
"""

import threading

import pytest
import numpy as np

from damage_localization.analysis.orchestrator import (
    AnalysisOrchestrator, determine_overall_condition
)
from damage_localization.analysis.response_parser import VisionResponse
from damage_localization.analysis.vision_client import ReplayVisionClient, VisionClient
from damage_localization.data_models import (
    BoundingBox, CoordinateFrame, DamageDetection, DamageSeverity, DamageType,
    DepthFrame, DetectedDamage, OverallCondition, PlacementMethod, SurfaceCategory
)
from damage_localization.utils.errors import (
    AllImagesFailedError, AnalysisCancelledError, NoImagesProvidedError, VisionRequestError
)

from conftest import camera_pose


def detection(image_index, damage_type=DamageType.CRACK, bbox=None, confidence=0.8,
              severity=DamageSeverity.LOW):
    return DamageDetection(
        damage_type=damage_type,
        description=f"{damage_type.value} on photo {image_index}",
        confidence=confidence,
        image_index=image_index,
        severity=severity,
        bounding_box=bbox
    )


class FakeVisionClient(VisionClient):
    """Returns canned detections per photo and records the call order."""

    def __init__(self, per_image, condition=OverallCondition.GOOD):
        self.per_image = per_image
        self.condition = condition
        self.calls = []

    def analyze_image(self, frame, image_index):
        self.calls.append(image_index)
        outcome = self.per_image[image_index]
        if isinstance(outcome, Exception):
            raise outcome
        return VisionResponse(detections=outcome, overall_condition=self.condition)


def plain_frames(count, **kwargs):
    return [DepthFrame(image_width=640, image_height=480, **kwargs) for _ in range(count)]


class TestAnalysisOrchestrator:
    """Test suite for analysis orchestrator."""

    @pytest.fixture
    def sleeps(self):
        return []

    @pytest.fixture
    def make_orchestrator(self, config_manager, sleeps):
        def _make(client):
            return AnalysisOrchestrator(client, config_manager, sleep=sleeps.append)
        return _make

    def test_no_images(self, make_orchestrator):
        orchestrator = make_orchestrator(FakeVisionClient([]))
        with pytest.raises(NoImagesProvidedError):
            orchestrator.analyze([])

    def test_sequential_calls_with_delay(self, make_orchestrator, sleeps):
        """Test photos are analyzed in order with the delay only between calls."""
        client = FakeVisionClient([[], [], []])
        make_orchestrator(client).analyze(plain_frames(3))

        assert client.calls == [0, 1, 2]
        assert sleeps == [0.5, 0.5]

    def test_single_image_no_delay(self, make_orchestrator, sleeps):
        make_orchestrator(FakeVisionClient([[]])).analyze(plain_frames(1))
        assert sleeps == []

    def test_all_images_failed(self, make_orchestrator):
        client = FakeVisionClient([VisionRequestError("timeout"), VisionRequestError("offline")])

        with pytest.raises(AllImagesFailedError) as exc_info:
            make_orchestrator(client).analyze(plain_frames(2))

        assert "timeout" in str(exc_info.value)
        assert len(exc_info.value.errors) == 2
        assert client.calls == [0, 1]

    def test_partial_failure(self, make_orchestrator):
        """Test a failed photo is skipped and the rest are still processed."""
        client = FakeVisionClient([
            [detection(0, DamageType.CRACK, BoundingBox(0.0, 0.0, 0.1, 0.1))],
            RuntimeError("connection reset"),
            [detection(2, DamageType.STAIN, BoundingBox(0.6, 0.6, 0.2, 0.2))],
        ])

        result = make_orchestrator(client).analyze(plain_frames(3))

        assert client.calls == [0, 1, 2]
        assert result.analyzed_image_count == 3
        assert result.failed_image_count == 1
        assert [d.image_index for d in result.detected_damages] == [0, 2]
        assert not result.image_results[1].is_success

    def test_cancel_stops_before_next_image(self, make_orchestrator):
        cancel = threading.Event()
        client = FakeVisionClient([[], [], []])

        def on_progress(fraction):
            if fraction == 0.0:
                cancel.set()

        with pytest.raises(AnalysisCancelledError) as exc_info:
            make_orchestrator(client).analyze(plain_frames(3), progress_callback=on_progress,
                                              cancel_event=cancel)

        assert client.calls == [0]
        assert exc_info.value.completed == 1
        assert exc_info.value.total == 3

    def test_progress_reported(self, make_orchestrator):
        progress = []
        make_orchestrator(FakeVisionClient([[], [], [], []])).analyze(
            plain_frames(4), progress_callback=progress.append)

        assert progress == [0.0, 0.25, 0.5, 0.75, 1.0]

    def test_duplicates_across_photos_merged(self, make_orchestrator):
        """Test the same damage seen on two photos is reported once."""
        box = BoundingBox(0.3, 0.3, 0.1, 0.1)
        client = FakeVisionClient([
            [detection(0, DamageType.CRACK, box, confidence=0.6)],
            [detection(1, DamageType.OTHER, box, confidence=0.9)],
        ])

        result = make_orchestrator(client).analyze(plain_frames(2))

        assert len(result.detected_damages) == 1
        assert result.detected_damages[0].confidence == pytest.approx(0.9)

    def test_overall_condition_from_severity(self, make_orchestrator):
        client = FakeVisionClient([[detection(0, bbox=BoundingBox(0.1, 0.1, 0.1, 0.1),
                                              severity=DamageSeverity.HIGH)]])
        result = make_orchestrator(client).analyze(plain_frames(1))
        assert result.overall_condition == OverallCondition.POOR
        assert result.high_priority_count == 1

    def test_depth_measurement(self, make_orchestrator, make_depth_frame):
        """Test damages on depth frames get pinhole measurements."""
        client = FakeVisionClient([[detection(0, bbox=BoundingBox(0.4, 0.4, 0.2, 0.2))]])

        result = make_orchestrator(client).analyze([make_depth_frame(depth=2.0)])

        damage = result.detected_damages[0]
        assert damage.real_width == pytest.approx(2.0 * 128 / 500)
        assert damage.real_height == pytest.approx(2.0 * 96 / 500)
        assert damage.real_area == pytest.approx(damage.real_width * damage.real_height)
        assert damage.distance_from_camera == pytest.approx(2.0)
        assert damage.measurement_confidence == pytest.approx(0.85)

    def test_no_room_no_surface_link(self, make_orchestrator):
        client = FakeVisionClient([[detection(0, bbox=BoundingBox(0.1, 0.1, 0.1, 0.1))]])
        result = make_orchestrator(client).analyze(plain_frames(1))

        damage = result.detected_damages[0]
        assert damage.surface_id is None
        assert damage.surface_name is None
        assert not damage.has_measurements
        assert result.room_positions == []

    def test_round_robin_walls_without_pose(self, make_orchestrator, sample_room):
        """Test wall damages from pose-less photos spread across walls."""
        client = FakeVisionClient([
            [detection(0, DamageType.CRACK, BoundingBox(0.0, 0.0, 0.1, 0.1))],
            [detection(1, DamageType.STAIN, BoundingBox(0.6, 0.6, 0.1, 0.1))],
        ])

        result = make_orchestrator(client).analyze(plain_frames(2), room=sample_room)

        assert [d.surface_id for d in result.detected_damages] == ['north', 'east']
        assert [d.surface_name for d in result.detected_damages] == ['Wall A', 'Wall B']
        assert all(p.method == PlacementMethod.ROUND_ROBIN for p in result.room_positions)

    def test_round_robin_restarts_each_run(self, make_orchestrator, sample_room):
        client = FakeVisionClient([[detection(0, bbox=BoundingBox(0.0, 0.0, 0.1, 0.1))]])
        orchestrator = make_orchestrator(client)

        first = orchestrator.analyze(plain_frames(1), room=sample_room)
        second = orchestrator.analyze(plain_frames(1), room=sample_room)

        assert first.detected_damages[0].surface_id == 'north'
        assert second.detected_damages[0].surface_id == 'north'

    def test_surface_size_fallback(self, make_orchestrator, sample_room):
        """Test photos without depth are measured against the matched wall."""
        client = FakeVisionClient([[detection(0, bbox=BoundingBox(0.0, 0.0, 0.1, 0.2))]])

        result = make_orchestrator(client).analyze(plain_frames(1), room=sample_room)

        damage = result.detected_damages[0]
        assert damage.real_width == pytest.approx(0.4)
        assert damage.real_height == pytest.approx(0.5)
        assert damage.distance_from_camera is None
        assert damage.measurement_confidence == pytest.approx(0.7)

    def test_tagged_surface_preferred(self, make_orchestrator, sample_room):
        client = FakeVisionClient([[detection(0, bbox=BoundingBox(0.1, 0.1, 0.1, 0.1))]])
        frames = plain_frames(1, surface_id='west')

        result = make_orchestrator(client).analyze(frames, room=sample_room)

        assert result.detected_damages[0].surface_id == 'west'
        assert result.detected_damages[0].surface_name == 'Wall D'

    def test_floor_category(self, make_orchestrator, sample_room):
        client = FakeVisionClient([[detection(0, bbox=BoundingBox(0.1, 0.1, 0.1, 0.1))]])
        frames = plain_frames(1, surface_category=SurfaceCategory.FLOOR)

        result = make_orchestrator(client).analyze(frames, room=sample_room)

        damage = result.detected_damages[0]
        assert damage.surface_category == SurfaceCategory.FLOOR
        assert damage.surface_id == 'floor'
        assert damage.surface_name is None

    def test_positions_in_both_frames(self, make_orchestrator, make_depth_frame,
                                      sample_room, center_pose):
        """Test room-scan and depth-session positions are kept apart."""
        client = FakeVisionClient([[detection(0, bbox=BoundingBox(0.4, 0.4, 0.2, 0.2))]])
        frame = make_depth_frame(depth=2.0, pose=center_pose)

        result = make_orchestrator(client).analyze([frame], room=sample_room)

        damage = result.detected_damages[0]
        assert damage.surface_id == 'north'

        [room_position] = result.room_positions
        assert room_position.frame == CoordinateFrame.ROOM_SCAN
        assert room_position.method == PlacementMethod.RAY_CAST
        assert room_position.confidence == pytest.approx(0.85)
        np.testing.assert_allclose(room_position.position, [0.0, 1.25, -1.95], atol=1e-9)

        [session_position] = result.session_positions
        assert session_position.frame == CoordinateFrame.DEPTH_SESSION
        np.testing.assert_allclose(session_position.position, [0.0, 1.25, 2.0], atol=1e-6)

    def test_non_finite_pose_has_no_session_position(self, make_orchestrator, make_depth_frame,
                                                     sample_room):
        """Test a corrupt pose still yields a damage but no NaN marker."""
        client = FakeVisionClient([[detection(0, bbox=BoundingBox(0.4, 0.4, 0.2, 0.2))]])
        pose = np.eye(4)
        pose[1, 3] = np.nan

        result = make_orchestrator(client).analyze([make_depth_frame(depth=2.0, pose=pose)],
                                                   room=sample_room)

        assert len(result.detected_damages) == 1
        assert result.session_positions == []
        assert all(np.all(np.isfinite(p.position)) for p in result.room_positions)

    def test_room_positions_follow_deduplication(self, make_orchestrator, sample_room):
        box = BoundingBox(0.3, 0.3, 0.1, 0.1)
        client = FakeVisionClient([
            [detection(0, bbox=box, confidence=0.9)],
            [detection(1, bbox=box, confidence=0.5)],
        ])

        result = make_orchestrator(client).analyze(plain_frames(2), room=sample_room)

        assert len(result.detected_damages) == 1
        assert [p.damage_id for p in result.room_positions] == [result.detected_damages[0].id]

    def test_replay_client(self, make_orchestrator):
        """Test the orchestrator with recorded raw responses."""
        responses = [
            '```json\n{"damages": [{"type": "mold", "severity": "moderate", '
            '"description": "Dark patches", "confidence": 0.7, '
            '"boundingBox": {"x": 0.1, "y": 0.1, "width": 0.2, "height": 0.2}}], '
            '"overallCondition": "fair"}\n```',
            None,
        ]

        result = make_orchestrator(ReplayVisionClient(responses)).analyze(plain_frames(2))

        assert result.failed_image_count == 1
        [damage] = result.detected_damages
        assert damage.damage_type == DamageType.MOLD
        assert damage.severity == DamageSeverity.MODERATE
        assert result.overall_condition == OverallCondition.FAIR


class TestOverallCondition:
    """Test suite for overall condition aggregation."""

    def make_damage(self, severity):
        return DetectedDamage(damage_type=DamageType.CRACK, severity=severity, description="",
                              surface_category=SurfaceCategory.WALL, confidence=0.5)

    def test_no_damages_uses_best_reported(self):
        conditions = [OverallCondition.GOOD, OverallCondition.EXCELLENT]
        assert determine_overall_condition(conditions, []) == OverallCondition.EXCELLENT

    def test_no_damages_no_reports(self):
        assert determine_overall_condition([], []) == OverallCondition.EXCELLENT

    @pytest.mark.parametrize("severity,expected", [
        (DamageSeverity.LOW, OverallCondition.GOOD),
        (DamageSeverity.MODERATE, OverallCondition.FAIR),
        (DamageSeverity.HIGH, OverallCondition.POOR),
        (DamageSeverity.CRITICAL, OverallCondition.CRITICAL),
    ])
    def test_worst_severity_wins(self, severity, expected):
        damages = [self.make_damage(DamageSeverity.LOW), self.make_damage(severity)]
        assert determine_overall_condition([OverallCondition.EXCELLENT], damages) == expected
