"""
Damage Analysis Orchestrator

Runs one analysis: calls the vision model once per photo, strictly in photo
order with a fixed delay between calls, then measures, places and
deduplicates the detections of the photos that succeeded.
"""

import logging
import threading
import time
from dataclasses import replace
from typing import Callable, List, Optional, Sequence, Tuple

from ..data_models import (
    AnalysisResult, DamageDetection, DamageSeverity, DamageWorldPosition, DepthFrame,
    DetectedDamage, ImageAnalysisResult, OverallCondition, RoomModel
)
from ..dedup.deduplicator import Deduplicator
from ..measurement.size_calculator import RealDimensions, SizeCalculator
from ..placement.position_calculator import PositionCalculator
from ..placement.surface_matcher import SurfaceMatch, SurfaceMatcher, WallCursor
from ..utils.config_manager import ConfigManager
from ..utils.errors import AllImagesFailedError, AnalysisCancelledError, NoImagesProvidedError
from .vision_client import VisionClient

ProgressCallback = Callable[[float], None]


def determine_overall_condition(conditions: Sequence[OverallCondition],
                                damages: Sequence[DetectedDamage]) -> OverallCondition:
    """
    Worst-case room condition.

    Without damages the best condition reported by the model wins.
    """
    if not damages:
        return min(conditions, key=lambda c: c.priority, default=OverallCondition.EXCELLENT)

    severities = {d.severity for d in damages}
    if DamageSeverity.CRITICAL in severities:
        return OverallCondition.CRITICAL
    if DamageSeverity.HIGH in severities:
        return OverallCondition.POOR
    if DamageSeverity.MODERATE in severities:
        return OverallCondition.FAIR
    return OverallCondition.GOOD


class AnalysisOrchestrator:
    """Sequences vision-model calls and the geometric pipeline for one session."""

    def __init__(self,
                 vision_client: VisionClient,
                 config_manager: Optional[ConfigManager] = None,
                 sleep: Callable[[float], None] = time.sleep):
        """
        Initialize orchestrator.

        Args:
            vision_client: Client of the external vision model
            config_manager: Configuration manager instance
            sleep: Delay function between vision-model calls
        """
        self.vision_client = vision_client
        self.config = config_manager or ConfigManager()
        self.logger = logging.getLogger(__name__)
        self._sleep = sleep

        params = self.config.get_analysis_params()
        self.request_delay = float(params.get('request_delay', 0.5))

        self.size_calculator = SizeCalculator(self.config)
        self.position_calculator = PositionCalculator(self.config, self.size_calculator.depth_sampler)
        self.deduplicator = Deduplicator(self.config)

        self.logger.info(f"Analysis orchestrator initialized: request delay={self.request_delay}s")

    def analyze(self,
                frames: Sequence[DepthFrame],
                room: Optional[RoomModel] = None,
                progress_callback: Optional[ProgressCallback] = None,
                cancel_event: Optional[threading.Event] = None) -> AnalysisResult:
        """
        Analyze all photos of a depth-capture session.

        Args:
            frames: Photos in capture order; the list index is the photo index
            room: Room scan to anchor damages on, if available
            progress_callback: Receives the fraction of photos started
            cancel_event: When set, the run stops before the next photo

        Returns:
            Deduplicated damages with positions in both coordinate frames

        Raises:
            NoImagesProvidedError: If there is nothing to analyze
            AllImagesFailedError: If every vision-model call failed
            AnalysisCancelledError: If the run was cancelled
        """
        if not frames:
            raise NoImagesProvidedError()

        start_time = time.time()
        image_results = self._analyze_images(frames, progress_callback, cancel_event)

        damages, room_positions = self._process_results(image_results, frames, room)
        unique = self.deduplicator.deduplicate(damages)
        surviving = {d.id for d in unique}

        conditions = [r.overall_condition for r in image_results
                      if r.is_success and r.overall_condition is not None]
        failed = sum(1 for r in image_results if not r.is_success)

        result = AnalysisResult(
            detected_damages=unique,
            overall_condition=determine_overall_condition(conditions, unique),
            analyzed_image_count=len(frames),
            failed_image_count=failed,
            processing_time_seconds=time.time() - start_time,
            image_results=image_results,
            room_positions=[p for p in room_positions if p.damage_id in surviving],
            session_positions=self.position_calculator.calculate_all_positions(unique, frames)
        )

        if progress_callback is not None:
            progress_callback(1.0)

        self.logger.info(f"Analysis complete: {len(unique)} damages from {len(frames) - failed}/"
                         f"{len(frames)} images in {result.processing_time_seconds:.1f}s")
        return result

    def _analyze_images(self,
                        frames: Sequence[DepthFrame],
                        progress_callback: Optional[ProgressCallback],
                        cancel_event: Optional[threading.Event]) -> List[ImageAnalysisResult]:
        """Call the vision model for every photo, in index order."""
        results: List[ImageAnalysisResult] = []
        total = len(frames)

        for index, frame in enumerate(frames):
            if cancel_event is not None and cancel_event.is_set():
                self.logger.info(f"Analysis cancelled at image {index}/{total}")
                raise AnalysisCancelledError(completed=index, total=total)

            if progress_callback is not None:
                progress_callback(index / total)

            try:
                response = self.vision_client.analyze_image(frame, index)
            except Exception as e:
                self.logger.warning(f"Image {index} analysis failed: {e}")
                results.append(ImageAnalysisResult(image_index=index, error=e))
            else:
                results.append(ImageAnalysisResult(
                    image_index=index,
                    detections=response.detections,
                    overall_condition=response.overall_condition,
                    summary=response.summary
                ))

            # Upstream rate limit
            if index < total - 1 and self.request_delay > 0:
                self._sleep(self.request_delay)

        errors = [r.error for r in results if r.error is not None]
        if len(errors) == total:
            self.logger.error(f"All {total} image analyses failed")
            raise AllImagesFailedError(errors) from errors[0]

        return results

    def _process_results(self,
                         image_results: Sequence[ImageAnalysisResult],
                         frames: Sequence[DepthFrame],
                         room: Optional[RoomModel]) -> Tuple[List[DetectedDamage], List[DamageWorldPosition]]:
        """Turn successful detections into measured, surface-linked damages."""
        matcher = SurfaceMatcher(room, self.config) if room is not None else None
        cursor = WallCursor()

        damages: List[DetectedDamage] = []
        positions: List[DamageWorldPosition] = []

        for image_result in image_results:
            if not image_result.is_success:
                continue
            frame = frames[image_result.image_index]

            for detection in image_result.detections:
                match = None
                if matcher is not None:
                    match = (matcher.match_identifier(frame.surface_id)
                             or matcher.match(frame.surface_category, frame.camera_transform, cursor))

                damage = self._build_damage(detection, frame, match, matcher)
                damages.append(damage)

                if match is not None:
                    positions.append(self.position_calculator.position_on_surface(damage, match))

        return damages, positions

    def _build_damage(self,
                      detection: DamageDetection,
                      frame: DepthFrame,
                      match: Optional[SurfaceMatch],
                      matcher: Optional[SurfaceMatcher]) -> DetectedDamage:
        surface = match.surface if match is not None else None
        dimensions = self._measure(detection, frame, match)

        damage = DetectedDamage(
            damage_type=detection.damage_type,
            severity=detection.severity,
            description=detection.description,
            surface_category=frame.surface_category,
            confidence=detection.confidence,
            image_index=detection.image_index,
            surface_id=surface.identifier if surface is not None else None,
            surface_name=matcher.name_of(surface) if matcher is not None else None,
            bounding_box=detection.bounding_box,
            recommendation=detection.recommendation
        )
        if dimensions is None:
            return damage

        return replace(
            damage,
            real_width=dimensions.width,
            real_height=dimensions.height,
            real_area=dimensions.area,
            distance_from_camera=dimensions.depth if dimensions.depth > 0 else None,
            measurement_confidence=dimensions.confidence
        )

    def _measure(self,
                 detection: DamageDetection,
                 frame: DepthFrame,
                 match: Optional[SurfaceMatch]) -> Optional[RealDimensions]:
        bbox = detection.bounding_box
        if bbox is None:
            return None

        if frame.has_depth:
            return self.size_calculator.calculate_size(bbox, frame)

        surface = match.surface if match is not None else None
        if surface is not None and surface.has_extents:
            return self.size_calculator.calculate_size_from_surface(bbox, surface.width, surface.height)
        return None
