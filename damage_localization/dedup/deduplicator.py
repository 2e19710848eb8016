"""
Damage Deduplicator

The same defect photographed twice produces two detections. Two records are
considered the same damage when their boxes overlap (IoU above threshold,
regardless of detected type, since the model may classify one defect
inconsistently) or, lacking spatial overlap, when they share a type and
have similar real-world areas.
"""

import logging
from typing import List, Optional, Sequence

from ..data_models import BoundingBox, DetectedDamage
from ..utils.config_manager import ConfigManager


def calculate_iou(a: BoundingBox, b: BoundingBox) -> float:
    """
    Intersection over union of two axis-aligned boxes.

    Returns:
        IoU in [0, 1]; 0 when the boxes do not overlap or either is empty
    """
    area_a = a.width * a.height
    area_b = b.width * b.height
    if area_a <= 0 or area_b <= 0:
        return 0.0

    left = max(a.x, b.x)
    top = max(a.y, b.y)
    right = min(a.x + a.width, b.x + b.width)
    bottom = min(a.y + a.height, b.y + b.height)
    if right <= left or bottom <= top:
        return 0.0

    intersection = (right - left) * (bottom - top)
    union = area_a + area_b - intersection
    if union <= 0:
        return 0.0
    return min(intersection / union, 1.0)


class Deduplicator:
    """Keeps the best single record per physical damage."""

    def __init__(self, config_manager: Optional[ConfigManager] = None):
        """
        Initialize deduplicator.

        Args:
            config_manager: Configuration manager instance
        """
        self.config = config_manager or ConfigManager()
        self.logger = logging.getLogger(__name__)

        params = self.config.get_dedup_params()
        self.iou_threshold = float(params.get('iou_threshold', 0.3))
        # Loose on purpose and gated on type; tune with real data
        self.max_relative_area_difference = float(params.get('max_relative_area_difference', 1.0))
        self.confidence_margin = float(params.get('confidence_margin', 0.1))
        self.closer_distance_ratio = float(params.get('closer_distance_ratio', 0.8))

        self.logger.info(f"Deduplicator initialized: IoU>{self.iou_threshold}, "
                         f"area diff<{self.max_relative_area_difference:.0%}")

    def is_same_damage(self, a: DetectedDamage, b: DetectedDamage) -> bool:
        """Whether two records describe the same physical damage."""
        if a.bounding_box is not None and b.bounding_box is not None:
            if calculate_iou(a.bounding_box, b.bounding_box) > self.iou_threshold:
                return True

        if a.damage_type != b.damage_type:
            return False
        if a.real_area is None or b.real_area is None:
            return False

        largest = max(a.real_area, b.real_area)
        if largest <= 0:
            return False
        return abs(a.real_area - b.real_area) / largest < self.max_relative_area_difference

    def should_replace(self, existing: DetectedDamage, candidate: DetectedDamage) -> bool:
        """Whether a new observation is better than the stored one."""
        if candidate.confidence > existing.confidence + self.confidence_margin:
            return True
        # Closer observations give more accurate sizes
        if candidate.distance_from_camera is not None and existing.distance_from_camera is not None:
            return candidate.distance_from_camera < existing.distance_from_camera * self.closer_distance_ratio
        return False

    def deduplicate(self, damages: Sequence[DetectedDamage]) -> List[DetectedDamage]:
        """
        Merge duplicate observations, processing input in its original order.

        Args:
            damages: Damages of one analysis run

        Returns:
            Unique damages, in order of first observation
        """
        unique: List[DetectedDamage] = []

        for damage in damages:
            match_index = next(
                (i for i, existing in enumerate(unique) if self.is_same_damage(existing, damage)),
                None
            )

            if match_index is None:
                unique.append(damage)
            elif self.should_replace(unique[match_index], damage):
                self.logger.debug(f"Replacing {unique[match_index].id} with better observation {damage.id}")
                unique[match_index] = damage
                self._settle(unique, match_index)
            else:
                self.logger.debug(f"Dropping redundant observation {damage.id}")

        if len(unique) < len(damages):
            self.logger.info(f"Deduplicated {len(damages)} damages into {len(unique)}")

        return unique

    def _settle(self, unique: List[DetectedDamage], index: int) -> None:
        """
        Merge entries that match a freshly replaced one.

        Keeps the invariant that no two unique entries match, so running the
        deduplicator on its own output changes nothing.
        """
        while True:
            other = next(
                (j for j, existing in enumerate(unique)
                 if j != index and self.is_same_damage(existing, unique[index])),
                None
            )
            if other is None:
                return

            first, second = sorted((index, other))
            keep = unique[second] if self.should_replace(unique[first], unique[second]) else unique[first]
            unique[first] = keep
            del unique[second]
            index = first
