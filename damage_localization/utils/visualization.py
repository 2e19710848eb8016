"""
Detection Overlay

Draws damage bounding boxes on a photo for visual inspection.
"""

from typing import Dict, Sequence, Tuple

import cv2
import numpy as np

from ..data_models import DamageSeverity, DetectedDamage, format_length

# BGR
SEVERITY_COLORS: Dict[DamageSeverity, Tuple[int, int, int]] = {
    DamageSeverity.LOW: (0, 200, 0),
    DamageSeverity.MODERATE: (0, 220, 220),
    DamageSeverity.HIGH: (0, 140, 255),
    DamageSeverity.CRITICAL: (0, 0, 255),
}


class Visualizer:
    """Renders detections onto images."""

    def __init__(self, thickness: int = 2, font_scale: float = 0.5):
        self.thickness = thickness
        self.font_scale = font_scale

    def draw_detections(self, image: np.ndarray, damages: Sequence[DetectedDamage]) -> np.ndarray:
        """
        Draw bounding boxes and labels of damages onto a copy of the image.

        Args:
            image: BGR or grayscale image
            damages: Damages detected on this image

        Returns:
            Annotated BGR image
        """
        canvas = image.copy()
        if canvas.ndim == 2:
            canvas = cv2.cvtColor(canvas, cv2.COLOR_GRAY2BGR)
        height, width = canvas.shape[:2]

        for damage in damages:
            bbox = damage.bounding_box
            if bbox is None:
                continue

            x, y, w, h = bbox.to_pixels(width, height)
            top_left = (int(x), int(y))
            bottom_right = (int(x + w), int(y + h))
            color = SEVERITY_COLORS[damage.severity]

            cv2.rectangle(canvas, top_left, bottom_right, color, self.thickness)

            label = f"{damage.damage_type.display_name} {damage.confidence:.0%}"
            if damage.real_width is not None and damage.real_height is not None:
                label += f" {format_length(damage.real_width)} x {format_length(damage.real_height)}"
            cv2.putText(canvas, label, (top_left[0], max(top_left[1] - 5, 10)),
                        cv2.FONT_HERSHEY_SIMPLEX, self.font_scale, color, 1, cv2.LINE_AA)

        return canvas
