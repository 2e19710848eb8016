"""
Vision Model Client Interface

The pipeline talks to the external vision model only through VisionClient.
ReplayVisionClient serves previously recorded responses.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Optional, Sequence

from ..data_models import DepthFrame
from ..utils.errors import VisionRequestError
from .response_parser import VisionResponse, parse_vision_response


class VisionClient(ABC):
    """Finds damages in one photo."""

    @abstractmethod
    def analyze_image(self, frame: DepthFrame, image_index: int) -> VisionResponse:
        """
        Analyze one photo.

        Raises:
            DamageAnalysisError: If the request or its response fails
        """


class ReplayVisionClient(VisionClient):
    """Replays recorded raw responses, one per photo; None marks a failed call."""

    def __init__(self, responses: Sequence[Optional[Any]], min_confidence: float = 0.0):
        self.responses = list(responses)
        self.min_confidence = min_confidence
        self.logger = logging.getLogger(__name__)

    def analyze_image(self, frame: DepthFrame, image_index: int) -> VisionResponse:
        if image_index >= len(self.responses) or self.responses[image_index] is None:
            raise VisionRequestError(f"No recorded response for image {image_index}")
        self.logger.debug(f"Replaying response for image {image_index}")
        return parse_vision_response(self.responses[image_index], image_index, self.min_confidence)
