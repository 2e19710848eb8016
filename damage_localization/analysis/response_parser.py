"""
Vision Response Parser

Decodes the JSON the vision model returns for one photo into validated
DamageDetection records. Items that fail validation are dropped one at a
time; only a payload that is not a response object at all is an error.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..data_models import (
    BoundingBox, DamageDetection, DamageSeverity, DamageType, OverallCondition
)
from ..utils.errors import ResponseParsingError

logger = logging.getLogger(__name__)


def _text_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


class BoundingBoxModel(BaseModel):
    """Raw normalized box as returned by the model."""
    model_config = ConfigDict(allow_inf_nan=False)

    x: float
    y: float
    width: float
    height: float

    def to_bounding_box(self) -> Optional[BoundingBox]:
        """Clamp into the unit square; degenerate boxes are dropped."""
        bbox = BoundingBox.clamped(self.x, self.y, self.width, self.height)
        if bbox.width <= 0 or bbox.height <= 0:
            return None
        return bbox


class DamageItemModel(BaseModel):
    """One raw entry of the response's 'damages' list."""
    model_config = ConfigDict(allow_inf_nan=False, populate_by_name=True)

    type: str = Field(..., min_length=1)
    description: str
    confidence: float
    severity: Optional[str] = None
    bounding_box: Optional[BoundingBoxModel] = Field(
        None, validation_alias=AliasChoices('boundingBox', 'bounding_box')
    )
    recommendation: Optional[str] = None

    @field_validator('confidence')
    @classmethod
    def clamp_confidence(cls, value: float) -> float:
        return min(max(value, 0.0), 1.0)

    @field_validator('bounding_box', mode='before')
    @classmethod
    def drop_invalid_box(cls, value: Any) -> Any:
        # A malformed box costs the box, not the detection
        if value is None:
            return None
        try:
            return BoundingBoxModel.model_validate(value)
        except ValidationError:
            return None

    @field_validator('severity', 'recommendation', mode='before')
    @classmethod
    def text_only(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)


class VisionResponseModel(BaseModel):
    """Top-level response object; items are validated separately."""
    model_config = ConfigDict(populate_by_name=True)

    damages: List[Any] = Field(default_factory=list)
    overall_condition: Optional[str] = Field(
        None, validation_alias=AliasChoices('overallCondition', 'overall_condition')
    )
    summary: Optional[str] = None

    @field_validator('overall_condition', 'summary', mode='before')
    @classmethod
    def text_only(cls, value: Any) -> Optional[str]:
        return _text_or_none(value)


@dataclass
class VisionResponse:
    """Parsed vision-model answer for one photo."""
    detections: List[DamageDetection] = field(default_factory=list)
    overall_condition: Optional[OverallCondition] = None
    summary: Optional[str] = None


def strip_code_fences(text: str) -> str:
    """Remove a surrounding Markdown code fence, if any."""
    cleaned = text.strip()
    if cleaned.startswith("```json"):
        cleaned = cleaned[7:]
    elif cleaned.startswith("```"):
        cleaned = cleaned[3:]
    if cleaned.endswith("```"):
        cleaned = cleaned[:-3]
    return cleaned.strip()


def parse_bounding_box(raw: Any) -> Optional[BoundingBox]:
    """Clamp a raw box into the unit square; malformed or degenerate boxes give None."""
    try:
        return BoundingBoxModel.model_validate(raw).to_bounding_box()
    except ValidationError:
        return None


def parse_detection(item: Any, image_index: int, min_confidence: float = 0.0) -> Optional[DamageDetection]:
    """
    Validate one raw damage item.

    Args:
        item: Raw item from the response's 'damages' list
        image_index: Index of the source photo
        min_confidence: Items below this confidence are dropped

    Returns:
        Detection, or None if the item fails validation
    """
    try:
        model = DamageItemModel.model_validate(item)
    except ValidationError as e:
        logger.debug(f"Dropping invalid item on image {image_index}: {e.error_count()} errors")
        return None

    if model.confidence < min_confidence:
        return None

    return DamageDetection(
        damage_type=DamageType.parse(model.type),
        description=model.description,
        confidence=model.confidence,
        image_index=image_index,
        severity=DamageSeverity.parse(model.severity),
        bounding_box=model.bounding_box.to_bounding_box() if model.bounding_box else None,
        recommendation=model.recommendation
    )


def parse_vision_response(raw: Union[str, bytes, Dict[str, Any]],
                          image_index: int,
                          min_confidence: float = 0.0) -> VisionResponse:
    """
    Parse a vision-model response.

    Args:
        raw: Response text (optionally wrapped in a code fence) or decoded JSON
        image_index: Index of the source photo
        min_confidence: Detections below this confidence are dropped

    Returns:
        Parsed response

    Raises:
        ResponseParsingError: If the payload is not a JSON object with a damages list
    """
    if isinstance(raw, bytes):
        try:
            raw = raw.decode('utf-8')
        except UnicodeDecodeError as e:
            raise ResponseParsingError("Invalid UTF-8 data") from e

    try:
        if isinstance(raw, str):
            payload = VisionResponseModel.model_validate_json(strip_code_fences(raw))
        else:
            payload = VisionResponseModel.model_validate(raw)
    except ValidationError as e:
        raise ResponseParsingError(f"Invalid vision response: {e.errors()[0]['msg']}") from e

    detections = [d for d in (parse_detection(item, image_index, min_confidence) for item in payload.damages)
                  if d is not None]
    if len(detections) < len(payload.damages):
        logger.info(f"Image {image_index}: kept {len(detections)}/{len(payload.damages)} detections")

    return VisionResponse(
        detections=detections,
        overall_condition=OverallCondition.parse(payload.overall_condition),
        summary=payload.summary
    )
