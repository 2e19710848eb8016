"""
Damage Analysis Module

Per-photo vision-model sequencing and assembly of the final damage list.
"""

from .orchestrator import AnalysisOrchestrator, determine_overall_condition
from .response_parser import VisionResponse, parse_vision_response
from .vision_client import VisionClient, ReplayVisionClient
from .session_loader import CaptureSession, load_session

__all__ = [
    'AnalysisOrchestrator', 'determine_overall_condition',
    'VisionResponse', 'parse_vision_response',
    'VisionClient', 'ReplayVisionClient',
    'CaptureSession', 'load_session'
]
