"""
Utility Functions and Helpers

Common utilities for the damage localization engine.
"""

from .config_manager import ConfigManager
from .visualization import Visualizer
from . import errors

__all__ = ['ConfigManager', 'Visualizer', 'errors']
