"""
Engine configuration (environment variables and profiles).
"""

from .settings import PROFILES, Environment, PipelineSettings, load_settings

__all__ = [
    "PROFILES",
    "Environment",
    "PipelineSettings",
    "load_settings",
]
