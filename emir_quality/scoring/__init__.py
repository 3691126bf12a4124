"""
Accuracy scoring of validated report runs.
"""

from .engine import ScoringEngine, compute_overall_score, record_accuracy, traffic_light

__all__ = [
    "ScoringEngine",
    "compute_overall_score",
    "record_accuracy",
    "traffic_light",
]
