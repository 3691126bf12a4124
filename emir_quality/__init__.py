"""
EMIR trade data quality engine.

Validates EMIR REFIT trade reports against the 203-field schema, classifies
violations by severity and produces deterministic accuracy scores.
"""

__version__ = "0.1.0"
