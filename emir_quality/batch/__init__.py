"""
Batch ingestion of report files.
"""
