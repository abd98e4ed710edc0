"""
Workflows module - Ingestion orchestration over pluggable fetchers.
"""
from workflows.ingestion import IngestionOrchestrator

__all__ = [
    "IngestionOrchestrator",
]
