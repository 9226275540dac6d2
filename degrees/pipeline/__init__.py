"""Pipeline orchestrators for end-to-end workflows."""

from degrees.pipeline.ingestion_pipeline import IngestionPipeline

__all__ = ["IngestionPipeline"]
