"""Market cap ingestion, retrieval and smoothing."""
