"""Resilient ingestion of LLM output and third-party web pages."""

__version__ = "1.0.0"
