"""Incremental entity and relationship extraction into a cumulative knowledge graph."""

__version__ = "0.1.0"
