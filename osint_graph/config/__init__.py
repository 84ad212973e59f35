"""Configuration: environment settings, logging and prompt templates."""

from osint_graph.config.settings import Settings, settings

__all__ = ["Settings", "settings"]
