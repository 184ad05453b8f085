"""Configuration module: exports Settings."""

from rca_dashboard.config.settings import Settings

__all__ = ["Settings"]
