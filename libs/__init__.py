# =============================================================================
# Metadata Migration Shared Libraries
# =============================================================================
# This package contains shared libraries for the key-value to relational
# metadata migration and dual-write pipelines.
# See individual sub-packages for detailed documentation.
# =============================================================================

"""
Metadata migration shared libraries.

Sub-packages:
- models: Pydantic data models, settings and run parameters
- migration: Cursor, translation, reference resolution, writers and gate
"""

__version__ = "0.1.0"
