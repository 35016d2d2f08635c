"""
Core - Shared infrastructure for Core314

This package provides:
- Abstract base models (timestamps, organization scoping)
- Platform role checks and DRF permission classes
"""
