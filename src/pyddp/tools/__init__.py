"""Tools for analyzing captured DDP traffic.

This package contains utilities for working with packet captures.
"""

__all__ = ["analyze"]
