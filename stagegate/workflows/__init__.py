"""Workflows bundled with stagegate."""

from .fiction import fiction_workflow

__all__ = ["fiction_workflow"]
