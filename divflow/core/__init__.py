"""
Core computation modules for divflow.

This module contains the expression compiler, its error types and the
built-in field presets.
"""

__all__ = ['expression', 'errors', 'presets']
