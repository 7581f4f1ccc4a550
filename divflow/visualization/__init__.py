"""
Visualization components for divflow.

This module contains palette color mapping and the matplotlib viewer.
"""

__all__ = ['color_system', 'viewer']
