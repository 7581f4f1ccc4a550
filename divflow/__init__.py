"""
divflow: vector field divergence and tracer flow visualization.

This package compiles user-supplied field expressions, combines them with
point sources and sinks, computes the divergence on a grid and advects tracer
particles through the field for animated display.
"""

__version__ = "0.1.0"

__all__ = ['config', 'engine', 'core', 'physics', 'visualization']
