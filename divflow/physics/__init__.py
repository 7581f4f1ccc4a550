"""
Physics simulation components for divflow.

This module contains field evaluation with point sources, divergence grid
computation and the tracer particle integrator.
"""

__all__ = ['field', 'grid_computation', 'particle_system']
