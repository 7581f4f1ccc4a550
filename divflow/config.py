"""
Configuration module for divflow.

This module contains global constants, default parameters, and configuration
settings used throughout the field evaluation and tracer animation engine.
"""

import math

# Numerical differentiation and point-source regularization
DERIVATIVE_STEP = 0.01  # h in (f(x+h) - f(x-h)) / 2h
SOURCE_EPSILON = 0.01   # added to |r|^2 so sources stay finite at zero separation

# Domain ranges (fields are sampled on [-range, range] per axis)
DOMAIN_RANGE_2D = 3.0
DOMAIN_RANGE_3D = 2.0

# Grid resolutions
DIVERGENCE_GRID_RES = 100  # fine grid for the 2D heat map
ARROW_GRID_RES = 20        # coarse grid for static arrows
ARROW_GRID_RES_3D = 5      # arrows per axis in 3D (3-8 sensible)
DIVERGENCE_GRID_RES_3D = 8
VOLUMETRIC_RES = 12        # volumetric cells per axis in 3D (8-20 sensible)

# Arrow / tracer direction threshold
MIN_DIRECTION_MAGNITUDE = 0.01

# Animation parameters
FRAME_DT = 0.016            # seconds per tick at 60 FPS
MIN_SPEED = 0.1
MAX_SPEED = 3.0
DEFAULT_SPEED = 1.0
ANIMATION_INTERVAL = 16     # milliseconds between frames in the viewer
ANIMATION_FRAMES = 600

# Particle system parameters
DEFAULT_NUM_PARTICLES = 500      # 2D tracer count
DEFAULT_NUM_PARTICLES_3D = 1000
LIFE_DECAY_2D = 0.005            # life lost per tick at speed 1
LIFE_DECAY_3D = 0.3 * FRAME_DT   # 0.3 per second at speed 1

# Point sources
DEFAULT_SOURCE_STRENGTH = 2.0
SOURCE_PICK_RADIUS = 0.3

# Color mapping
DEFAULT_PALETTE = 'viridis'
PULSING_ENABLED = True
BASE_HEATMAP_ALPHA = 0.5
MIN_HEATMAP_ALPHA = 0.35
MAX_HEATMAP_ALPHA = 0.65

# Expression parser safety limits
MAX_EXPRESSION_LENGTH = 500
MAX_EXPRESSION_DEPTH = 40
MAX_EXPRESSION_NODES = 200

# Default field expressions per view
DEFAULT_FX = "-y"
DEFAULT_FY = "x"
DEFAULT_FZ = "0"

# Window title
WINDOW_TITLE = "divflow"

PI = math.pi


def domain_range_for(dimension):
    """Return the default sampling range for a 2D or 3D view."""
    if dimension == 2:
        return DOMAIN_RANGE_2D
    if dimension == 3:
        return DOMAIN_RANGE_3D
    raise ValueError(f"Unsupported dimension: {dimension}")


def life_decay_for(dimension):
    """Return the per-tick life decay rate for a 2D or 3D view."""
    return LIFE_DECAY_2D if dimension == 2 else LIFE_DECAY_3D


def clamp_speed(speed):
    """Clamp an animation speed multiplier into [MIN_SPEED, MAX_SPEED]."""
    return max(MIN_SPEED, min(MAX_SPEED, float(speed)))
