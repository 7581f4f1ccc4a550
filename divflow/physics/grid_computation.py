"""
Grid computation module for divflow.

This module handles grid building, numerical differentiation and the
divergence heat map, plus the coarse arrow field and the volumetric magnitude
grid sampled from a FieldEvaluator.
"""

import logging
from dataclasses import dataclass
from typing import Tuple

import numpy as np
from scipy.interpolate import RegularGridInterpolator

from .. import config
from .field import magnitudes_and_directions

logger = logging.getLogger(__name__)


def create_grid_coordinates(resolution, domain_range, dimension=2, centered=False):
    """
    Create sampling coordinates over [-range, range] on every axis.

    Args:
        resolution (int): Number of cells per axis
        domain_range (float): Half-width of the sampled domain
        dimension (int): 2 or 3
        centered (bool): When True, sample ``resolution`` cell centres per
            axis; otherwise the ``resolution + 1`` lattice nodes including
            both edges (a grid symmetric about the origin)

    Returns:
        tuple: (axes, points) where ``axes`` is a tuple of 1-D coordinate
        arrays and ``points`` has shape (n, n[, n], dimension) with
        ``points[i, j]`` at (axes[0][i], axes[1][j])
    """
    if resolution < 1:
        raise ValueError(f"Grid resolution must be positive, got {resolution}")
    step = 2.0 * domain_range / resolution
    if centered:
        axis = -domain_range + step / 2 + step * np.arange(resolution)
    else:
        axis = -domain_range + step * np.arange(resolution + 1)
    axes = (axis,) * dimension
    mesh = np.meshgrid(*axes, indexing='ij')
    points = np.stack(mesh, axis=-1)
    return axes, points


def central_difference(func, points, axis, h=None):
    """
    Central-difference derivative of a scalar function along one axis.

    ``(f(p + h e_axis) - f(p - h e_axis)) / (2h)``

    Args:
        func (callable): Maps points of shape (..., d) to values of shape (...)
        points (np.ndarray): Sample points, shape (..., d)
        axis (int): Axis to differentiate along
        h (float, optional): Step size

    Returns:
        np.ndarray: Derivative estimates, shape (...)
    """
    if h is None:
        h = config.DERIVATIVE_STEP
    points = np.asarray(points, dtype=float)
    offset = np.zeros(points.shape[-1])
    offset[axis] = h
    with np.errstate(all='ignore'):
        return (np.asarray(func(points + offset)) - np.asarray(func(points - offset))) / (2.0 * h)


def normalize_grid(grid, minimum, maximum):
    """
    Map grid values into [0, 1] against (minimum, maximum).

    A constant field (``maximum == minimum``) maps to 0.5 everywhere.
    Non-finite samples come back as NaN.
    """
    grid = np.asarray(grid, dtype=float)
    finite = np.isfinite(grid)
    if maximum == minimum:
        normalized = np.full(grid.shape, 0.5)
    else:
        with np.errstate(all='ignore'):
            normalized = (grid - minimum) / (maximum - minimum)
    normalized[~finite] = np.nan
    return normalized


@dataclass(frozen=True)
class DivergenceGrid:
    """
    A full-grid divergence sample.

    Attributes:
        grid (np.ndarray): Divergence per lattice node, (n, n) or (n, n, n)
        finite (np.ndarray): False where either partial was not finite
        minimum, maximum (float): Range over finite samples only
        axes (tuple): 1-D coordinates of the lattice along each axis
    """
    grid: np.ndarray
    finite: np.ndarray
    minimum: float
    maximum: float
    axes: Tuple[np.ndarray, ...]

    @property
    def dimension(self):
        return self.grid.ndim

    @property
    def is_constant(self):
        return self.maximum == self.minimum

    def normalized(self):
        """Grid values mapped into [0, 1] (0.5 for a constant field, NaN where not finite)."""
        return normalize_grid(self.grid, self.minimum, self.maximum)

    def interpolator(self):
        """
        Build a continuous divergence lookup over the lattice.

        Non-finite samples are filled with 0; points outside the domain
        return NaN.

        Returns:
            RegularGridInterpolator: call with points of shape (n, d)
        """
        values = np.where(self.finite, self.grid, 0.0)
        return RegularGridInterpolator(self.axes, values, bounds_error=False, fill_value=np.nan)


def build_divergence(evaluator, resolution=None, domain_range=None):
    """
    Sample the divergence of a field on a fixed lattice.

    Each node takes two evaluations per axis (central difference); the grid is
    always rebuilt in full.

    Args:
        evaluator (FieldEvaluator): Field to differentiate
        resolution (int, optional): Cells per axis (lattice has resolution + 1 nodes)
        domain_range (float, optional): Half-width of the domain

    Returns:
        DivergenceGrid
    """
    dimension = evaluator.dimension
    if resolution is None:
        resolution = config.DIVERGENCE_GRID_RES if dimension == 2 else config.DIVERGENCE_GRID_RES_3D
    if domain_range is None:
        domain_range = config.domain_range_for(dimension)

    axes, points = create_grid_coordinates(resolution, domain_range, dimension)

    divergence = np.zeros(points.shape[:-1])
    finite = np.ones(points.shape[:-1], dtype=bool)
    for axis in range(dimension):
        partial = central_difference(lambda p: evaluator.component(p, axis), points, axis)
        finite &= np.isfinite(partial)
        divergence = divergence + partial

    if np.any(finite):
        minimum = float(divergence[finite].min())
        maximum = float(divergence[finite].max())
    else:
        minimum = maximum = 0.0
        logger.warning("Divergence grid has no finite samples")

    logger.debug("Divergence grid %s built: min=%.4f max=%.4f", divergence.shape, minimum, maximum)
    return DivergenceGrid(divergence, finite, minimum, maximum, axes)


@dataclass(frozen=True)
class ArrowField:
    """
    Static arrow samples on a coarse grid.

    Attributes:
        positions (np.ndarray): (n, d) sample points
        vectors (np.ndarray): (n, d) field vectors
        magnitudes (np.ndarray): (n,) vector lengths
        directions (np.ndarray): (n, d) unit vectors, NaN below the threshold
        valid (np.ndarray): (n,) False where the sample was not finite
    """
    positions: np.ndarray
    vectors: np.ndarray
    magnitudes: np.ndarray
    directions: np.ndarray
    valid: np.ndarray

    @property
    def drawable(self):
        """Mask of arrows that are finite and have a defined direction."""
        return self.valid & np.all(np.isfinite(self.directions), axis=-1)


def sample_arrows(evaluator, resolution=None, domain_range=None, centered=None):
    """
    Sample the field on the coarse arrow grid.

    Args:
        evaluator (FieldEvaluator): Field to sample
        resolution (int, optional): Cells per axis
        domain_range (float, optional): Half-width of the domain
        centered (bool, optional): Sample cell centres (default for 2D) or
            lattice nodes (default for 3D)

    Returns:
        ArrowField
    """
    dimension = evaluator.dimension
    if resolution is None:
        resolution = config.ARROW_GRID_RES if dimension == 2 else config.ARROW_GRID_RES_3D
    if domain_range is None:
        domain_range = config.domain_range_for(dimension)
    if centered is None:
        centered = dimension == 2

    _, points = create_grid_coordinates(resolution, domain_range, dimension, centered=centered)
    positions = points.reshape(-1, dimension)
    vectors = evaluator.evaluate(positions)
    valid = np.all(np.isfinite(vectors), axis=-1)
    magnitudes, directions = magnitudes_and_directions(np.where(valid[:, np.newaxis], vectors, 0.0))
    return ArrowField(positions, vectors, magnitudes, directions, valid)


def build_magnitude_volume(evaluator, resolution=None, domain_range=None):
    """
    Sample field magnitude on a lattice, normalized by its maximum.

    Non-finite samples are dropped from the returned arrays.

    Returns:
        tuple: (positions (n, d), magnitudes (n,), normalized (n,))
    """
    dimension = evaluator.dimension
    if resolution is None:
        resolution = config.VOLUMETRIC_RES
    if domain_range is None:
        domain_range = config.domain_range_for(dimension)

    _, points = create_grid_coordinates(resolution, domain_range, dimension)
    positions = points.reshape(-1, dimension)
    vectors = evaluator.evaluate(positions)
    valid = np.all(np.isfinite(vectors), axis=-1)
    positions = positions[valid]
    magnitudes = np.linalg.norm(vectors[valid], axis=-1)

    max_magnitude = magnitudes.max() if magnitudes.size else 0.0
    if max_magnitude > 0:
        normalized = magnitudes / max_magnitude
    else:
        normalized = np.zeros_like(magnitudes)
    return positions, magnitudes, normalized
