"""
Field evaluation module for divflow.

Combines the compiled per-axis base field with a set of point sources and
sinks into one effective vector field that can be sampled at a single point or
at a whole array of points in one vectorized call.
"""

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

from .. import config
from ..core.expression import compile_expression

logger = logging.getLogger(__name__)

AXIS_NAMES = ('x', 'y', 'z')


class SourceKind(str, Enum):
    SOURCE = 'source'
    SINK = 'sink'


@dataclass(frozen=True)
class PointSource:
    """
    A point source (strength > 0) or sink (strength < 0).

    Instances are immutable; moving a source replaces it inside its SourceSet.
    """
    id: int
    x: float
    y: float
    strength: float
    kind: SourceKind
    z: float = 0.0

    def coordinates(self, dimension=2):
        return (self.x, self.y, self.z)[:dimension]


class SourceSet:
    """
    The mutable collection of point sources for one view.

    Ids are assigned in increasing order and never reused, even after
    ``clear()``. Every mutation swaps in a new tuple, so a snapshot taken by
    an evaluator is never affected by later edits.
    """

    def __init__(self):
        self._sources = ()
        self._next_id = 0
        self.version = 0

    def __len__(self):
        return len(self._sources)

    def __iter__(self):
        return iter(self._sources)

    def _replace(self, sources):
        self._sources = tuple(sources)
        self.version += 1

    def snapshot(self):
        """Return the current sources as an immutable tuple."""
        return self._sources

    def add(self, x, y, strength=None, kind=None, z=0.0):
        """
        Add a source or sink.

        Args:
            x, y (float): Position
            strength (float, optional): Signed strength; defaults to
                +/- DEFAULT_SOURCE_STRENGTH according to ``kind``
            kind (SourceKind or str, optional): Inferred from the sign of
                ``strength`` when omitted; SOURCE when both are omitted
            z (float): Height, used only by 3D evaluators

        Returns:
            PointSource: the stored source

        Raises:
            ValueError: if ``kind`` contradicts the sign of ``strength``
        """
        if kind is not None:
            kind = SourceKind(kind)
        if strength is None:
            kind = kind or SourceKind.SOURCE
            magnitude = config.DEFAULT_SOURCE_STRENGTH
            strength = magnitude if kind is SourceKind.SOURCE else -magnitude
        else:
            strength = float(strength)
            inferred = SourceKind.SOURCE if strength >= 0 else SourceKind.SINK
            if kind is None:
                kind = inferred
            elif kind is not inferred and strength != 0:
                raise ValueError(f"A {kind.value} needs a {'positive' if kind is SourceKind.SOURCE else 'negative'} "
                                 f"strength, got {strength}")

        source = PointSource(self._next_id, float(x), float(y), strength, kind, float(z))
        self._next_id += 1
        self._replace(self._sources + (source,))
        logger.debug("Added %s %d at (%.3f, %.3f) strength %.3f", kind.value, source.id, x, y, strength)
        return source

    def get(self, source_id):
        for source in self._sources:
            if source.id == source_id:
                return source
        raise KeyError(f"No point source with id {source_id}")

    def move(self, source_id, x, y, z=None):
        """Move a source to a new position and return the updated source."""
        current = self.get(source_id)
        changes = {'x': float(x), 'y': float(y)}
        if z is not None:
            changes['z'] = float(z)
        moved = dataclasses.replace(current, **changes)
        self._replace(moved if s.id == source_id else s for s in self._sources)
        return moved

    def remove(self, source_id):
        """Remove a source by id."""
        removed = self.get(source_id)
        self._replace(s for s in self._sources if s.id != source_id)
        return removed

    def clear(self):
        if self._sources:
            self._replace(())

    def find_near(self, x, y, radius=None):
        """
        Return the source closest to (x, y) within ``radius``, or None.

        Used for picking a source to drag.
        """
        if radius is None:
            radius = config.SOURCE_PICK_RADIUS
        best, best_dist = None, radius
        for source in self._sources:
            dist = np.hypot(source.x - x, source.y - y)
            if dist < best_dist:
                best, best_dist = source, dist
        return best


class FieldEvaluator:
    """
    Effective vector field: base expressions plus point-source contributions.

    Each component is ``base_i(p) + sum(s * (p - q)_i / (|p - q|^2 + eps))``
    over sources with strength ``s`` at position ``q``.

    Args:
        components (sequence of callables): One base function per axis, taking
            one argument per axis (scalars or broadcastable arrays)
        sources (iterable of PointSource): Source set snapshot
        epsilon (float): Regularization added to the squared separation
    """

    def __init__(self, components, sources=(), epsilon=None):
        self.components = tuple(components)
        self.dimension = len(self.components)
        if self.dimension not in (2, 3):
            raise ValueError(f"Vector fields must have 2 or 3 components, got {self.dimension}")
        self.sources = tuple(sources)
        self.epsilon = config.SOURCE_EPSILON if epsilon is None else epsilon
        if self.sources:
            self._source_positions = np.array([s.coordinates(self.dimension) for s in self.sources], dtype=float)
            self._strengths = np.array([s.strength for s in self.sources], dtype=float)
        else:
            self._source_positions = np.zeros((0, self.dimension))
            self._strengths = np.zeros(0)

    @classmethod
    def from_expressions(cls, expressions, sources=(), epsilon=None):
        """Compile one expression per axis and build an evaluator from them."""
        variables = AXIS_NAMES[:len(expressions)]
        components = [compile_expression(expr, variables) for expr in expressions]
        return cls(components, sources, epsilon)

    def _coordinates(self, position):
        pos = np.asarray(position, dtype=float)
        if pos.shape[-1:] != (self.dimension,):
            raise ValueError(f"Expected positions with trailing dimension {self.dimension}, got shape {pos.shape}")
        return [pos[..., i] for i in range(self.dimension)]

    def _component(self, coords, axis):
        value = self.components[axis](*coords)
        if len(self._strengths) == 0:
            return np.asarray(value, dtype=float)
        with np.errstate(all='ignore'):
            total = np.array(value, dtype=float)
            for source_pos, strength in zip(self._source_positions, self._strengths):
                deltas = [coords[k] - source_pos[k] for k in range(self.dimension)]
                r_sq = sum(d * d for d in deltas) + self.epsilon
                total = total + strength * deltas[axis] / r_sq
        return total

    def component(self, position, axis):
        """
        Sample one component of the field.

        Args:
            position (array-like): A point of shape (d,) or points of shape (..., d)
            axis (int): Component index

        Returns:
            float or np.ndarray: shape (...) matching the leading dimensions
        """
        value = self._component(self._coordinates(position), axis)
        if np.ndim(value) == 0:
            return float(value)
        return value

    def evaluate(self, position):
        """
        Sample the full vector field.

        Args:
            position (array-like): A point of shape (d,) or points of shape (..., d)

        Returns:
            np.ndarray: Vectors with the same shape as ``position``
        """
        coords = self._coordinates(position)
        components = [self._component(coords, axis) for axis in range(self.dimension)]
        shape = np.broadcast_shapes(*(np.shape(c) for c in components), np.shape(coords[0]))
        return np.stack([np.broadcast_to(c, shape) for c in components], axis=-1)

    __call__ = evaluate


def magnitudes_and_directions(vectors, threshold=None):
    """
    Split vectors into magnitudes and unit directions.

    Directions are NaN where the magnitude does not exceed ``threshold``,
    so renderers can skip arrows that would have no meaningful heading.

    Args:
        vectors (np.ndarray): Shape (..., d)
        threshold (float, optional): Minimum magnitude for a direction

    Returns:
        tuple: (magnitudes of shape (...), directions of shape (..., d))
    """
    if threshold is None:
        threshold = config.MIN_DIRECTION_MAGNITUDE
    vectors = np.asarray(vectors, dtype=float)
    magnitudes = np.linalg.norm(vectors, axis=-1)
    directions = np.full(vectors.shape, np.nan)
    mask = magnitudes > threshold
    directions[mask] = vectors[mask] / magnitudes[mask][..., np.newaxis]
    return magnitudes, directions
