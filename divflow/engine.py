"""
Field engine for divflow.

The engine is the single owner of everything a view needs between frames:
the per-axis expressions and their compiled functions, the point-source set,
the tracer ensemble and the last divergence / arrow snapshot. Hosts mutate it
through the methods below and drive it by calling ``step()`` once per frame.

Input changes (expressions, sources, grid sizes) only mark the engine dirty;
the next ``recompute()`` or ``step()`` rebuilds every derived grid in full
before any particle moves, so a tick never sees a half-applied change.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional

import numpy as np

from . import config
from .core import presets
from .core.expression import ExpressionCompiler
from .physics.field import AXIS_NAMES, FieldEvaluator, SourceSet
from .physics.grid_computation import (
    ArrowField,
    DivergenceGrid,
    build_divergence,
    build_magnitude_volume,
    sample_arrows,
)
from .physics.particle_system import ParticleIntegrator
from .visualization.color_system import Palette, divergence_rgba, magnitude_colors

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FieldSnapshot:
    """Derived outputs of one recompute, replaced wholesale on every change."""
    evaluator: FieldEvaluator
    divergence: DivergenceGrid
    arrows: ArrowField
    errors: Dict[str, str]


class FieldEngine:
    """
    Explicit state owner for one 2D or 3D field view.

    Args:
        dimension (int): 2 or 3
        domain_range (float, optional): Half-width of the sampled domain
        particle_count (int, optional): Number of tracers
        rng (optional): Random source handed to the particle integrator
    """

    def __init__(self, dimension=2, domain_range=None, particle_count=None, rng=None):
        if dimension not in (2, 3):
            raise ValueError(f"Unsupported dimension: {dimension}")
        self.dimension = dimension
        self.axes = AXIS_NAMES[:dimension]
        self.domain_range = config.domain_range_for(dimension) if domain_range is None else float(domain_range)

        self.grid_resolution = config.DIVERGENCE_GRID_RES if dimension == 2 else config.DIVERGENCE_GRID_RES_3D
        self.arrow_resolution = config.ARROW_GRID_RES if dimension == 2 else config.ARROW_GRID_RES_3D

        self.playing = True
        self.speed = config.DEFAULT_SPEED
        self.palette = Palette(config.DEFAULT_PALETTE)
        self.pulsing = config.PULSING_ENABLED
        self.elapsed = 0.0
        self.frame = 0

        self.compiler = ExpressionCompiler(self.axes)
        self.expressions = dict(zip(self.axes, (config.DEFAULT_FX, config.DEFAULT_FY, config.DEFAULT_FZ)))
        self.sources = SourceSet()
        self.particles = ParticleIntegrator(dimension, rng=rng)
        self.particles.initialize(particle_count, self.domain_range)

        self._snapshot = None
        self._dirty = True
        self._sources_version = self.sources.version

    # -- inputs ---------------------------------------------------------------

    def set_expressions(self, fx, fy, fz=None):
        """
        Replace the per-axis expressions.

        Returns:
            dict: axis -> compile error message for axes that failed
        """
        values = (fx, fy, fz)[:self.dimension]
        if self.dimension == 3 and fz is None:
            values = (fx, fy, self.expressions['z'])
        for axis, source in zip(self.axes, values):
            if self.expressions.get(axis) != source:
                self.expressions[axis] = source
                self._dirty = True
        return self.recompute().errors

    @property
    def errors(self):
        return self.recompute().errors

    def apply_preset(self, name):
        """Load a field preset by name."""
        preset = presets.get_field_preset(name, self.dimension)
        logger.info("Applying preset '%s'", preset.name)
        return self.set_expressions(*preset.expressions)

    def apply_physics_preset(self, name):
        """Replace sources and zero the base field with a physics preset (2D only)."""
        if self.dimension != 2:
            raise ValueError("Physics presets are only defined for 2D views")
        preset = presets.get_physics_preset(name)
        logger.info("Applying physics preset '%s'", preset.name)
        self.sources.clear()
        for spec in preset.sources:
            self.sources.add(spec.x, spec.y, spec.strength)
        return self.set_expressions(preset.fx, preset.fy)

    def add_source(self, x, y, strength=None, kind=None, z=0.0):
        return self.sources.add(x, y, strength, kind, z)

    def move_source(self, source_id, x, y, z=None):
        return self.sources.move(source_id, x, y, z)

    def remove_source(self, source_id):
        return self.sources.remove(source_id)

    def clear_sources(self):
        self.sources.clear()

    def set_grid_resolution(self, resolution):
        if int(resolution) < 1:
            raise ValueError(f"Grid resolution must be positive, got {resolution}")
        self.grid_resolution = int(resolution)
        self._dirty = True

    def set_arrow_resolution(self, resolution):
        if int(resolution) < 1:
            raise ValueError(f"Arrow resolution must be positive, got {resolution}")
        self.arrow_resolution = int(resolution)
        self._dirty = True

    # -- animation controls ---------------------------------------------------

    def play(self):
        self.playing = True

    def pause(self):
        self.playing = False

    def toggle(self):
        self.playing = not self.playing
        return self.playing

    def set_speed(self, speed):
        self.speed = config.clamp_speed(speed)
        return self.speed

    def set_particle_count(self, count):
        self.particles.initialize(int(count), self.domain_range)

    def set_palette(self, palette):
        self.palette = Palette(palette)

    def set_pulsing(self, enabled):
        self.pulsing = bool(enabled)

    # -- recomputation --------------------------------------------------------

    @property
    def dirty(self):
        return self._dirty or self.sources.version != self._sources_version

    def recompute(self, force=False):
        """
        Rebuild evaluator, divergence grid and arrow samples if any input changed.

        Returns:
            FieldSnapshot: the current derived outputs
        """
        if self._snapshot is not None and not force and not self.dirty:
            return self._snapshot

        components = [self.compiler.compile(axis, self.expressions[axis]) for axis in self.axes]
        errors = self.compiler.errors
        for axis, message in errors.items():
            logger.warning("F%s = %r did not compile: %s", axis, self.expressions[axis], message)

        self._sources_version = self.sources.version
        evaluator = FieldEvaluator(components, self.sources.snapshot())
        divergence = build_divergence(evaluator, self.grid_resolution, self.domain_range)
        arrows = sample_arrows(evaluator, self.arrow_resolution, self.domain_range)

        self._snapshot = FieldSnapshot(evaluator, divergence, arrows, errors)
        self._dirty = False
        logger.debug("Recomputed field: %d sources, divergence in [%.3f, %.3f]",
                     len(evaluator.sources), divergence.minimum, divergence.maximum)
        return self._snapshot

    def step(self, dt=None):
        """
        One animation tick.

        Applies pending input changes, then advances particles and the pulse
        clock when playing. Paused ticks leave particle state untouched.

        Returns:
            FieldSnapshot
        """
        if dt is None:
            dt = config.FRAME_DT
        snapshot = self.recompute()
        if self.playing:
            self.particles.step(snapshot.evaluator, dt, self.speed)
            self.elapsed += dt
            self.frame += 1
        return snapshot

    # -- outputs --------------------------------------------------------------

    @property
    def evaluator(self):
        return self.recompute().evaluator

    def divergence(self):
        return self.recompute().divergence

    def arrows(self):
        return self.recompute().arrows

    def particles_snapshot(self):
        """(positions, life) copies for the renderer."""
        return self.particles.snapshot()

    def heatmap_rgba(self):
        """Heat-map colors of the divergence grid with the current palette and pulse."""
        return divergence_rgba(self.divergence(), self.palette, self.elapsed,
                               self.pulsing and self.playing)

    def magnitude_volume(self, resolution=None):
        """
        Volumetric magnitude samples for 3D rendering.

        Returns:
            tuple: (positions (n, d), normalized magnitude (n,), rgb (n, 3))
        """
        positions, _, normalized = build_magnitude_volume(self.evaluator, resolution, self.domain_range)
        return positions, normalized, magnitude_colors(normalized)

    def summary(self) -> Dict[str, Optional[float]]:
        """Scalar facts about the current field, e.g. for logging."""
        snapshot = self.recompute()
        return {
            'dimension': self.dimension,
            'sources': len(snapshot.evaluator.sources),
            'divergence_min': snapshot.divergence.minimum,
            'divergence_max': snapshot.divergence.maximum,
            'mean_arrow_magnitude': float(np.mean(snapshot.arrows.magnitudes[snapshot.arrows.valid]))
            if np.any(snapshot.arrows.valid) else None,
            'particles': len(self.particles),
        }
