"""
Particle system module for divflow.

This module handles tracer physics using simple Euler integration, life decay
and in-place respawning of particles that expire or leave the domain.
"""

import logging

import numpy as np

from .. import config
from .field import magnitudes_and_directions

logger = logging.getLogger(__name__)


def euler_step(pos, dt, get_vel_func):
    """
    Simple Euler integration step.

    Components of the returned position are only advanced for particles whose
    sampled velocity is finite in every component.

    Args:
        pos (np.ndarray): Current positions, shape (N, d)
        dt (float): Time step (already scaled by any speed multiplier)
        get_vel_func (callable): Function to get velocity at positions

    Returns:
        tuple: (new_position, velocity)
    """
    velocity = get_vel_func(pos)
    finite = np.all(np.isfinite(velocity), axis=-1)

    new_pos = pos.copy()
    new_pos[finite] += velocity[finite] * dt

    return new_pos, velocity


def respawn_mask(positions, life, domain_range):
    """Particles that have expired or left [-range, range] on any axis."""
    return (life <= 0) | np.any(np.abs(positions) > domain_range, axis=-1)


def particle_alpha(life, velocity):
    """
    Display opacity of each tracer: ``life * min(1, 0.3 * |v| + 0.5)``.

    Args:
        life (np.ndarray): (N,) remaining life
        velocity (np.ndarray): (N, d) sampled velocities

    Returns:
        np.ndarray: (N,) opacity in [0, 1]
    """
    magnitude = np.linalg.norm(np.nan_to_num(velocity), axis=-1)
    return np.clip(life * np.minimum(1.0, magnitude * 0.3 + 0.5), 0.0, 1.0)


class ParticleIntegrator:
    """
    Owns an ensemble of tracer particles advected through a vector field.

    Particles are never allocated or freed after ``initialize``: a particle
    that dies or leaves the domain is respawned in place at a uniformly random
    position with its life reset to 1.

    Args:
        dimension (int): 2 or 3
        decay_rate (float, optional): Life lost per step at speed 1
        rng (optional): Random source with numpy ``Generator`` semantics
            (``uniform(low, high, size)`` and ``random(size)``); inject a
            seeded or scripted one for reproducible respawns
    """

    def __init__(self, dimension=2, decay_rate=None, rng=None):
        if dimension not in (2, 3):
            raise ValueError(f"Unsupported dimension: {dimension}")
        self.dimension = dimension
        self.decay_rate = config.life_decay_for(dimension) if decay_rate is None else decay_rate
        self.rng = rng if rng is not None else np.random.default_rng()
        self.domain_range = config.domain_range_for(dimension)
        self.positions = np.zeros((0, dimension))
        self.life = np.zeros(0)
        self.respawn_count = 0

    def __len__(self):
        return len(self.life)

    def _random_positions(self, count):
        r = self.domain_range
        return np.asarray(self.rng.uniform(-r, r, size=(count, self.dimension)), dtype=float)

    def initialize(self, count=None, domain_range=None):
        """
        (Re)populate the ensemble.

        Initial life values are spread over (0, 1] so that respawns are
        staggered rather than happening all on the same tick.

        Args:
            count (int, optional): Number of particles
            domain_range (float, optional): Half-width of the spawn domain
        """
        if count is None:
            count = config.DEFAULT_NUM_PARTICLES if self.dimension == 2 else config.DEFAULT_NUM_PARTICLES_3D
        if count < 0:
            raise ValueError(f"Particle count must be non-negative, got {count}")
        if domain_range is not None:
            self.domain_range = float(domain_range)

        self.positions = self._random_positions(count)
        self.life = 1.0 - np.asarray(self.rng.random(count), dtype=float)
        self.respawn_count = 0
        logger.debug("Initialized %d particles in [-%.2f, %.2f]^%d",
                     count, self.domain_range, self.domain_range, self.dimension)

    def step(self, evaluator, dt=None, speed_multiplier=1.0):
        """
        Advance every particle by one tick.

        Per particle: sample the field, advance by Euler if the velocity is
        finite, decay life by ``decay_rate * speed_multiplier``, then respawn
        if life <= 0 or any coordinate lies outside [-range, range].

        Args:
            evaluator (FieldEvaluator or callable): Maps (N, d) positions to (N, d) vectors
            dt (float, optional): Tick length in seconds
            speed_multiplier (float): Animation speed factor

        Returns:
            np.ndarray: The velocities sampled at the start of the tick
        """
        if dt is None:
            dt = config.FRAME_DT
        if len(self.life) == 0:
            return np.zeros((0, self.dimension))

        new_pos, velocity = euler_step(self.positions, dt * speed_multiplier, evaluator)
        self.positions[:] = new_pos
        self.life -= self.decay_rate * speed_multiplier

        self.reinitialize_particles()
        return velocity

    def reinitialize_particles(self):
        """Respawn particles that have expired or left the domain."""
        mask = respawn_mask(self.positions, self.life, self.domain_range)
        count = int(np.count_nonzero(mask))
        if count:
            self.positions[mask] = self._random_positions(count)
            self.life[mask] = 1.0
            self.respawn_count += count
        return mask

    def velocities(self, evaluator):
        """Sample the field at the current particle positions."""
        return np.asarray(evaluator(self.positions), dtype=float)

    def arrows(self, evaluator):
        """
        Derived tracer arrows for the current state.

        Returns:
            tuple: (magnitudes (N,), directions (N, d) with NaN where the
            speed is at or below the direction threshold, alpha (N,))
        """
        velocity = self.velocities(evaluator)
        magnitudes, directions = magnitudes_and_directions(velocity)
        return magnitudes, directions, particle_alpha(self.life, velocity)

    def snapshot(self):
        """Copies of positions and life for a consumer that must not see later ticks."""
        return self.positions.copy(), self.life.copy()
