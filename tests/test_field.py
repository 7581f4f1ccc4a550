"""
Tests for point sources and the combined field evaluator.
"""

import numpy as np
import pytest

from divflow import config
from divflow.core.presets import get_physics_preset
from divflow.physics.field import (
    FieldEvaluator,
    PointSource,
    SourceKind,
    SourceSet,
    magnitudes_and_directions,
)


def dipole_sources(scale=1.0):
    sources = SourceSet()
    for spec in get_physics_preset("Electric Dipole").sources:
        sources.add(spec.x, spec.y, spec.strength * scale)
    return sources


# ─────────────────────────────────────────────────────────────────────
# SourceSet
# ─────────────────────────────────────────────────────────────────────

class TestSourceSet:

    def test_ids_are_monotonic_and_never_reused(self):
        sources = SourceSet()
        a = sources.add(0.0, 0.0)
        b = sources.add(1.0, 0.0)
        sources.remove(b.id)
        sources.clear()
        c = sources.add(2.0, 0.0)
        assert a.id < b.id < c.id

    def test_default_strength_follows_kind(self):
        sources = SourceSet()
        source = sources.add(0.0, 0.0)
        sink = sources.add(1.0, 1.0, kind='sink')
        assert source.kind is SourceKind.SOURCE
        assert source.strength == config.DEFAULT_SOURCE_STRENGTH
        assert sink.kind is SourceKind.SINK
        assert sink.strength == -config.DEFAULT_SOURCE_STRENGTH

    def test_kind_inferred_from_sign(self):
        sources = SourceSet()
        assert sources.add(0.0, 0.0, strength=-3.0).kind is SourceKind.SINK
        assert sources.add(0.0, 0.0, strength=3.0).kind is SourceKind.SOURCE

    def test_contradicting_kind_rejected(self):
        with pytest.raises(ValueError):
            SourceSet().add(0.0, 0.0, strength=-1.0, kind=SourceKind.SOURCE)

    def test_move_replaces_position_only(self):
        sources = SourceSet()
        original = sources.add(0.0, 0.0, strength=2.5)
        moved = sources.move(original.id, 1.0, -1.0)
        assert (moved.x, moved.y) == (1.0, -1.0)
        assert moved.strength == 2.5
        assert sources.get(original.id) == moved

    def test_snapshot_is_unaffected_by_later_mutation(self):
        sources = SourceSet()
        source = sources.add(0.0, 0.0)
        before = sources.snapshot()
        sources.move(source.id, 2.0, 2.0)
        sources.add(1.0, 1.0)
        assert len(before) == 1
        assert (before[0].x, before[0].y) == (0.0, 0.0)

    def test_unknown_id_raises(self):
        sources = SourceSet()
        with pytest.raises(KeyError):
            sources.remove(42)
        with pytest.raises(KeyError):
            sources.move(42, 0.0, 0.0)

    def test_version_bumps_on_every_mutation(self):
        sources = SourceSet()
        versions = [sources.version]
        s = sources.add(0.0, 0.0)
        versions.append(sources.version)
        sources.move(s.id, 1.0, 1.0)
        versions.append(sources.version)
        sources.remove(s.id)
        versions.append(sources.version)
        assert versions == sorted(set(versions))

    def test_find_near_picks_closest_within_radius(self):
        sources = SourceSet()
        far = sources.add(1.0, 0.0)
        near = sources.add(0.1, 0.0)
        assert sources.find_near(0.0, 0.0) == near
        assert sources.find_near(0.95, 0.0) == far
        assert sources.find_near(-2.0, -2.0) is None


# ─────────────────────────────────────────────────────────────────────
# FieldEvaluator
# ─────────────────────────────────────────────────────────────────────

class TestFieldEvaluator:

    def test_empty_source_set_reduces_to_base_field(self):
        evaluator = FieldEvaluator.from_expressions(("-y", "x"))
        np.testing.assert_allclose(evaluator.evaluate([1.0, 2.0]), [-2.0, 1.0])

    def test_single_source_matches_formula(self):
        sources = SourceSet()
        sources.add(1.0, 0.0, strength=2.0)
        evaluator = FieldEvaluator.from_expressions(("0", "0"), sources.snapshot())
        x, y = 2.0, 1.0
        dx, dy = x - 1.0, y - 0.0
        r_sq = dx * dx + dy * dy + config.SOURCE_EPSILON
        np.testing.assert_allclose(evaluator.evaluate([x, y]), [2.0 * dx / r_sq, 2.0 * dy / r_sq])

    def test_finite_at_source_position(self):
        sources = SourceSet()
        sources.add(0.5, 0.5, strength=5.0)
        evaluator = FieldEvaluator.from_expressions(("0", "0"), sources.snapshot())
        vector = evaluator.evaluate([0.5, 0.5])
        assert np.all(np.isfinite(vector))
        np.testing.assert_allclose(vector, [0.0, 0.0])

    def test_dipole_at_origin_is_finite_nonzero_and_linear(self):
        single = FieldEvaluator.from_expressions(("0", "0"), dipole_sources().snapshot())
        double = FieldEvaluator.from_expressions(("0", "0"), dipole_sources(2.0).snapshot())

        vector = single.evaluate([0.0, 0.0])
        assert np.all(np.isfinite(vector))
        assert np.linalg.norm(vector) > 0
        # source at (-1, 0) pushes and sink at (1, 0) pulls: both toward +x
        assert vector[0] > 0
        assert vector[1] == pytest.approx(0.0)
        np.testing.assert_allclose(double.evaluate([0.0, 0.0]), 2.0 * vector)

    def test_array_evaluation_matches_point_evaluation(self):
        evaluator = FieldEvaluator.from_expressions(("sin(y)", "x*y"), dipole_sources().snapshot())
        points = np.random.default_rng(0).uniform(-3, 3, size=(20, 2))
        batch = evaluator.evaluate(points)
        assert batch.shape == (20, 2)
        for point, vector in zip(points, batch):
            np.testing.assert_allclose(evaluator.evaluate(point), vector)

    def test_grid_shaped_positions(self):
        evaluator = FieldEvaluator.from_expressions(("1", "0"))
        points = np.zeros((4, 5, 2))
        result = evaluator.evaluate(points)
        assert result.shape == (4, 5, 2)
        np.testing.assert_allclose(result[..., 0], 1.0)

    def test_component_matches_evaluate(self):
        evaluator = FieldEvaluator.from_expressions(("x - y", "x + y"), dipole_sources().snapshot())
        point = np.array([0.3, -0.7])
        vector = evaluator.evaluate(point)
        assert evaluator.component(point, 0) == pytest.approx(vector[0])
        assert evaluator.component(point, 1) == pytest.approx(vector[1])

    def test_three_dimensional_sources_use_z(self):
        source = PointSource(0, 0.0, 0.0, 1.0, SourceKind.SOURCE, z=1.0)
        evaluator = FieldEvaluator.from_expressions(("0", "0", "0"), [source])
        vector = evaluator.evaluate([0.0, 0.0, 0.0])
        assert vector[2] < 0
        np.testing.assert_allclose(vector[:2], [0.0, 0.0])

    def test_wrong_position_shape_rejected(self):
        evaluator = FieldEvaluator.from_expressions(("x", "y"))
        with pytest.raises(ValueError):
            evaluator.evaluate([1.0, 2.0, 3.0])

    def test_compile_failure_component_is_zero(self):
        evaluator = FieldEvaluator.from_expressions(("x +", "1"))
        np.testing.assert_allclose(evaluator.evaluate([2.0, 2.0]), [0.0, 1.0])


class TestMagnitudesAndDirections:

    def test_unit_directions_above_threshold(self):
        magnitudes, directions = magnitudes_and_directions(np.array([[3.0, 4.0], [0.0, 0.0], [0.005, 0.0]]))
        np.testing.assert_allclose(magnitudes, [5.0, 0.0, 0.005])
        np.testing.assert_allclose(directions[0], [0.6, 0.8])
        assert np.all(np.isnan(directions[1]))
        assert np.all(np.isnan(directions[2]))
