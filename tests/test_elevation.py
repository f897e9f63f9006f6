"""Tests for elevation generation."""

import math

import numpy as np
import pytest

from py_planetgen.core.elevation import (
    ElevationEngine, ElevationOptions, colliding_elevation, diverging_elevation, dormant_elevation,
    generate_elevation, shearing_elevation, subducting_elevation, superducting_elevation
)
from py_planetgen.core.mesh_builder import build_mesh
from py_planetgen.core.plates import Plate, assign_plates
from py_planetgen.core.topology import derive_topology
from py_planetgen.core.xorshift_prng import make_prng

CURVES = [
    colliding_elevation, superducting_elevation, subducting_elevation,
    diverging_elevation, shearing_elevation, dormant_elevation,
]


@pytest.fixture(scope="module")
def mesh():
    return build_mesh(5, 0.1, seed="elevation-test")


@pytest.fixture(scope="module")
def elevated(mesh):
    topology = derive_topology(mesh, 1000.0)
    plates = assign_plates(topology, 8, 0.6, make_prng("elevation"))
    generate_elevation(topology, plates)
    return topology, plates


class TestElevationCurves:
    """Test the falloff curves."""

    @pytest.mark.parametrize("curve", CURVES)
    def test_starts_at_boundary_elevation(self, curve):
        assert math.isclose(curve(0.0, 10.0, 0.9, 0.2, 0.5, 0.1), 0.9)

    @pytest.mark.parametrize("curve", CURVES)
    def test_ends_at_plate_elevation(self, curve):
        assert math.isclose(curve(10.0, 0.0, 0.9, 0.2, 0.5, 0.1), 0.2, abs_tol=1e-12)

    @pytest.mark.parametrize("curve", CURVES)
    def test_unreachable_root_keeps_boundary_elevation(self, curve):
        assert math.isclose(curve(5.0, math.inf, 0.9, 0.2, 0.5, 0.1), 0.9)

    def test_dormant_midpoint(self):
        assert math.isclose(dormant_elevation(1.0, 1.0, 1.0, 0.0, 0.0, 0.0), 0.5)

    def test_colliding_flat_past_midpoint(self):
        assert colliding_elevation(6.0, 4.0, 0.9, 0.2, 0.5, 0.1) == 0.2


class TestSinglePlate:
    """Test a planet with one plate and no boundaries."""

    def test_elevation_equals_plate(self, mesh):
        topology = derive_topology(mesh, 1000.0)
        plates = assign_plates(topology, 1, 0.5, make_prng(5))
        generate_elevation(topology, plates)

        assert not topology.borders.between_plates.any()
        np.testing.assert_allclose(topology.corners.elevation, plates[0].elevation)
        np.testing.assert_allclose(topology.tiles.elevation, plates[0].elevation)


class TestBoundaries:
    """Test boundary detection and stress."""

    def test_border_flags(self, elevated):
        topology, _ = elevated
        plates_of = np.array(topology.tiles.plate)[topology.borders.tiles]
        np.testing.assert_array_equal(topology.borders.between_plates, plates_of[:, 0] != plates_of[:, 1])

    def test_corner_flags(self, elevated):
        topology, _ = elevated
        expected = topology.borders.between_plates[topology.corners.borders].any(axis=1)
        np.testing.assert_array_equal(topology.corners.between_plates, expected)

    def test_boundary_corners_touch_two_or_three_borders(self, elevated):
        topology, _ = elevated
        counts = topology.borders.between_plates[topology.corners.borders].sum(axis=1)
        assert set(counts[topology.corners.between_plates]) <= {2, 3}

    def test_stress_is_bounded(self, elevated):
        topology, _ = elevated
        assert np.all(np.abs(topology.corners.pressure) < 1)
        assert np.all(np.abs(topology.corners.shear) < 1)
        interior = ~topology.corners.between_plates
        assert np.all(topology.corners.pressure[interior] == 0)

    def test_squash(self, mesh):
        topology = derive_topology(mesh, 1000.0)
        plates = assign_plates(topology, 2, 0.5, make_prng(1))
        engine = ElevationEngine(topology, plates)
        assert engine._squash(0.0) == 0.0
        assert 0 < engine._squash(10.0) < engine._squash(100.0) < 1
        assert engine._squash(-10.0) == pytest.approx(-engine._squash(10.0))


class TestElevationField:
    """Test the resulting elevations."""

    def test_every_corner_elevated(self, elevated):
        topology, _ = elevated
        assert np.all(np.isfinite(topology.corners.elevation))

    def test_boundary_distance(self, elevated):
        topology, _ = elevated
        corners = topology.corners
        assert np.all(corners.distance_to_plate_boundary[corners.between_plates] == 0)
        assert np.all(corners.distance_to_plate_boundary[~corners.between_plates] > 0)

    def test_tile_elevation_is_corner_mean(self, elevated):
        topology, _ = elevated
        for t in range(topology.tile_count):
            expected = topology.corners.elevation[topology.tiles.corners[t]].mean()
            assert math.isclose(topology.tiles.elevation[t], expected, abs_tol=1e-12)

    def test_interior_settles_to_plate_elevation(self, elevated):
        """Plate roots sit exactly at their plate's elevation."""
        topology, plates = elevated
        for plate in plates:
            assert math.isclose(topology.corners.elevation[plate.root], plate.elevation, abs_tol=1e-9)

    def test_aggregates_filled(self, elevated):
        topology, plates = elevated
        assert all(p.area > 0 for p in plates)
        assert np.isclose(sum(p.area for p in plates), topology.tiles.area.sum())


def _plate(elevation=0.2, oceanic=False, root=0, drift_axis=(0.0, 0.0, 1.0), drift_rate=0.0, spin_rate=0.0):
    return Plate(
        color=0,
        drift_axis=np.array(drift_axis),
        drift_rate=drift_rate,
        spin_rate=spin_rate,
        elevation=elevation,
        oceanic=oceanic,
        root=root,
    )


def _hemispheres(mesh, drift_rate):
    """Split tiles at x = 0; the x > 0 plate drifts about the z axis and the other is still."""
    topology = derive_topology(mesh, 1000.0)
    x = topology.tiles.positions[:, 0]
    topology.tiles.plate = [0 if value > 0 else 1 for value in x]
    corner_x = topology.corners.positions[:, 0]
    plates = [
        _plate(root=int(np.argmax(corner_x)), drift_rate=drift_rate),
        _plate(root=int(np.argmin(corner_x))),
    ]
    engine = ElevationEngine(topology, plates)
    engine.identify_boundaries()
    engine.calculate_boundary_stress()
    return topology, engine


class TestPressureSign:
    """Test the pressure sign against hand-set plate motion."""

    def _boundary_latitudes(self, topology):
        corners = np.flatnonzero(topology.corners.between_plates)
        y = topology.corners.positions[corners, 1] / topology.radius
        keep = np.abs(y) > 0.4
        return corners[keep], y[keep]

    def test_converging_side_has_positive_pressure(self, mesh):
        # Drifting about +z moves the x > 0 plate toward -x where y > 0
        topology, _ = _hemispheres(mesh, math.pi / 30)
        corners, y = self._boundary_latitudes(topology)
        pressure = topology.corners.pressure[corners]
        assert len(corners) > 0
        assert np.mean(np.sign(pressure) == np.sign(y)) > 0.9
        assert pressure[y > 0].mean() > 0 > pressure[y < 0].mean()

    def test_reversed_drift_flips_pressure(self, mesh):
        topology, _ = _hemispheres(mesh, -math.pi / 30)
        corners, y = self._boundary_latitudes(topology)
        pressure = topology.corners.pressure[corners]
        assert np.mean(np.sign(pressure) == -np.sign(y)) > 0.9
        assert pressure[y > 0].mean() < 0 < pressure[y < 0].mean()

    def test_still_plates_have_no_stress(self, mesh):
        topology, _ = _hemispheres(mesh, 0.0)
        assert np.all(topology.corners.pressure == 0)
        assert np.all(topology.corners.shear == 0)

    def test_pressure_follows_relative_speed(self, mesh):
        slow, _ = _hemispheres(mesh, math.pi / 60)
        fast, _ = _hemispheres(mesh, math.pi / 30)
        corners, _ = self._boundary_latitudes(fast)
        assert np.all(np.abs(fast.corners.pressure[corners]) > np.abs(slow.corners.pressure[corners]))


class TestThreePlateStress:
    """Test stress where three plates meet at one corner."""

    @pytest.fixture(scope="class")
    def junctions(self, mesh):
        topology = derive_topology(mesh, 1000.0)
        plates = assign_plates(topology, 8, 0.6, make_prng("junctions"))
        engine = ElevationEngine(topology, plates)
        engine.identify_boundaries()
        engine.calculate_boundary_stress()
        found = [
            c for c in range(topology.corner_count)
            if len({topology.tiles.plate[t] for t in topology.corners.tiles[c]}) == 3
        ]
        return topology, plates, engine, found

    def test_junctions_exist(self, junctions):
        _, _, engine, found = junctions
        assert found
        assert all(engine._inner_border_index(c) is None for c in found)

    def test_stress_is_mean_over_borders(self, junctions):
        topology, plates, engine, found = junctions
        corners = topology.corners
        for c in found:
            tiles = corners.tiles[c]
            position = corners.positions[c]
            pairs = []
            for k in range(3):
                first = plates[topology.tiles.plate[tiles[(k + 1) % 3]]]
                second = plates[topology.tiles.plate[tiles[(k + 2) % 3]]]
                pairs.append(engine._stress(
                    c, first, second,
                    corners.positions[corners.corners[c][k]] - position,
                    topology.tiles.positions[tiles[(k + 2) % 3]] - position,
                ))
            assert math.isclose(corners.pressure[c], sum(p for p, _ in pairs) / 3, abs_tol=1e-12)
            assert math.isclose(corners.shear[c], sum(s for _, s in pairs) / 3, abs_tol=1e-12)

    def test_shared_motion_cancels(self, mesh):
        topology = derive_topology(mesh, 1000.0)
        assigned = assign_plates(topology, 8, 0.6, make_prng("junctions"))
        plates = [_plate(root=p.root, drift_axis=(0.0, 1.0, 0.0), drift_rate=0.05) for p in assigned]
        engine = ElevationEngine(topology, plates)
        engine.identify_boundaries()
        engine.calculate_boundary_stress()
        np.testing.assert_allclose(topology.corners.pressure, 0.0, atol=1e-12)
        np.testing.assert_allclose(topology.corners.shear, 0.0, atol=1e-12)


class TestBlur:
    """Test blurring of boundary stress."""

    def test_single_pass_weights(self, mesh):
        topology = derive_topology(mesh, 1000.0)
        plates = assign_plates(topology, 6, 0.5, make_prng("blur"))
        engine = ElevationEngine(topology, plates, ElevationOptions(blur_iterations=1))
        engine.identify_boundaries()

        corners = topology.corners
        between = topology.borders.between_plates
        pressure = np.where(corners.between_plates, np.linspace(-1, 1, topology.corner_count), 0.0)
        shear = np.where(corners.between_plates, np.linspace(1, 0, topology.corner_count), 0.0)
        corners.pressure = pressure.copy()
        corners.shear = shear.copy()
        engine.blur_boundary_stress()

        for c in range(topology.corner_count):
            adjacent = [corners.corners[c][j] for j in range(3) if between[corners.borders[c][j]]]
            if not corners.between_plates[c] or not adjacent:
                assert corners.pressure[c] == pressure[c]
                continue
            expected_pressure = 0.4 * pressure[c] + 0.6 * pressure[adjacent].mean()
            expected_shear = 0.4 * shear[c] + 0.6 * shear[adjacent].mean()
            assert math.isclose(corners.pressure[c], expected_pressure, abs_tol=1e-12)
            assert math.isclose(corners.shear[c], expected_shear, abs_tol=1e-12)


class TestBoundaryElevation:
    """Test the elevation and curve chosen at a boundary corner."""

    @pytest.fixture(scope="class")
    def engine(self, mesh):
        topology = derive_topology(mesh, 1000.0)
        return ElevationEngine(topology, assign_plates(topology, 2, 0.5, make_prng(1)))

    def _select(self, engine, pressure, shear, plates):
        corners = engine.topology.corners
        corners.pressure = np.zeros(engine.topology.corner_count)
        corners.shear = np.zeros(engine.topology.corner_count)
        corners.pressure[0] = pressure
        corners.shear[0] = shear
        return engine._boundary_elevation(0, plates)

    @pytest.mark.parametrize("own_oceanic,neighbour_oceanic,expected", [
        (False, False, colliding_elevation),
        (True, True, colliding_elevation),
        (False, True, subducting_elevation),
        (True, False, superducting_elevation),
    ])
    def test_converging(self, engine, own_oceanic, neighbour_oceanic, expected):
        plates = [_plate(-0.5 if own_oceanic else 0.2, own_oceanic),
                  _plate(-0.6 if neighbour_oceanic else 0.4, neighbour_oceanic)]
        elevation, curve = self._select(engine, 0.5, 0.9, plates)
        assert curve is expected
        assert math.isclose(elevation, max(p.elevation for p in plates) + 0.5)

    def test_diverging(self, engine):
        elevation, curve = self._select(engine, -0.5, 0.9, [_plate(0.2), _plate(0.4)])
        assert curve is diverging_elevation
        assert math.isclose(elevation, 0.4 + 0.5 * 0.25)

    def test_shearing(self, engine):
        elevation, curve = self._select(engine, 0.2, 0.5, [_plate(-0.5, True), _plate(0.1)])
        assert curve is shearing_elevation
        assert math.isclose(elevation, 0.1 + 0.5 * 0.125)

    @pytest.mark.parametrize("pressure,shear", [(0.0, 0.0), (0.3, 0.3), (-0.3, 0.1)])
    def test_dormant(self, engine, pressure, shear):
        elevation, curve = self._select(engine, pressure, shear, [_plate(0.2), _plate(-0.4, True)])
        assert curve is dormant_elevation
        assert math.isclose(elevation, -0.1)

    def test_three_plates_use_highest(self, engine):
        plates = [_plate(0.2), _plate(0.4), _plate(-0.6, True)]
        elevation, _ = self._select(engine, 0.5, 0.0, plates)
        assert math.isclose(elevation, 0.9)
        elevation, _ = self._select(engine, 0.0, 0.0, plates)
        assert math.isclose(elevation, 0.0, abs_tol=1e-12)
