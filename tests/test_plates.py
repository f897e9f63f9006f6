"""Tests for tectonic plate assignment."""

from collections import deque

import numpy as np
import pytest

from py_planetgen.core.elevation import ElevationEngine
from py_planetgen.core.errors import DegenerateInputError
from py_planetgen.core.mesh_builder import build_mesh
from py_planetgen.core.plates import (
    PlateOptions, assign_plates, calculate_distances_to_plate_roots, update_plate_aggregates
)
from py_planetgen.core.topology import derive_topology
from py_planetgen.core.xorshift_prng import make_prng


@pytest.fixture(scope="module")
def mesh():
    return build_mesh(5, 0.1, seed="plates-test")


def _topology(mesh):
    return derive_topology(mesh, 1000.0)


class TestPlateAssignment:
    """Test plate growth."""

    @pytest.fixture(scope="class")
    def assigned(self, mesh):
        topology = _topology(mesh)
        plates = assign_plates(topology, 8, 0.5, make_prng("plates"))
        return topology, plates

    def test_plate_count(self, assigned):
        _, plates = assigned
        assert len(plates) == 8

    def test_every_tile_has_one_plate(self, assigned):
        topology, plates = assigned
        assert all(p is not None for p in topology.tiles.plate)
        assert sum(len(p.tiles) for p in plates) == topology.tile_count
        for index, plate in enumerate(plates):
            assert all(topology.tiles.plate[t] == index for t in plate.tiles)

    def test_plates_are_contiguous(self, assigned):
        topology, plates = assigned
        for plate in plates:
            members = set(plate.tiles)
            start = plate.tiles[0]
            seen = {start}
            queue = deque([start])
            while queue:
                tile = queue.popleft()
                for n in topology.tiles.tiles[tile]:
                    if n in members and n not in seen:
                        seen.add(n)
                        queue.append(n)
            assert seen == members

    def test_root_tiles_belong_to_plate(self, assigned):
        topology, plates = assigned
        for index, plate in enumerate(plates):
            for t in topology.corners.tiles[plate.root]:
                assert topology.tiles.plate[t] == index

    def test_plate_properties(self, assigned):
        _, plates = assigned
        options = PlateOptions()
        for plate in plates:
            assert 0 <= plate.color <= 0xFFFFFF
            assert np.isclose(np.linalg.norm(plate.drift_axis), 1.0)
            assert abs(plate.drift_rate) <= options.max_rate
            assert abs(plate.spin_rate) <= options.max_rate
            low, high = options.oceanic_elevation if plate.oceanic else options.continental_elevation
            assert low <= plate.elevation <= high

    def test_movement_is_tangent(self, assigned):
        topology, _ = assigned
        positions = topology.tiles.positions
        movement = topology.tiles.plate_movement
        radial = np.einsum("ij,ij->i", movement, positions) / np.linalg.norm(positions, axis=1)
        assert np.all(np.abs(radial) <= 1e-9 * (1 + np.linalg.norm(movement, axis=1)) * 1000)
        assert np.any(np.linalg.norm(movement, axis=1) > 0)

    def test_deterministic(self, mesh, assigned):
        topology, plates = assigned
        other = _topology(mesh)
        again = assign_plates(other, 8, 0.5, make_prng("plates"))
        assert other.tiles.plate == topology.tiles.plate
        assert [p.color for p in again] == [p.color for p in plates]


class TestPlateGrowth:
    """Test that plates grow at a shared pace."""

    @pytest.fixture(scope="class")
    def large_mesh(self):
        return build_mesh(10, 0.1, seed="plate-growth")

    def test_two_plates_split_evenly(self, mesh):
        topology = _topology(mesh)
        plates = assign_plates(topology, 2, 0.5, make_prng("two-plates"))
        sizes = sorted(len(p.tiles) for p in plates)
        assert sizes[0] >= 0.3 * topology.tile_count

    @pytest.mark.parametrize("seed", [1, 2, "balance"])
    def test_small_plates_are_not_starved(self, large_mesh, seed):
        topology = _topology(large_mesh)
        plates = assign_plates(topology, 10, 0.5, make_prng(seed))
        sizes = [len(p.tiles) for p in plates]
        assert min(sizes) >= topology.tile_count / len(plates) / 6


class TestOceanicRate:
    """Test the oceanic rate extremes."""

    def test_all_oceanic(self, mesh):
        plates = assign_plates(_topology(mesh), 6, 1.0, make_prng("ocean"))
        assert all(p.oceanic for p in plates)
        assert all(p.elevation < 0 for p in plates)

    def test_all_continental(self, mesh):
        plates = assign_plates(_topology(mesh), 6, 0.0, make_prng("land"))
        assert not any(p.oceanic for p in plates)
        assert all(p.elevation > 0 for p in plates)


class TestPlateInputs:
    """Test input validation."""

    @pytest.mark.parametrize("count", [0, 252, 1000])
    def test_invalid_plate_count(self, mesh, count):
        with pytest.raises(DegenerateInputError):
            assign_plates(_topology(mesh), count, 0.5, make_prng(1))

    @pytest.mark.parametrize("rate", [-0.1, 1.5])
    def test_invalid_oceanic_rate(self, mesh, rate):
        with pytest.raises(DegenerateInputError):
            assign_plates(_topology(mesh), 4, rate, make_prng(1))

    def test_single_plate(self, mesh):
        topology = _topology(mesh)
        plates = assign_plates(topology, 1, 0.5, make_prng(1))
        assert len(plates) == 1
        assert set(topology.tiles.plate) == {0}


class TestPlateAggregates:
    """Test distances and aggregate plate values."""

    @pytest.fixture(scope="class")
    def bounded(self, mesh):
        topology = _topology(mesh)
        plates = assign_plates(topology, 6, 0.5, make_prng("aggregates"))
        ElevationEngine(topology, plates).identify_boundaries()
        return topology, plates

    def test_root_distances(self, bounded):
        topology, plates = bounded
        distances = calculate_distances_to_plate_roots(topology, plates)
        for plate in plates:
            assert distances[plate.root] == 0
        assert np.all(distances >= 0)
        assert np.sum(np.isfinite(distances)) > topology.corner_count // 2

    def test_distances_follow_borders(self, bounded):
        """A corner is never further than a reachable neighbour plus their border."""
        topology, plates = bounded
        distances = calculate_distances_to_plate_roots(topology, plates)
        corners = topology.corners
        borders = topology.borders
        for c in range(topology.corner_count):
            for j in range(3):
                b = corners.borders[c][j]
                n = corners.corners[c][j]
                if borders.between_plates[b] or not np.isfinite(distances[n]):
                    continue
                assert distances[c] <= distances[n] + borders.lengths[b] + 1e-9

    def test_aggregates(self, bounded):
        topology, plates = bounded
        update_plate_aggregates(topology, plates)
        assert np.isclose(sum(p.area for p in plates), topology.tiles.area.sum())
        boundary_borders = int(topology.borders.between_plates.sum())
        # Each boundary border is counted once for each side
        assert sum(len(p.boundary_borders) for p in plates) == 2 * boundary_borders
        assert all(p.circumference > 0 for p in plates)
        for plate in plates:
            assert all(topology.corners.between_plates[c] for c in plate.boundary_corners)
