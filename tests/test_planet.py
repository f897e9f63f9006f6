"""Tests for the planet generation pipeline."""

import numpy as np
import pytest

from py_planetgen.config import settings
from py_planetgen.core.errors import DegenerateInputError, PlanetGenerationError
from py_planetgen.core.planet import Planet, PlanetParameters, generate_planet, generate_terrain
from py_planetgen.core.topology import derive_topology


def test_module_imports():
    """Public names are importable from the package."""
    import py_planetgen
    from py_planetgen.core import __all__ as core_names

    assert py_planetgen.__version__
    assert "generate_planet" in core_names


class TestGeneratePlanet:
    """Test full planet generation."""

    @pytest.fixture(scope="class")
    def planet(self) -> Planet:
        return generate_planet(subdivisions=4, plate_count=6, seed="pipeline")

    def test_structure(self, planet):
        assert planet.mesh.node_count == 162
        assert planet.topology.tile_count == 162
        assert len(planet.plates) == 6

    def test_seeded_radius(self, planet):
        assert 500 <= planet.radius <= 2000
        assert planet.radius == int(planet.radius)

    def test_deterministic(self, planet):
        again = generate_planet(subdivisions=4, plate_count=6, seed="pipeline")
        assert again.radius == planet.radius
        np.testing.assert_array_equal(again.mesh.node_positions, planet.mesh.node_positions)
        np.testing.assert_array_equal(again.topology.tiles.elevation, planet.topology.tiles.elevation)
        np.testing.assert_array_equal(again.topology.tiles.temperature, planet.topology.tiles.temperature)
        assert again.topology.tiles.biome == planet.topology.tiles.biome

    def test_seed_changes_planet(self, planet):
        other = generate_planet(subdivisions=4, plate_count=6, seed="another planet")
        assert not np.array_equal(other.topology.tiles.elevation, planet.topology.tiles.elevation)

    def test_every_field_populated(self, planet):
        topology = planet.topology
        assert all(p is not None for p in topology.tiles.plate)
        assert all(b is not None for b in topology.tiles.biome)
        assert topology.corners.air is not None
        assert topology.corners.water is not None
        assert topology.corners.heat is not None
        assert topology.corners.moisture is not None

    def test_reuses_matching_mesh(self, planet):
        again = generate_planet(
            subdivisions=4, plate_count=3, seed="pipeline", existing_mesh=planet.mesh
        )
        assert again.mesh is planet.mesh
        assert len(again.plates) == 3

    def test_rebuilds_changed_mesh(self, planet):
        again = generate_planet(
            subdivisions=3, plate_count=3, seed="pipeline", existing_mesh=planet.mesh
        )
        assert again.mesh is not planet.mesh
        assert again.mesh.node_count == 92

    def test_explicit_radius(self):
        planet = generate_planet(subdivisions=2, plate_count=3, radius=6371.0, seed=3)
        assert planet.radius == 6371.0

    def test_parameters_object(self):
        parameters = PlanetParameters(subdivisions=2, plate_count=4, distortion_level=0.0, seed=(1, 2, 3, 4))
        planet = generate_planet(parameters)
        assert planet.parameters is parameters
        assert np.sum(planet.mesh.node_valences() == 5) == 12


class TestParameters:
    """Test parameter validation."""

    def test_defaults_from_settings(self):
        parameters = PlanetParameters()
        assert parameters.subdivisions == settings.default_subdivisions
        assert parameters.plate_count == settings.default_plate_count
        assert parameters.oceanic_rate == settings.default_oceanic_rate
        assert parameters.radius is None

    @pytest.mark.parametrize("overrides", [
        {"subdivisions": 0},
        {"subdivisions": 10_000},
        {"distortion_level": 1.5},
        {"oceanic_rate": -0.1},
        {"plate_count": 0},
        {"heat_level": -1.0},
        {"radius": 0},
    ])
    def test_invalid_parameters(self, overrides):
        with pytest.raises(DegenerateInputError):
            generate_planet(**overrides)

    def test_too_many_plates(self):
        with pytest.raises(DegenerateInputError):
            generate_planet(subdivisions=1, plate_count=12, seed=1)

    def test_errors_share_a_base(self):
        assert issubclass(DegenerateInputError, PlanetGenerationError)
        assert issubclass(DegenerateInputError, ValueError)

    def test_terrain_rejects_negative_levels(self):
        planet = generate_planet(subdivisions=2, plate_count=3, seed=9)
        topology = derive_topology(planet.mesh, 100.0)
        with pytest.raises(DegenerateInputError):
            generate_terrain(topology, 3, 0.5, -1.0, 0.3)
