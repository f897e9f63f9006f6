"""
Planet generation pipeline.

PRNG -> mesh -> topology -> plates -> elevation -> climate -> biomes.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import structlog
from pydantic import BaseModel, Field, ValidationError, field_validator

from ..config import settings
from .biomes import BiomeClassifier, BiomeOptions
from .climate import ClimateOptions, generate_climate
from .elevation import ElevationOptions, generate_elevation
from .errors import DegenerateInputError
from .mesh_builder import MeshGraph, MeshOptions, build_or_reuse_mesh, distortion_rate_from_level
from .plates import Plate, PlateOptions, assign_plates
from .statistics import PlanetStatistics, calculate_statistics
from .topology import Topology, derive_topology
from .xorshift_prng import make_prng

logger = structlog.get_logger()

MIN_GENERATED_RADIUS = 500
MAX_GENERATED_RADIUS = 2000


class PlanetParameters(BaseModel):
    """Parameters of one planet generation run."""

    subdivisions: int = Field(
        default_factory=lambda: settings.default_subdivisions, ge=1,
        description="Icosahedron subdivision degree",
    )
    distortion_level: float = Field(
        default_factory=lambda: settings.default_distortion_level, ge=0, le=1,
        description="Mesh irregularity in [0, 1]",
    )
    plate_count: int = Field(
        default_factory=lambda: settings.default_plate_count, ge=1,
        description="Number of tectonic plates",
    )
    oceanic_rate: float = Field(
        default_factory=lambda: settings.default_oceanic_rate, ge=0, le=1,
        description="Chance a plate is oceanic",
    )
    heat_level: float = Field(
        default_factory=lambda: settings.default_heat_level, ge=0,
        description="Heat budget multiplier",
    )
    moisture_level: float = Field(
        default_factory=lambda: settings.default_moisture_level, ge=0,
        description="Moisture budget multiplier",
    )
    radius: Optional[float] = Field(
        default=None, gt=0, description="Planet radius, drawn from the seed when omitted"
    )
    seed: Union[int, str, Tuple[int, int, int, int], None] = Field(
        default=None, description="Seed for every random draw"
    )

    @field_validator("subdivisions")
    @classmethod
    def subdivisions_within_limit(cls, value: int) -> int:
        if value > settings.max_subdivisions:
            raise ValueError(f"subdivisions must be <= {settings.max_subdivisions}")
        return value


@dataclass
class PlanetOptions:
    """Tunables for every pipeline stage."""

    mesh: Optional[MeshOptions] = None
    plates: Optional[PlateOptions] = None
    elevation: Optional[ElevationOptions] = None
    climate: Optional[ClimateOptions] = None
    biomes: Optional[BiomeOptions] = None


@dataclass
class Planet:
    """A generated planet."""

    parameters: PlanetParameters
    mesh: MeshGraph
    topology: Topology
    plates: List[Plate]

    @property
    def radius(self) -> float:
        return self.topology.radius

    def statistics(self) -> PlanetStatistics:
        return calculate_statistics(self.topology, self.plates)


def generate_terrain(
    topology: Topology,
    plate_count: int,
    oceanic_rate: float,
    heat_level: float,
    moisture_level: float,
    seed=None,
    options: Optional[PlanetOptions] = None,
) -> List[Plate]:
    """
    Generate plates, elevation, climate and biomes over a topology.

    Per-entity fields are written onto the topology in place.

    Args:
        topology: Topology from derive_topology
        plate_count: Number of plates, less than the tile count
        oceanic_rate: Chance a plate is oceanic, in [0, 1]
        heat_level: Heat budget multiplier, >= 0
        moisture_level: Moisture budget multiplier, >= 0
        seed: int, str, 4-tuple or an existing XorShift128

    Returns:
        Plates of the planet
    """
    if heat_level < 0 or moisture_level < 0:
        raise DegenerateInputError(
            f"Heat and moisture levels must be >= 0, got {heat_level} and {moisture_level}"
        )
    options = options or PlanetOptions()
    prng = make_prng(seed)

    plates = assign_plates(topology, plate_count, oceanic_rate, prng, options.plates)
    generate_elevation(topology, plates, options.elevation)
    generate_climate(topology, plates, heat_level, moisture_level, prng, options.climate)
    BiomeClassifier(topology, options.biomes).classify()
    return plates


def generate_planet(
    parameters: Optional[PlanetParameters] = None,
    existing_mesh: Optional[MeshGraph] = None,
    options: Optional[PlanetOptions] = None,
    **overrides,
) -> Planet:
    """
    Generate a complete planet.

    Args:
        parameters: Run parameters; built from settings and overrides when omitted
        existing_mesh: Mesh from a previous run, reused when its parameters match
        options: Tunables for every pipeline stage
        **overrides: Individual PlanetParameters fields

    Returns:
        Planet with mesh, topology and plates
    """
    if parameters is None:
        try:
            parameters = PlanetParameters(**overrides)
        except ValidationError as exc:
            raise DegenerateInputError(str(exc)) from exc

    options = options or PlanetOptions()
    seed = parameters.seed

    radius = parameters.radius
    if radius is None:
        radius = float(make_prng(seed).integer(MIN_GENERATED_RADIUS, MAX_GENERATED_RADIUS))

    logger.info(
        "Generating planet",
        subdivisions=parameters.subdivisions,
        distortion_level=parameters.distortion_level,
        plate_count=parameters.plate_count,
        radius=radius,
        seed=seed,
    )

    mesh = build_or_reuse_mesh(
        existing_mesh,
        parameters.subdivisions,
        distortion_rate_from_level(parameters.distortion_level),
        seed,
        options.mesh,
    )
    topology = derive_topology(mesh, radius)
    plates = generate_terrain(
        topology,
        parameters.plate_count,
        parameters.oceanic_rate,
        parameters.heat_level,
        parameters.moisture_level,
        seed,
        options,
    )

    logger.info("Planet generated", tiles=topology.tile_count, plates=len(plates))
    return Planet(parameters=parameters, mesh=mesh, topology=topology, plates=plates)
