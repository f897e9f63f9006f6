"""
Core planet generation functionality.
"""

from .errors import ConstraintViolation, DegenerateInputError, PlanetGenerationError, StructuralInvariantError
from .xorshift_prng import XorShift128, make_prng
from .mesh_builder import MeshGraph, MeshOptions, build_mesh, build_or_reuse_mesh, distortion_rate_from_level
from .topology import EntityKind, EntityRef, Topology, derive_topology
from .plates import Plate, PlateOptions, assign_plates
from .elevation import ElevationOptions, generate_elevation
from .climate import ClimateOptions, generate_climate
from .biomes import BIOME_NAMES, BiomeClassifier, BiomeOptions, BiomeType, classify_biome
from .statistics import PlanetStatistics, calculate_statistics
from .planet import Planet, PlanetOptions, PlanetParameters, generate_planet, generate_terrain

__all__ = ['ConstraintViolation', 'DegenerateInputError', 'PlanetGenerationError', 'StructuralInvariantError',
           'XorShift128', 'make_prng',
           'MeshGraph', 'MeshOptions', 'build_mesh', 'build_or_reuse_mesh', 'distortion_rate_from_level',
           'EntityKind', 'EntityRef', 'Topology', 'derive_topology',
           'Plate', 'PlateOptions', 'assign_plates',
           'ElevationOptions', 'generate_elevation',
           'ClimateOptions', 'generate_climate',
           'BIOME_NAMES', 'BiomeClassifier', 'BiomeOptions', 'BiomeType', 'classify_biome',
           'PlanetStatistics', 'calculate_statistics',
           'Planet', 'PlanetOptions', 'PlanetParameters', 'generate_planet', 'generate_terrain']
