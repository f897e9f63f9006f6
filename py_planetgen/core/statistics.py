"""Summary statistics of a generated planet."""

from typing import Dict, Iterable, List

import numpy as np
from pydantic import BaseModel, Field

from .biomes import BIOME_NAMES, BiomeType
from .plates import Plate
from .topology import Topology


class StatisticsItem(BaseModel):
    """Range and mean of one quantity."""

    min: float = Field(default=0.0, description="Smallest value")
    max: float = Field(default=0.0, description="Largest value")
    avg: float = Field(default=0.0, description="Mean value")

    @classmethod
    def from_values(cls, values: Iterable[float]) -> "StatisticsItem":
        """Build from values, ignoring infinities; empty input gives zeros."""
        array = np.asarray(list(values), dtype=float)
        array = array[np.isfinite(array)]
        if len(array) == 0:
            return cls()
        return cls(min=float(array.min()), max=float(array.max()), avg=float(array.mean()))


class CornerInfo(BaseModel):
    """Corner statistics."""

    count: int
    air_current: StatisticsItem
    elevation: StatisticsItem
    temperature: StatisticsItem
    humidity: StatisticsItem
    distance_to_plate_boundary: StatisticsItem
    distance_to_plate_root: StatisticsItem
    pressure: StatisticsItem
    shear: StatisticsItem
    double_plate_boundary_count: int = Field(description="Boundary corners where two plates meet")
    triple_plate_boundary_count: int = Field(description="Boundary corners where three plates meet")
    inner_land_boundary_count: int = Field(description="Coastline corners above sea level")
    outer_land_boundary_count: int = Field(description="Coastline corners at or below sea level")


class BorderInfo(BaseModel):
    """Border statistics."""

    count: int
    length: StatisticsItem
    plate_boundary_count: int
    plate_boundary_percentage: float
    land_boundary_count: int
    land_boundary_percentage: float


class TileInfo(BaseModel):
    """Tile statistics."""

    count: int
    total_area: float
    area: StatisticsItem
    elevation: StatisticsItem
    temperature: StatisticsItem
    humidity: StatisticsItem
    plate_movement: StatisticsItem
    biome_counts: Dict[str, int] = Field(default_factory=dict)
    biome_areas: Dict[str, float] = Field(default_factory=dict)
    pentagon_count: int
    hexagon_count: int
    heptagon_count: int


class PlateInfo(BaseModel):
    """Plate statistics."""

    count: int
    tile_count: StatisticsItem
    area: StatisticsItem
    boundary_elevation: StatisticsItem
    boundary_borders: StatisticsItem
    circumference: StatisticsItem


class PlanetStatistics(BaseModel):
    """Statistics for every entity kind of a planet."""

    corners: CornerInfo
    borders: BorderInfo
    tiles: TileInfo
    plates: PlateInfo


def _corner_statistics(topology: Topology) -> CornerInfo:
    corners = topology.corners
    borders = topology.borders
    tile_elevation = topology.tiles.elevation

    land_tiles = tile_elevation[borders.tiles] > 0
    land_boundary = land_tiles[:, 0] != land_tiles[:, 1]
    corner_on_coast = land_boundary[corners.borders].any(axis=1)
    boundary_border_counts = borders.between_plates[corners.borders].sum(axis=1)

    air_speed = corners.air.speed if corners.air is not None else np.zeros(len(corners))
    return CornerInfo(
        count=len(corners),
        air_current=StatisticsItem.from_values(air_speed),
        elevation=StatisticsItem.from_values(corners.elevation),
        temperature=StatisticsItem.from_values(corners.temperature),
        humidity=StatisticsItem.from_values(corners.humidity),
        distance_to_plate_boundary=StatisticsItem.from_values(corners.distance_to_plate_boundary),
        distance_to_plate_root=StatisticsItem.from_values(corners.distance_to_plate_root),
        pressure=StatisticsItem.from_values(corners.pressure[corners.between_plates]),
        shear=StatisticsItem.from_values(corners.shear[corners.between_plates]),
        double_plate_boundary_count=int(np.sum(boundary_border_counts == 2)),
        triple_plate_boundary_count=int(np.sum(boundary_border_counts == 3)),
        inner_land_boundary_count=int(np.sum(corner_on_coast & (corners.elevation > 0))),
        outer_land_boundary_count=int(np.sum(corner_on_coast & (corners.elevation <= 0))),
    )


def _border_statistics(topology: Topology) -> BorderInfo:
    borders = topology.borders
    count = len(borders)
    land_tiles = topology.tiles.elevation[borders.tiles] > 0
    land_boundary_count = int(np.sum(land_tiles[:, 0] != land_tiles[:, 1]))
    plate_boundary_count = int(borders.between_plates.sum())
    return BorderInfo(
        count=count,
        length=StatisticsItem.from_values(borders.lengths),
        plate_boundary_count=plate_boundary_count,
        plate_boundary_percentage=plate_boundary_count / count * 100 if count else 0.0,
        land_boundary_count=land_boundary_count,
        land_boundary_percentage=land_boundary_count / count * 100 if count else 0.0,
    )


def _tile_statistics(topology: Topology) -> TileInfo:
    tiles = topology.tiles
    sides = np.array([len(c) for c in tiles.corners])

    biome_counts: Dict[str, int] = {}
    biome_areas: Dict[str, float] = {}
    for biome, area in zip(tiles.biome, tiles.area):
        if biome is None:
            continue
        name = BIOME_NAMES[BiomeType(biome)]
        biome_counts[name] = biome_counts.get(name, 0) + 1
        biome_areas[name] = biome_areas.get(name, 0.0) + float(area)

    return TileInfo(
        count=len(tiles),
        total_area=float(tiles.area.sum()),
        area=StatisticsItem.from_values(tiles.area),
        elevation=StatisticsItem.from_values(tiles.elevation),
        temperature=StatisticsItem.from_values(tiles.temperature),
        humidity=StatisticsItem.from_values(tiles.humidity),
        plate_movement=StatisticsItem.from_values(np.linalg.norm(tiles.plate_movement, axis=1)),
        biome_counts=biome_counts,
        biome_areas=biome_areas,
        pentagon_count=int(np.sum(sides == 5)),
        hexagon_count=int(np.sum(sides == 6)),
        heptagon_count=int(np.sum(sides == 7)),
    )


def _plate_statistics(topology: Topology, plates: List[Plate]) -> PlateInfo:
    elevation = topology.corners.elevation
    boundary_elevation = [
        float(elevation[p.boundary_corners].mean()) for p in plates if p.boundary_corners
    ]
    return PlateInfo(
        count=len(plates),
        tile_count=StatisticsItem.from_values(len(p.tiles) for p in plates),
        area=StatisticsItem.from_values(p.area for p in plates),
        boundary_elevation=StatisticsItem.from_values(boundary_elevation),
        boundary_borders=StatisticsItem.from_values(len(p.boundary_borders) for p in plates),
        circumference=StatisticsItem.from_values(p.circumference for p in plates),
    )


def calculate_statistics(topology: Topology, plates: List[Plate]) -> PlanetStatistics:
    """
    Gather statistics over a fully generated planet.

    Args:
        topology: Topology with terrain and climate populated
        plates: Plates of the planet

    Returns:
        PlanetStatistics
    """
    return PlanetStatistics(
        corners=_corner_statistics(topology),
        borders=_border_statistics(topology),
        tiles=_tile_statistics(topology),
        plates=_plate_statistics(topology, plates),
    )
