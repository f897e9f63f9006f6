"""
Biome classification from elevation, temperature and humidity.

This module implements:
- A fixed decision tree over (elevation, temperature, humidity)
- Per-tile classification with counts and areas per biome
- Contiguous biome region detection
"""

from collections import deque
from dataclasses import dataclass
from enum import IntEnum
from typing import Dict, List, Optional, Set

import numpy as np
import structlog

from .topology import Topology

logger = structlog.get_logger()


class BiomeType(IntEnum):
    """The fifteen planet biomes."""

    OCEAN = 0
    OCEAN_GLACIER = 1
    DESERT = 2
    RAIN_FOREST = 3
    ROCKY = 4
    PLAINS = 5
    GRASSLAND = 6
    SWAMP = 7
    DECIDUOUS_FOREST = 8
    TUNDRA = 9
    LAND_GLACIER = 10
    CONIFER_FOREST = 11
    MOUNTAIN = 12
    SNOWY_MOUNTAIN = 13
    SNOW = 14


# Biome labels as exposed to renderers
BIOME_NAMES = {
    BiomeType.OCEAN: "ocean",
    BiomeType.OCEAN_GLACIER: "oceanGlacier",
    BiomeType.DESERT: "desert",
    BiomeType.RAIN_FOREST: "rainForest",
    BiomeType.ROCKY: "rocky",
    BiomeType.PLAINS: "plains",
    BiomeType.GRASSLAND: "grassland",
    BiomeType.SWAMP: "swamp",
    BiomeType.DECIDUOUS_FOREST: "deciduousForest",
    BiomeType.TUNDRA: "tundra",
    BiomeType.LAND_GLACIER: "landGlacier",
    BiomeType.CONIFER_FOREST: "coniferForest",
    BiomeType.MOUNTAIN: "mountain",
    BiomeType.SNOWY_MOUNTAIN: "snowyMountain",
    BiomeType.SNOW: "snow",
}


@dataclass
class BiomeOptions:
    """Biome classification thresholds."""

    lowland_elevation: float = 0.6  # Below this, lowland biomes
    highland_elevation: float = 0.8  # Below this, highland biomes; above, mountains
    hot_temperature: float = 0.75
    warm_temperature: float = 0.5
    dry_humidity: float = 0.25
    wet_humidity: float = 0.51


@dataclass
class BiomeRegion:
    """Represents a contiguous biome region."""

    id: int
    biome_type: BiomeType
    tiles: Set[int]
    area: float
    center_tile: int


def classify_biome(elevation: float, temperature: float, humidity: float,
                   options: Optional[BiomeOptions] = None) -> BiomeType:
    """
    Classify a single location.

    Args:
        elevation: Elevation, sea level at 0
        temperature: Temperature, freezing at 0
        humidity: Humidity

    Returns:
        BiomeType for the location
    """
    o = options or BiomeOptions()

    if elevation <= 0:
        return BiomeType.OCEAN if temperature > 0 else BiomeType.OCEAN_GLACIER

    if elevation < o.lowland_elevation:
        if temperature > o.hot_temperature:
            return BiomeType.DESERT if humidity < o.wet_humidity else BiomeType.RAIN_FOREST
        if temperature > o.warm_temperature:
            if humidity < o.dry_humidity:
                return BiomeType.ROCKY
            return BiomeType.PLAINS if humidity < o.wet_humidity else BiomeType.SWAMP
        if temperature > 0:
            if humidity < o.dry_humidity:
                return BiomeType.PLAINS
            return BiomeType.GRASSLAND if humidity < o.wet_humidity else BiomeType.DECIDUOUS_FOREST
        return BiomeType.TUNDRA if humidity < o.dry_humidity else BiomeType.LAND_GLACIER

    if elevation < o.highland_elevation:
        if temperature > 0:
            return BiomeType.MOUNTAIN if humidity < o.dry_humidity else BiomeType.CONIFER_FOREST
        return BiomeType.TUNDRA if humidity < o.dry_humidity else BiomeType.SNOW

    if temperature > 0 or humidity < o.wet_humidity:
        return BiomeType.MOUNTAIN
    return BiomeType.SNOWY_MOUNTAIN


class BiomeClassifier:
    """Assigns a biome to every tile of a topology."""

    def __init__(self, topology: Topology, options: Optional[BiomeOptions] = None):
        """
        Initialize biome classifier.

        Args:
            topology: Topology with elevation, temperature and humidity populated
            options: Biome classification thresholds
        """
        self.topology = topology
        self.options = options or BiomeOptions()

        self.biomes = None  # BiomeType value per tile
        self.biome_regions: List[BiomeRegion] = []

    def classify(self) -> np.ndarray:
        """
        Classify every tile and store the result on the topology.

        Returns:
            Array of BiomeType values, one per tile
        """
        tiles = self.topology.tiles
        labels = [
            classify_biome(e, t, h, self.options)
            for e, t, h in zip(tiles.elevation, tiles.temperature, tiles.humidity)
        ]
        tiles.biome = labels
        self.biomes = np.array([int(b) for b in labels], dtype=np.uint8)

        logger.info("Biomes classified", tiles=len(labels), biomes=len(np.unique(self.biomes)))
        return self.biomes

    def biome_counts(self) -> Dict[str, int]:
        """Tile count per biome label."""
        if self.biomes is None:
            return {}

        stats = {}
        unique_biomes, counts = np.unique(self.biomes, return_counts=True)
        for biome_id, count in zip(unique_biomes, counts):
            stats[BIOME_NAMES[BiomeType(biome_id)]] = int(count)
        return stats

    def biome_areas(self) -> Dict[str, float]:
        """Total tile area per biome label."""
        if self.biomes is None:
            return {}

        areas: Dict[str, float] = {}
        for biome_id, area in zip(self.biomes, self.topology.tiles.area):
            name = BIOME_NAMES[BiomeType(biome_id)]
            areas[name] = areas.get(name, 0.0) + float(area)
        return areas

    def generate_biome_regions(self) -> List[BiomeRegion]:
        """Group adjacent tiles with the same biome into regions."""
        if self.biomes is None:
            self.classify()

        neighbours = self.topology.tiles.tiles
        area = self.topology.tiles.area
        visited = np.zeros(len(self.biomes), dtype=bool)
        regions = []

        for start in range(len(self.biomes)):
            if visited[start]:
                continue
            biome = self.biomes[start]
            members = set()
            queue = deque([start])
            visited[start] = True
            while queue:
                tile = queue.popleft()
                members.add(tile)
                for n in neighbours[tile]:
                    if not visited[n] and self.biomes[n] == biome:
                        visited[n] = True
                        queue.append(n)

            regions.append(BiomeRegion(
                id=len(regions),
                biome_type=BiomeType(biome),
                tiles=members,
                area=float(sum(area[t] for t in members)),
                center_tile=self._find_region_center(members),
            ))

        self.biome_regions = regions
        logger.info("Biome regions generated", regions=len(regions))
        return regions

    def _find_region_center(self, members: Set[int]) -> int:
        """Member tile closest to the region's mean position."""
        ids = sorted(members)
        positions = self.topology.tiles.positions[ids]
        mean = positions.mean(axis=0)
        return ids[int(np.argmin(np.linalg.norm(positions - mean, axis=1)))]

    def get_biome_colors(self) -> Dict[BiomeType, str]:
        """
        Get color mapping for all biome types.

        Returns:
            Dictionary mapping BiomeType to hex color string
        """
        return {
            BiomeType.OCEAN: "#0066ff",
            BiomeType.OCEAN_GLACIER: "#ddeeff",
            BiomeType.DESERT: "#dddd77",
            BiomeType.RAIN_FOREST: "#44dd00",
            BiomeType.ROCKY: "#aa9977",
            BiomeType.PLAINS: "#99bb44",
            BiomeType.GRASSLAND: "#77cc44",
            BiomeType.SWAMP: "#77aa44",
            BiomeType.DECIDUOUS_FOREST: "#33aa22",
            BiomeType.TUNDRA: "#9999aa",
            BiomeType.LAND_GLACIER: "#ddeeff",
            BiomeType.CONIFER_FOREST: "#338822",
            BiomeType.MOUNTAIN: "#555544",
            BiomeType.SNOWY_MOUNTAIN: "#dddddd",
            BiomeType.SNOW: "#eeeeee",
        }
