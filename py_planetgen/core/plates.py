"""
Tectonic plate assignment.

Plates start from randomly chosen root corners and grow over the tile graph
until every tile belongs to exactly one plate. Each plate moves as a rigid
body: a drift about a random axis plus a spin about its root.
"""

import heapq
import math
from dataclasses import dataclass, field
from typing import List, Optional, Tuple

import numpy as np
import structlog

from .errors import DegenerateInputError
from .topology import Topology
from .xorshift_prng import XorShift128, random_unit_vector
from ..utils.vectors import project_on_vector, set_length

logger = structlog.get_logger()


@dataclass
class PlateOptions:
    """Plate generation parameters."""

    max_rate: float = math.pi / 30  # Bound on drift and spin rates
    oceanic_elevation: Tuple[float, float] = (-0.8, -0.3)
    continental_elevation: Tuple[float, float] = (0.1, 0.5)
    max_root_failures: int = 10000  # Consecutive rejected root candidates before giving up


@dataclass
class Plate:
    """A rigid tectonic plate."""

    color: int  # 0xRRGGBB
    drift_axis: np.ndarray
    drift_rate: float
    spin_rate: float
    elevation: float
    oceanic: bool
    root: int  # Corner index

    tiles: List[int] = field(default_factory=list)
    boundary_corners: List[int] = field(default_factory=list)
    boundary_borders: List[int] = field(default_factory=list)
    area: float = 0.0
    circumference: float = 0.0

    def movement(self, position: np.ndarray, root_position: np.ndarray) -> np.ndarray:
        """
        Surface velocity of the plate at a position.

        Args:
            position: Point on the planet surface
            root_position: Position of the plate's root corner

        Returns:
            Velocity vector tangent to the rotation about each axis
        """
        drift_distance = np.linalg.norm(position - project_on_vector(position, self.drift_axis))
        movement = set_length(np.cross(self.drift_axis, position), self.drift_rate * drift_distance)

        spin_distance = np.linalg.norm(position - project_on_vector(position, root_position))
        movement = movement + set_length(np.cross(root_position, position), self.spin_rate * spin_distance)
        return movement


class PlateAssigner:
    """Assigns every tile of a topology to a tectonic plate."""

    def __init__(self, topology: Topology, prng: XorShift128, options: Optional[PlateOptions] = None):
        self.topology = topology
        self.prng = prng
        self.options = options or PlateOptions()

    def assign(self, plate_count: int, oceanic_rate: float) -> List[Plate]:
        """
        Create plates and grow them over the whole surface.

        Args:
            plate_count: Number of plates to create
            oceanic_rate: Chance that a plate is oceanic

        Returns:
            List of plates; tiles.plate holds each tile's plate index
        """
        topology = self.topology
        if plate_count < 1 or plate_count >= topology.tile_count:
            raise DegenerateInputError(
                f"Plate count must be in [1, {topology.tile_count}), got {plate_count}"
            )
        if not 0 <= oceanic_rate <= 1:
            raise DegenerateInputError(f"Oceanic rate must be in [0, 1], got {oceanic_rate}")

        logger.info("Assigning plates", plate_count=plate_count, oceanic_rate=oceanic_rate)

        tile_plates: List[Optional[int]] = [None] * topology.tile_count
        plates: List[Plate] = []
        frontiers: List[List[int]] = []  # Unassigned neighbour tiles per plate

        failures = 0
        while len(plates) < plate_count and failures < self.options.max_root_failures:
            root = self.prng.integer_exclusive(0, topology.corner_count)
            root_tiles = [int(t) for t in topology.corners.tiles[root]]
            if any(tile_plates[t] is not None for t in root_tiles):
                failures += 1
                continue
            failures = 0

            plate_index = len(plates)
            plates.append(self._random_plate(root, oceanic_rate))
            for t in root_tiles:
                tile_plates[t] = plate_index
                plates[plate_index].tiles.append(t)
            frontiers.append([
                int(n) for t in root_tiles for n in topology.tiles.tiles[t] if tile_plates[n] is None
            ])

        if len(plates) < plate_count:
            logger.warning(
                "Could not place every plate root",
                requested=plate_count,
                placed=len(plates),
            )

        # Each turn grows a random plate by a random tile from its own frontier
        active = [p for p in range(len(plates)) if frontiers[p]]
        while active:
            slot = self.prng.integer_exclusive(0, len(active))
            plate_index = active[slot]
            frontier = frontiers[plate_index]
            while frontier:
                tile = frontier.pop(self.prng.integer_exclusive(0, len(frontier)))
                if tile_plates[tile] is not None:
                    continue
                tile_plates[tile] = plate_index
                plates[plate_index].tiles.append(tile)
                frontier.extend(int(n) for n in topology.tiles.tiles[tile] if tile_plates[n] is None)
                break
            if not frontier:
                active.pop(slot)

        topology.tiles.plate = tile_plates
        self._calculate_tile_movement(plates)

        logger.info(
            "Plates assigned",
            plates=len(plates),
            oceanic=sum(1 for p in plates if p.oceanic),
        )
        return plates

    def _random_plate(self, root: int, oceanic_rate: float) -> Plate:
        prng = self.prng
        opts = self.options
        color = prng.integer(0, 0xFFFFFF)
        drift_axis = random_unit_vector(prng)
        drift_rate = prng.real_inclusive(-opts.max_rate, opts.max_rate)
        spin_rate = prng.real_inclusive(-opts.max_rate, opts.max_rate)
        oceanic = prng.unit() < oceanic_rate
        low, high = opts.oceanic_elevation if oceanic else opts.continental_elevation
        elevation = prng.real_inclusive(low, high)
        return Plate(
            color=color,
            drift_axis=drift_axis,
            drift_rate=drift_rate,
            spin_rate=spin_rate,
            elevation=elevation,
            oceanic=oceanic,
            root=root,
        )

    def _calculate_tile_movement(self, plates: List[Plate]) -> None:
        tiles = self.topology.tiles
        corner_positions = self.topology.corners.positions
        for plate in plates:
            root_position = corner_positions[plate.root]
            for t in plate.tiles:
                tiles.plate_movement[t] = plate.movement(tiles.positions[t], root_position)


def calculate_distances_to_plate_roots(topology: Topology, plates: List[Plate]) -> np.ndarray:
    """
    Shortest path length from each corner to its plate's root corner.

    Paths follow borders and never cross a plate boundary border, so the
    plate boundaries must already be marked.

    Returns:
        Distances per corner (inf where no root is reachable)
    """
    corners = topology.corners
    borders = topology.borders
    distances = np.full(topology.corner_count, np.inf)

    queue = []
    for plate in plates:
        distances[plate.root] = 0.0
        heapq.heappush(queue, (0.0, plate.root))

    while queue:
        distance, corner = heapq.heappop(queue)
        if distance > distances[corner]:
            continue
        for j in range(3):
            border = corners.borders[corner][j]
            if borders.between_plates[border]:
                continue
            neighbour = int(corners.corners[corner][j])
            candidate = distance + borders.lengths[border]
            if candidate < distances[neighbour]:
                distances[neighbour] = candidate
                heapq.heappush(queue, (candidate, neighbour))

    corners.distance_to_plate_root = distances
    return distances


def update_plate_aggregates(topology: Topology, plates: List[Plate]) -> None:
    """Fill in each plate's area, boundary lists and circumference."""
    tiles = topology.tiles
    borders = topology.borders

    for plate in plates:
        plate.area = float(sum(tiles.area[t] for t in plate.tiles))
        plate.boundary_corners = []
        plate.boundary_borders = []
        plate.circumference = 0.0

    for b in range(topology.border_count):
        if not borders.between_plates[b]:
            continue
        for t in borders.tiles[b]:
            plate = plates[tiles.plate[t]]
            plate.boundary_borders.append(b)
            plate.circumference += float(borders.lengths[b])

    for c in range(topology.corner_count):
        if not topology.corners.between_plates[c]:
            continue
        seen = set()
        for t in topology.corners.tiles[c]:
            p = tiles.plate[t]
            if p not in seen:
                seen.add(p)
                plates[p].boundary_corners.append(c)


def assign_plates(topology: Topology, plate_count: int, oceanic_rate: float,
                  prng: XorShift128, options: Optional[PlateOptions] = None) -> List[Plate]:
    """Convenience wrapper around PlateAssigner.assign."""
    return PlateAssigner(topology, prng, options).assign(plate_count, oceanic_rate)
