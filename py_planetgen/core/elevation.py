"""
Elevation from plate boundary stress.

This module implements:
- Plate boundary detection on borders and corners
- Pressure and shear between plates meeting at a boundary corner
- Blurring of stress along the boundary network
- Boundary elevation and a per-boundary falloff curve
- Distance-ordered wavefront that carries each curve inland
"""

import heapq
import math
from dataclasses import dataclass
from typing import Callable, List, NamedTuple, Optional, Tuple

import numpy as np
import structlog

from .plates import Plate, calculate_distances_to_plate_roots, update_plate_aggregates
from .topology import Topology
from ..utils.vectors import project_on_vector

logger = structlog.get_logger()

ElevationCurve = Callable[[float, float, float, float, float, float], float]


@dataclass
class ElevationOptions:
    """Elevation calculation options."""

    pressure_threshold: float = 0.3  # |pressure| above this makes a collision or rift
    shear_threshold: float = 0.3
    stress_scale: float = 30.0  # Divisor inside the logistic squash
    blur_iterations: int = 3
    blur_center_weight: float = 0.4
    diverging_pressure_factor: float = 0.25
    shearing_factor: float = 0.125


def _interpolation_parameter(distance_to_boundary: float, distance_to_root: float) -> float:
    """Fraction of the way from the boundary to the plate root."""
    if not math.isfinite(distance_to_root):
        return 0.0
    total = distance_to_boundary + distance_to_root
    if total <= 0:
        return 0.0
    return distance_to_boundary / total


def colliding_elevation(d_boundary, d_root, boundary_elevation, plate_elevation, pressure, shear):
    t = _interpolation_parameter(d_boundary, d_root)
    if t < 0.5:
        t = t / 0.5
        return plate_elevation + (t - 1) ** 2 * (boundary_elevation - plate_elevation)
    return plate_elevation


def superducting_elevation(d_boundary, d_root, boundary_elevation, plate_elevation, pressure, shear):
    t = _interpolation_parameter(d_boundary, d_root)
    if t < 0.2:
        t = t / 0.2
        return boundary_elevation + t * (plate_elevation - boundary_elevation + pressure / 2)
    if t < 0.5:
        t = (t - 0.2) / 0.3
        return plate_elevation + (t - 1) ** 2 * pressure / 2
    return plate_elevation


def subducting_elevation(d_boundary, d_root, boundary_elevation, plate_elevation, pressure, shear):
    t = _interpolation_parameter(d_boundary, d_root)
    return plate_elevation + (t - 1) ** 2 * (boundary_elevation - plate_elevation)


def diverging_elevation(d_boundary, d_root, boundary_elevation, plate_elevation, pressure, shear):
    t = _interpolation_parameter(d_boundary, d_root)
    if t < 0.3:
        t = t / 0.3
        return plate_elevation + (t - 1) ** 2 * (boundary_elevation - plate_elevation)
    return plate_elevation


def shearing_elevation(d_boundary, d_root, boundary_elevation, plate_elevation, pressure, shear):
    t = _interpolation_parameter(d_boundary, d_root)
    if t < 0.2:
        t = t / 0.2
        return plate_elevation + (t - 1) ** 2 * (boundary_elevation - plate_elevation)
    return plate_elevation


def dormant_elevation(d_boundary, d_root, boundary_elevation, plate_elevation, pressure, shear):
    """Smoothstep from the boundary elevation down (or up) to the plate elevation."""
    t = _interpolation_parameter(d_boundary, d_root)
    difference = boundary_elevation - plate_elevation
    return t * t * difference * (2 * t - 3) + boundary_elevation


class WavefrontOrigin(NamedTuple):
    """Boundary corner a wavefront started from."""

    corner: int
    elevation: float
    plate_elevation: float
    pressure: float
    shear: float
    curve: ElevationCurve


class ElevationEngine:
    """Computes corner and tile elevations from plate interactions."""

    def __init__(self, topology: Topology, plates: List[Plate], options: Optional[ElevationOptions] = None):
        self.topology = topology
        self.plates = plates
        self.options = options or ElevationOptions()
        self.tile_plates = np.array(topology.tiles.plate, dtype=np.int64)
        self._elevated = None  # Corners whose elevation is final

    def generate(self) -> None:
        """Run every elevation step in order."""
        logger.info("Generating elevation", plates=len(self.plates))

        self.identify_boundaries()
        calculate_distances_to_plate_roots(self.topology, self.plates)
        update_plate_aggregates(self.topology, self.plates)
        self.calculate_boundary_stress()
        self.blur_boundary_stress()
        origins = self.calculate_boundary_elevations()
        reached = self.propagate(origins)
        self.fill_unreached()
        self.calculate_tile_elevations()

        corners = self.topology.corners
        logger.info(
            "Elevation generated",
            boundary_corners=int(corners.between_plates.sum()),
            reached_corners=reached,
            min_elevation=float(corners.elevation.min()),
            max_elevation=float(corners.elevation.max()),
        )

    def identify_boundaries(self) -> None:
        """Flag borders and corners that lie between two different plates."""
        borders = self.topology.borders
        corners = self.topology.corners
        plates_of = self.tile_plates[borders.tiles]
        borders.between_plates = plates_of[:, 0] != plates_of[:, 1]
        corners.between_plates = borders.between_plates[corners.borders].any(axis=1)

    def _inner_border_index(self, corner: int) -> Optional[int]:
        """Position of the single non-boundary border of a boundary corner, if any."""
        between = self.topology.borders.between_plates
        inner = [j for j in range(3) if not between[self.topology.corners.borders[corner][j]]]
        return inner[0] if len(inner) == 1 else None

    def _squash(self, value: float) -> float:
        return 2 / (1 + math.exp(-value / self.options.stress_scale)) - 1

    def _stress(self, corner: int, plate0: Plate, plate1: Plate,
                boundary_vector: np.ndarray, toward_plate1: np.ndarray) -> Tuple[float, float]:
        """
        Squashed pressure and shear of plate0 moving against plate1.

        Pressure is positive when plate0 moves toward plate1.
        """
        positions = self.topology.corners.positions
        position = positions[corner]
        movement0 = plate0.movement(position, positions[plate0.root])
        movement1 = plate1.movement(position, positions[plate1.root])
        relative = movement0 - movement1

        normal = np.cross(boundary_vector, position)
        if np.dot(normal, toward_plate1) < 0:
            normal = -normal

        pressure_vector = project_on_vector(relative, normal)
        pressure = float(np.linalg.norm(pressure_vector))
        if np.dot(pressure_vector, normal) < 0:
            pressure = -pressure
        shear = float(np.linalg.norm(project_on_vector(relative, boundary_vector)))
        return self._squash(pressure), self._squash(shear)

    def calculate_boundary_stress(self) -> None:
        """Pressure and shear at every boundary corner."""
        corners = self.topology.corners
        tile_positions = self.topology.tiles.positions
        pressure = np.zeros(self.topology.corner_count)
        shear = np.zeros(self.topology.corner_count)

        for c in np.flatnonzero(corners.between_plates):
            position = corners.positions[c]
            tiles = corners.tiles[c]
            j = self._inner_border_index(c)
            if j is not None:
                plate0 = self.plates[self.tile_plates[tiles[(j + 1) % 3]]]
                plate1 = self.plates[self.tile_plates[tiles[j]]]
                far1 = corners.positions[corners.corners[c][(j + 1) % 3]]
                far2 = corners.positions[corners.corners[c][(j + 2) % 3]]
                pressure[c], shear[c] = self._stress(
                    c, plate0, plate1, far2 - far1, tile_positions[tiles[j]] - position
                )
            else:
                # Three distinct plates: average the stress across each border
                total_pressure = 0.0
                total_shear = 0.0
                for k in range(3):
                    plate_a = self.plates[self.tile_plates[tiles[(k + 1) % 3]]]
                    plate_b = self.plates[self.tile_plates[tiles[(k + 2) % 3]]]
                    along = corners.positions[corners.corners[c][k]] - position
                    p, s = self._stress(
                        c, plate_a, plate_b, along, tile_positions[tiles[(k + 2) % 3]] - position
                    )
                    total_pressure += p
                    total_shear += s
                pressure[c] = total_pressure / 3
                shear[c] = total_shear / 3

        corners.pressure = pressure
        corners.shear = shear

    def blur_boundary_stress(self) -> None:
        """Average stress with neighbouring boundary corners a few times."""
        corners = self.topology.corners
        between_borders = self.topology.borders.between_plates
        boundary = np.flatnonzero(corners.between_plates)
        neighbours = {
            int(c): [int(corners.corners[c][j]) for j in range(3) if between_borders[corners.borders[c][j]]]
            for c in boundary
        }
        weight = self.options.blur_center_weight

        for _ in range(self.options.blur_iterations):
            pressure = corners.pressure.copy()
            shear = corners.shear.copy()
            for c, adjacent in neighbours.items():
                if not adjacent:
                    continue
                pressure[c] = weight * corners.pressure[c] + (1 - weight) * corners.pressure[adjacent].mean()
                shear[c] = weight * corners.shear[c] + (1 - weight) * corners.shear[adjacent].mean()
            corners.pressure = pressure
            corners.shear = shear

    def _boundary_elevation(self, corner: int, plates: List[Plate]) -> Tuple[float, Optional[ElevationCurve]]:
        """Elevation at a boundary corner and the curve for the first plate's interior."""
        opts = self.options
        pressure = self.topology.corners.pressure[corner]
        shear = self.topology.corners.shear[corner]
        highest = max(p.elevation for p in plates)

        if pressure > opts.pressure_threshold:
            elevation = highest + pressure
            own, neighbour = plates[0], plates[-1]
            if own.oceanic == neighbour.oceanic:
                curve = colliding_elevation
            elif neighbour.oceanic:
                curve = subducting_elevation
            else:
                curve = superducting_elevation
        elif pressure < -opts.pressure_threshold:
            elevation = highest - pressure * opts.diverging_pressure_factor
            curve = diverging_elevation
        elif shear > opts.shear_threshold:
            elevation = highest + shear * opts.shearing_factor
            curve = shearing_elevation
        else:
            elevation = sum(p.elevation for p in plates) / len(plates)
            curve = dormant_elevation
        return elevation, curve

    def calculate_boundary_elevations(self) -> List[Tuple[float, int, int, WavefrontOrigin]]:
        """
        Elevate boundary corners and seed the wavefront.

        Returns:
            Initial wavefront entries (distance, sequence, corner, origin)
        """
        corners = self.topology.corners
        lengths = self.topology.borders.lengths
        distance_to_boundary = np.full(self.topology.corner_count, np.inf)
        entries = []

        for c in np.flatnonzero(corners.between_plates):
            c = int(c)
            tiles = corners.tiles[c]
            distance_to_boundary[c] = 0.0
            j = self._inner_border_index(c)
            if j is None:
                plates = [self.plates[self.tile_plates[t]] for t in tiles]
                corners.elevation[c], _ = self._boundary_elevation(c, plates)
                continue

            plate0 = self.plates[self.tile_plates[tiles[(j + 1) % 3]]]
            plate1 = self.plates[self.tile_plates[tiles[j]]]
            elevation, curve = self._boundary_elevation(c, [plate0, plate1])
            corners.elevation[c] = elevation

            origin = WavefrontOrigin(
                corner=c,
                elevation=elevation,
                plate_elevation=plate0.elevation,
                pressure=float(corners.pressure[c]),
                shear=float(corners.shear[c]),
                curve=curve,
            )
            next_corner = int(corners.corners[c][j])
            entries.append((float(lengths[corners.borders[c][j]]), len(entries), next_corner, origin))

        corners.distance_to_plate_boundary = distance_to_boundary
        self._elevated = corners.between_plates.copy()
        return entries

    def propagate(self, entries: List[Tuple[float, int, int, WavefrontOrigin]]) -> int:
        """
        Spread boundary curves inland in order of distance from the boundary.

        Returns:
            Number of interior corners elevated
        """
        corners = self.topology.corners
        borders = self.topology.borders
        elevated = self._elevated
        best = corners.distance_to_plate_boundary.copy()

        queue = []
        sequence = 0
        for distance, _, corner, origin in entries:
            if not elevated[corner] and distance < best[corner]:
                best[corner] = distance
                heapq.heappush(queue, (distance, sequence, corner, origin))
                sequence += 1

        reached = 0
        while queue:
            distance, _, corner, origin = heapq.heappop(queue)
            if elevated[corner]:
                continue

            elevated[corner] = True
            reached += 1
            corners.distance_to_plate_boundary[corner] = distance
            corners.elevation[corner] = origin.curve(
                distance,
                corners.distance_to_plate_root[corner],
                origin.elevation,
                origin.plate_elevation,
                origin.pressure,
                origin.shear,
            )

            for j in range(3):
                border = corners.borders[corner][j]
                if borders.between_plates[border]:
                    continue
                neighbour = int(corners.corners[corner][j])
                candidate = distance + borders.lengths[border]
                if not elevated[neighbour] and candidate < best[neighbour]:
                    best[neighbour] = candidate
                    heapq.heappush(queue, (candidate, sequence, neighbour, origin))
                    sequence += 1

        return reached

    def fill_unreached(self) -> None:
        """Corners no wavefront reached take their plates' elevation."""
        corners = self.topology.corners
        missing = np.flatnonzero(~self._elevated)
        if len(missing) == 0:
            return
        plate_elevations = np.array([p.elevation for p in self.plates])
        corners.elevation[missing] = plate_elevations[self.tile_plates[corners.tiles[missing]]].mean(axis=1)
        self._elevated[missing] = True
        logger.debug("Corners outside any wavefront", count=len(missing))

    def calculate_tile_elevations(self) -> None:
        tiles = self.topology.tiles
        elevation = self.topology.corners.elevation
        tiles.elevation = np.array([elevation[c].mean() for c in tiles.corners])


def generate_elevation(topology: Topology, plates: List[Plate], options: Optional[ElevationOptions] = None) -> None:
    """Convenience wrapper around ElevationEngine.generate."""
    ElevationEngine(topology, plates, options).generate()
