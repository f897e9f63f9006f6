"""
Dual topology of a planet mesh: tiles, corners and borders.

Each mesh node becomes a Tile, each face a Corner and each edge a Border.
Entities refer to each other only by index into the arrays held by Topology.
Per-entity simulation fields (elevation, currents, heat, moisture) live on
the same arrays and are filled in by the later pipeline stages.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import List, NamedTuple, Optional

import numpy as np
import structlog
from scipy.spatial import cKDTree

from .errors import DegenerateInputError, StructuralInvariantError
from .mesh_builder import MeshGraph
from ..utils.vectors import normalize, spherical_triangle_area

logger = structlog.get_logger()


class EntityKind(Enum):
    """The three kinds of topology entity."""

    TILE = "tile"
    CORNER = "corner"
    BORDER = "border"


class EntityRef(NamedTuple):
    """Reference to one tile, corner or border."""

    kind: EntityKind
    index: int


@dataclass
class CurrentField:
    """Per-corner flow field (air or water)."""

    direction: np.ndarray  # (C, 3) flow vector, zero where there is no flow
    speed: np.ndarray  # (C,) magnitude of direction
    outflow: np.ndarray  # (C, 3) weight toward corners.corners[c][j], rows sum to 1 or 0


@dataclass
class HeatState:
    """Per-corner heat diffusion state."""

    current: np.ndarray  # absorbed heat
    absorption: np.ndarray  # heat absorbed per iteration at most
    limit: np.ndarray  # absorbed heat at saturation
    air: np.ndarray  # heat carried by the air over the corner
    inflow: np.ndarray  # heat arriving this iteration


@dataclass
class MoistureState:
    """Per-corner moisture diffusion state."""

    air: np.ndarray  # moisture carried by the air over the corner
    inflow: np.ndarray  # moisture arriving this iteration
    precipitation: np.ndarray  # moisture deposited
    rate: np.ndarray  # moisture deposited per iteration at most
    limit: np.ndarray  # deposited moisture at saturation


@dataclass
class CornerData:
    """Corner arrays, one row per mesh face."""

    positions: np.ndarray  # (C, 3)
    tiles: np.ndarray  # (C, 3) tiles[c][j] is mesh face node j
    borders: np.ndarray  # (C, 3) borders[c][j] is opposite tiles[c][j]
    corners: np.ndarray  # (C, 3) corners[c][j] lies across borders[c][j]
    area: np.ndarray  # (C,)

    elevation: np.ndarray = None
    pressure: np.ndarray = None
    shear: np.ndarray = None
    temperature: np.ndarray = None
    humidity: np.ndarray = None
    between_plates: np.ndarray = None
    distance_to_plate_root: np.ndarray = None
    distance_to_plate_boundary: np.ndarray = None

    air: Optional[CurrentField] = None
    water: Optional[CurrentField] = None
    heat: Optional[HeatState] = None
    moisture: Optional[MoistureState] = None

    def __post_init__(self):
        count = len(self.positions)
        for name in ("elevation", "pressure", "shear", "temperature", "humidity"):
            if getattr(self, name) is None:
                setattr(self, name, np.zeros(count))
        if self.between_plates is None:
            self.between_plates = np.zeros(count, dtype=bool)
        if self.distance_to_plate_root is None:
            self.distance_to_plate_root = np.full(count, np.inf)
        if self.distance_to_plate_boundary is None:
            self.distance_to_plate_boundary = np.full(count, np.inf)

    def __len__(self):
        return len(self.positions)


@dataclass
class BorderData:
    """Border arrays, one row per mesh edge."""

    corners: np.ndarray  # (B, 2) ordered by the scan of tiles[b][0]
    tiles: np.ndarray  # (B, 2)
    borders: np.ndarray  # (B, 4) borders sharing a corner with this one
    midpoints: np.ndarray  # (B, 3)
    lengths: np.ndarray  # (B,)
    between_plates: np.ndarray = None

    def __post_init__(self):
        if self.between_plates is None:
            self.between_plates = np.zeros(len(self.tiles), dtype=bool)

    def __len__(self):
        return len(self.tiles)


@dataclass
class TileData:
    """Tile arrays, one row per mesh node."""

    positions: np.ndarray  # (T, 3)
    corners: List[List[int]]  # counter-clockwise seen from outside
    borders: List[List[int]]  # borders[t][k] joins corners[t][k] and corners[t][k + 1]
    tiles: List[List[int]]  # tiles[t][k] lies across borders[t][k]
    area: np.ndarray  # (T,)
    average_positions: np.ndarray  # (T, 3) centre of the bounding sphere
    normals: np.ndarray  # (T, 3)
    bounding_radii: np.ndarray  # (T,)

    elevation: np.ndarray = None
    temperature: np.ndarray = None
    humidity: np.ndarray = None
    plate_movement: np.ndarray = None
    plate: List[Optional[int]] = None
    biome: List[Optional[object]] = None

    def __post_init__(self):
        count = len(self.positions)
        for name in ("elevation", "temperature", "humidity"):
            if getattr(self, name) is None:
                setattr(self, name, np.zeros(count))
        if self.plate_movement is None:
            self.plate_movement = np.zeros((count, 3))
        if self.plate is None:
            self.plate = [None] * count
        if self.biome is None:
            self.biome = [None] * count

    def __len__(self):
        return len(self.positions)


@dataclass
class Topology:
    """Tiles, corners and borders of a planet, cross-referenced by index."""

    radius: float
    corners: CornerData
    borders: BorderData
    tiles: TileData
    _tree: Optional[cKDTree] = field(default=None, repr=False, compare=False)

    @property
    def corner_count(self) -> int:
        return len(self.corners)

    @property
    def border_count(self) -> int:
        return len(self.borders)

    @property
    def tile_count(self) -> int:
        return len(self.tiles)

    def corners_of(self, ref: EntityRef) -> List[int]:
        """Corners adjacent to a tile, corner or border."""
        if ref.kind is EntityKind.TILE:
            return list(self.tiles.corners[ref.index])
        if ref.kind is EntityKind.CORNER:
            return [int(c) for c in self.corners.corners[ref.index]]
        return [int(c) for c in self.borders.corners[ref.index]]

    def borders_of(self, ref: EntityRef) -> List[int]:
        """Borders adjacent to a tile, corner or border."""
        if ref.kind is EntityKind.TILE:
            return list(self.tiles.borders[ref.index])
        if ref.kind is EntityKind.CORNER:
            return [int(b) for b in self.corners.borders[ref.index]]
        return [int(b) for b in self.borders.borders[ref.index]]

    def tiles_of(self, ref: EntityRef) -> List[int]:
        """Tiles adjacent to a tile, corner or border."""
        if ref.kind is EntityKind.TILE:
            return list(self.tiles.tiles[ref.index])
        if ref.kind is EntityKind.CORNER:
            return [int(t) for t in self.corners.tiles[ref.index]]
        return [int(t) for t in self.borders.tiles[ref.index]]

    def opposite(self, ref: EntityRef, border: int) -> int:
        """
        The other endpoint of a border relative to a tile or a corner.

        Raises:
            ValueError: If ref is a border or is not an endpoint of the border
        """
        if ref.kind is EntityKind.TILE:
            pair = self.borders.tiles[border]
        elif ref.kind is EntityKind.CORNER:
            pair = self.borders.corners[border]
        else:
            raise ValueError("Borders have no opposite across another border")

        if pair[0] == ref.index:
            return int(pair[1])
        if pair[1] == ref.index:
            return int(pair[0])
        raise ValueError(f"{ref.kind.value} {ref.index} is not an endpoint of border {border}")

    def corner_vector_to(self, corner: int, other: int) -> np.ndarray:
        """Vector from one corner's position to another's."""
        return self.corners.positions[other] - self.corners.positions[corner]

    def border_is_land_boundary(self, border: int) -> bool:
        """True when exactly one of the border's tiles is above sea level."""
        t0, t1 = self.borders.tiles[border]
        return bool((self.tiles.elevation[t0] > 0) != (self.tiles.elevation[t1] > 0))

    def find_tile(self, point: np.ndarray) -> int:
        """
        Find the tile whose centre is nearest to a point.

        The point is projected onto the planet surface first.

        Args:
            point: Any non-zero 3D point

        Returns:
            Tile index
        """
        if self._tree is None:
            self._tree = cKDTree(self.tiles.positions)
        surface_point = normalize(np.asarray(point, dtype=float)) * self.radius
        _, index = self._tree.query(surface_point)
        return int(index)

    def tiles_within(self, point: np.ndarray, distance: float) -> List[int]:
        """Tiles whose bounding sphere reaches within distance of a point."""
        if self._tree is None:
            self._tree = cKDTree(self.tiles.positions)
        reach = distance + float(self.tiles.bounding_radii.max()) * 2
        point = np.asarray(point, dtype=float)
        candidates = self._tree.query_ball_point(point, reach)
        result = []
        for t in sorted(candidates):
            gap = np.linalg.norm(self.tiles.average_positions[t] - point) - self.tiles.bounding_radii[t]
            if gap <= distance:
                result.append(int(t))
        return result


def derive_topology(mesh: MeshGraph, radius: float) -> Topology:
    """
    Build the tile/corner/border topology of a finalized mesh.

    The mesh is not modified, so deriving twice yields identical results.

    Args:
        mesh: Mesh whose node faces are in cyclic order
        radius: Planet radius applied to all positions and areas

    Returns:
        Topology with geometry and adjacency filled in
    """
    if radius is None or not radius > 0:
        raise DegenerateInputError(f"Planet radius must be > 0, got {radius}")
    if mesh.degree < 1:
        raise DegenerateInputError(f"Subdivision degree must be >= 1, got {mesh.degree}")
    if mesh.face_centroids is None:
        raise StructuralInvariantError("Mesh has not been finalized")

    logger.info("Deriving topology", tiles=mesh.node_count, corners=mesh.face_count, radius=radius)

    corner_count = mesh.face_count
    border_count = mesh.edge_count
    tile_count = mesh.node_count

    # Corners
    corner_positions = mesh.face_centroids * radius
    corner_tiles = mesh.face_nodes.copy()
    corner_borders = mesh.face_edges.copy()
    across = mesh.edge_faces[corner_borders]  # (C, 3, 2)
    own = np.arange(corner_count)[:, None]
    corner_corners = np.where(across[:, :, 0] == own, across[:, :, 1], across[:, :, 0])
    if np.any(corner_corners == own):
        raise StructuralInvariantError("A corner is adjacent to itself")

    # Borders
    border_tiles = mesh.edge_nodes.copy()
    border_corners = mesh.edge_faces.copy()
    if np.any(border_tiles[:, 0] == border_tiles[:, 1]) or np.any(border_corners[:, 0] == border_corners[:, 1]):
        raise StructuralInvariantError("A border does not join two distinct tiles and corners")

    # Tiles
    tile_positions = mesh.node_positions * radius
    tile_corners: List[List[int]] = []
    tile_borders: List[List[int]] = []
    tile_tiles: List[List[int]] = []
    tile_area = np.zeros(tile_count)
    average_positions = np.zeros((tile_count, 3))
    normals = np.zeros((tile_count, 3))
    bounding_radii = np.zeros(tile_count)

    for t in range(tile_count):
        corners = [int(c) for c in mesh.node_faces[t]]
        if not 5 <= len(corners) <= 7:
            raise StructuralInvariantError(f"Tile {t} has {len(corners)} corners, expected 5 to 7")

        borders = []
        neighbours = []
        for k, c0 in enumerate(corners):
            c1 = corners[(k + 1) % len(corners)]
            border = _border_between(mesh, t, c0, c1)
            if border_tiles[border][0] == t:
                border_corners[border] = (c0, c1)
            borders.append(border)
            neighbours.append(int(border_tiles[border][1] if border_tiles[border][0] == t else border_tiles[border][0]))

        tile_corners.append(corners)
        tile_borders.append(borders)
        tile_tiles.append(neighbours)

        points = corner_positions[corners]
        centre = tile_positions[t]
        normal = np.zeros(3)
        area = 0.0
        for k in range(len(corners)):
            p0 = points[k]
            p1 = points[(k + 1) % len(corners)]
            normal += np.cross(p0 - centre, p1 - centre)
            area += spherical_triangle_area(centre, p0, p1)
        tile_area[t] = area * radius * radius
        normals[t] = normalize(normal)
        average_positions[t] = points.mean(axis=0)
        bounding_radii[t] = np.linalg.norm(points - average_positions[t], axis=1).max()

    # Corner area is the share of each adjacent tile's area
    corner_share = np.array([tile_area[t] / len(tile_corners[t]) for t in range(tile_count)])
    corner_area = corner_share[corner_tiles].sum(axis=1)

    # Borders sharing a corner, two at each end
    border_borders = np.zeros((border_count, 4), dtype=np.int64)
    for b in range(border_count):
        adjacent = []
        for c in border_corners[b]:
            adjacent.extend(int(x) for x in corner_borders[c] if x != b)
        if len(adjacent) != 4:
            raise StructuralInvariantError(f"Border {b} has {len(adjacent)} adjacent borders, expected 4")
        border_borders[b] = adjacent

    ends = corner_positions[border_corners]  # (B, 2, 3)
    midpoints = ends.mean(axis=1)
    lengths = np.linalg.norm(ends[:, 0] - ends[:, 1], axis=1)

    topology = Topology(
        radius=float(radius),
        corners=CornerData(
            positions=corner_positions,
            tiles=corner_tiles,
            borders=corner_borders,
            corners=corner_corners,
            area=corner_area,
        ),
        borders=BorderData(
            corners=border_corners,
            tiles=border_tiles,
            borders=border_borders,
            midpoints=midpoints,
            lengths=lengths,
        ),
        tiles=TileData(
            positions=tile_positions,
            corners=tile_corners,
            borders=tile_borders,
            tiles=tile_tiles,
            area=tile_area,
            average_positions=average_positions,
            normals=normals,
            bounding_radii=bounding_radii,
        ),
    )

    logger.info(
        "Topology derived",
        surface_area=float(tile_area.sum()),
        expected_area=4 * math.pi * radius * radius,
    )
    return topology


def _border_between(mesh: MeshGraph, tile: int, c0: int, c1: int) -> int:
    """The edge of a node shared by two of its faces."""
    wanted = {c0, c1}
    for edge in mesh.node_edges[tile]:
        if {int(f) for f in mesh.edge_faces[edge]} == wanted:
            return int(edge)
    raise StructuralInvariantError(f"Tile {tile} has no border between corners {c0} and {c1}")
