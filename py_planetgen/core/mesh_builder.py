"""
Spherical mesh generation for planet surfaces.

This module implements:
- Icosahedron seed graph with golden-ratio coordinates
- Subdivision of every icosahedron face into a triangular grid of degree d
- Random edge rotation ("distortion") to break up the regular grid
- Lloyd-style relaxation of nodes toward their face centroids
- Cyclic ordering of the faces around every node

The resulting graph is stored struct-of-arrays style. For every face,
``face_edges[f][i]`` is the edge opposite ``face_nodes[f][i]``, and faces are
wound counter-clockwise when viewed from outside the sphere.
"""

import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np
import structlog

from .errors import ConstraintViolation, DegenerateInputError, StructuralInvariantError
from .xorshift_prng import XorShift128, make_prng
from ..utils.vectors import adjust_range, normalize, slerp

logger = structlog.get_logger()

GOLDEN_RATIO = (1 + math.sqrt(5)) / 2

ICOSAHEDRON_EDGES = [
    (0, 1), (0, 4), (0, 5), (0, 8), (0, 10), (1, 6), (1, 7), (1, 8), (1, 10), (2, 3),
    (2, 4), (2, 5), (2, 9), (2, 11), (3, 6), (3, 7), (3, 9), (3, 11), (4, 5), (4, 8),
    (4, 9), (5, 10), (5, 11), (6, 7), (6, 8), (6, 9), (7, 10), (7, 11), (8, 9), (10, 11),
]

ICOSAHEDRON_FACES = [
    (0, 1, 8), (0, 4, 5), (0, 5, 10), (0, 8, 4), (0, 10, 1),
    (1, 6, 8), (1, 7, 6), (1, 10, 7), (2, 3, 11), (2, 4, 9),
    (2, 5, 4), (2, 9, 3), (2, 11, 5), (3, 6, 7), (3, 7, 11),
    (3, 9, 6), (4, 8, 9), (5, 11, 10), (6, 9, 8), (7, 10, 11),
]


@dataclass
class MeshOptions:
    """Tunables for distortion and relaxation."""

    distortion_rounds: int = 6  # Flip budget is spread over this many rounds
    round_relax_multiplier: float = 0.5  # Relaxation after each distortion round
    relax_multiplier: float = 0.5  # Relaxation during the convergence loop
    max_relax_iterations: int = 300
    convergence_divisor: float = 50000.0  # minShiftDelta = avgNodeRadius / divisor * N
    centroid_distance_factor: float = 0.9  # Shrinks the ideal centroid distance

    # Edge rotation predicate
    max_valence: int = 7
    min_valence: int = 5
    min_length_ratio: float = 0.5
    max_length_ratio: float = 2.0
    min_direction_agreement: float = 0.2


@dataclass
class MeshGraph:
    """Node/edge/face graph of a triangulated unit sphere.

    Mutable: distortion rotates edges in place and relaxation moves nodes.
    """

    # Generation parameters
    degree: int
    distortion_rate: float
    seed: object

    # Node data
    node_positions: np.ndarray  # (N, 3) unit vectors
    node_edges: List[List[int]]  # incident edge ids
    node_faces: List[List[int]]  # incident face ids, cyclic after finalization

    # Edge data
    edge_nodes: np.ndarray  # (E, 2)
    edge_faces: np.ndarray  # (E, 2)

    # Face data
    face_nodes: np.ndarray  # (F, 3) counter-clockwise from outside
    face_edges: np.ndarray  # (F, 3) face_edges[f][i] is opposite face_nodes[f][i]
    face_centroids: Optional[np.ndarray] = field(default=None)  # (F, 3) unit vectors

    @property
    def node_count(self) -> int:
        return len(self.node_positions)

    @property
    def edge_count(self) -> int:
        return len(self.edge_nodes)

    @property
    def face_count(self) -> int:
        return len(self.face_nodes)

    def node_valences(self) -> np.ndarray:
        """Number of faces around each node."""
        return np.array([len(faces) for faces in self.node_faces], dtype=np.int32)

    def should_rebuild(self, degree: int, distortion_rate: float, seed) -> bool:
        """Check whether a mesh with new parameters differs from this one."""
        same_degree = self.degree == degree
        same_distortion = self.distortion_rate == distortion_rate
        same_seed = self.seed == seed

        return not (same_degree and same_distortion and same_seed)

    def validate(self) -> None:
        """
        Check the graph's structural invariants.

        Raises:
            StructuralInvariantError: On any inconsistency
        """
        euler = self.node_count - self.edge_count + self.face_count
        if euler != 2:
            raise StructuralInvariantError(f"Euler characteristic is {euler}, expected 2")

        for f in range(self.face_count):
            nodes = self.face_nodes[f]
            for i in range(3):
                e = self.face_edges[f][i]
                expected = {int(nodes[(i + 1) % 3]), int(nodes[(i + 2) % 3])}
                if set(int(n) for n in self.edge_nodes[e]) != expected:
                    raise StructuralInvariantError(
                        f"Face {f} edge {i} does not join the nodes opposite node {nodes[i]}"
                    )
                if f not in self.edge_faces[e]:
                    raise StructuralInvariantError(f"Edge {e} does not list face {f}")

        for e in range(self.edge_count):
            if self.edge_faces[e][0] == self.edge_faces[e][1]:
                raise StructuralInvariantError(f"Edge {e} does not join two distinct faces")

        for n in range(self.node_count):
            if len(self.node_faces[n]) != len(self.node_edges[n]):
                raise StructuralInvariantError(
                    f"Node {n} has {len(self.node_faces[n])} faces but {len(self.node_edges[n])} edges"
                )


def distortion_rate_from_level(level: float) -> float:
    """
    Map a user-facing distortion level in [0, 1] to an edge flip rate.

    The curve is piecewise linear so that low levels stay subtle:
    0 -> 0, 0.25 -> 0.04, 0.5 -> 0.05, 0.75 -> 0.075, 1 -> 0.15.
    """
    if not 0 <= level <= 1:
        raise DegenerateInputError(f"Distortion level must be in [0, 1], got {level}")
    if level < 0.25:
        return adjust_range(level, 0, 0.25, 0, 0.04)
    if level < 0.5:
        return adjust_range(level, 0.25, 0.5, 0.04, 0.05)
    if level < 0.75:
        return adjust_range(level, 0.5, 0.75, 0.05, 0.075)
    return adjust_range(level, 0.75, 1, 0.075, 0.15)


class MeshBuilder:
    """Builds a relaxed, distorted spherical mesh."""

    def __init__(self, prng: XorShift128, options: Optional[MeshOptions] = None):
        """
        Initialize mesh builder.

        Args:
            prng: Random stream consumed by the distortion pass
            options: Distortion and relaxation tunables
        """
        self.prng = prng
        self.options = options or MeshOptions()

    def build(self, degree: int, distortion_rate: float, seed=None) -> MeshGraph:
        """
        Run the full mesh pipeline.

        Args:
            degree: Subdivision frequency of each icosahedron edge
            distortion_rate: Fraction of edges to rotate, typically 0 to 0.15
            seed: Recorded on the mesh for reuse checks

        Returns:
            Finalized MeshGraph
        """
        if degree < 1:
            raise DegenerateInputError(f"Subdivision degree must be >= 1, got {degree}")
        if distortion_rate < 0:
            raise DegenerateInputError(f"Distortion rate must be >= 0, got {distortion_rate}")

        logger.info("Building planet mesh", degree=degree, distortion_rate=distortion_rate)

        mesh = self.subdivide(self.icosahedron(), degree)
        mesh.distortion_rate = distortion_rate
        mesh.seed = seed

        self.distort(mesh, distortion_rate)

        self.relax_until_converged(mesh)
        self.finalize(mesh)

        logger.info(
            "Planet mesh built",
            nodes=mesh.node_count,
            edges=mesh.edge_count,
            faces=mesh.face_count,
        )
        return mesh

    def icosahedron(self) -> MeshGraph:
        """The 12-node, 30-edge, 20-face base polyhedron."""
        du = 1.0 / math.sqrt(GOLDEN_RATIO * GOLDEN_RATIO + 1.0)
        dv = GOLDEN_RATIO * du

        positions = np.array([
            [0, +dv, +du], [0, +dv, -du], [0, -dv, +du], [0, -dv, -du],
            [+du, 0, +dv], [-du, 0, +dv], [+du, 0, -dv], [-du, 0, -dv],
            [+dv, +du, 0], [+dv, -du, 0], [-dv, +du, 0], [-dv, -du, 0],
        ], dtype=float)

        faces = []
        for a, b, c in ICOSAHEDRON_FACES:
            normal = np.cross(positions[b] - positions[a], positions[c] - positions[a])
            if np.dot(normal, positions[a] + positions[b] + positions[c]) < 0:
                b, c = c, b
            faces.append((a, b, c))

        return _assemble(positions, faces, degree=1)

    def subdivide(self, base: MeshGraph, degree: int) -> MeshGraph:
        """
        Split every base face into ``degree**2`` faces.

        Each base edge is cut into ``degree`` arcs by slerped nodes, and the
        interior of each face is filled row by row between its side chains.
        """
        if degree == 1:
            return base

        positions: List[np.ndarray] = [p for p in base.node_positions]

        # Node chain along each base edge, from edge_nodes[e][0] to edge_nodes[e][1]
        edge_chains: List[List[int]] = []
        for e in range(base.edge_count):
            a, b = (int(n) for n in base.edge_nodes[e])
            chain = [a]
            for s in range(1, degree):
                positions.append(slerp(base.node_positions[a], base.node_positions[b], s / degree))
                chain.append(len(positions) - 1)
            chain.append(b)
            edge_chains.append(chain)

        def side(a: int, b: int, e: int) -> List[int]:
            chain = edge_chains[e]
            return chain if chain[0] == a else chain[::-1]

        faces: List[Tuple[int, int, int]] = []
        for f in range(base.face_count):
            a, b, c = (int(n) for n in base.face_nodes[f])
            # face_edges[f][i] is opposite node i
            ab = side(a, b, base.face_edges[f][2])
            ac = side(a, c, base.face_edges[f][1])
            bc = side(b, c, base.face_edges[f][0])

            grid: List[List[int]] = []
            for r in range(degree + 1):
                width = degree - r
                if r == 0:
                    grid.append(list(ab))
                    continue
                row = [ac[r]]
                for k in range(1, width):
                    positions.append(
                        slerp(positions[ac[r]], positions[bc[r]], k / width)
                    )
                    row.append(len(positions) - 1)
                if width > 0:
                    row.append(bc[r])
                grid.append(row)

            for r in range(degree):
                width = degree - r
                for k in range(width):
                    faces.append((grid[r][k], grid[r][k + 1], grid[r + 1][k]))
                    if k < width - 1:
                        faces.append((grid[r][k + 1], grid[r + 1][k + 1], grid[r + 1][k]))

        mesh = _assemble(np.array(positions), faces, degree=degree)
        logger.debug(
            "Subdivided icosahedron",
            degree=degree,
            nodes=mesh.node_count,
            edges=mesh.edge_count,
            faces=mesh.face_count,
        )
        return mesh

    def distort(self, mesh: MeshGraph, rate: float) -> int:
        """
        Rotate ``ceil(E * rate)`` edges over several rounds, relaxing after each.

        The relaxation passes run even when a round has nothing to rotate, so a
        zero rate still smooths the subdivided mesh on the same schedule.

        Returns:
            Number of edges actually rotated
        """
        total = math.ceil(mesh.edge_count * rate)
        remaining_rounds = self.options.distortion_rounds
        rotated = 0

        while remaining_rounds > 0:
            iteration_total = total // remaining_rounds
            total -= iteration_total
            rotated += self._distort_round(mesh, iteration_total)
            self.relax(mesh, self.options.round_relax_multiplier)
            remaining_rounds -= 1

        logger.info("Mesh distorted", rotated_edges=rotated, target_rate=rate)
        return rotated

    def _distort_round(self, mesh: MeshGraph, flips: int) -> int:
        done = 0
        for _ in range(flips):
            try:
                self.rotate_random_edge(mesh)
            except ConstraintViolation as exc:
                # The mesh is unchanged, so later attempts this round would fail too
                logger.warning("Stopping distortion round early", reason=str(exc), flips_done=done)
                break
            done += 1
        return done

    def rotate_random_edge(self, mesh: MeshGraph) -> int:
        """
        Rotate the first eligible edge at or after a random start index.

        Returns:
            Index of the rotated edge

        Raises:
            ConstraintViolation: If no edge satisfies the rotation predicate
        """
        edge_count = mesh.edge_count
        edge = self.prng.integer_exclusive(0, edge_count)
        for _ in range(edge_count):
            if self.try_rotate_edge(mesh, edge):
                return edge
            edge = (edge + 1) % edge_count
        raise ConstraintViolation(f"No rotatable edge among {edge_count} edges")

    def try_rotate_edge(self, mesh: MeshGraph, edge: int) -> bool:
        """
        Rotate an edge to join the two apex nodes of its faces, if allowed.

        With faces F0 = (N0, O0, O1) and F1 = (N1, O1, O0) sharing edge O0-O1,
        the rotation produces F0 = (N0, O0, N1) and F1 = (N1, O1, N0).
        """
        f0, f1 = (int(f) for f in mesh.edge_faces[edge])
        a = _position_of(mesh.face_edges[f0], edge)
        b = _position_of(mesh.face_edges[f1], edge)

        n0 = int(mesh.face_nodes[f0][a])
        o0 = int(mesh.face_nodes[f0][(a + 1) % 3])
        o1 = int(mesh.face_nodes[f0][(a + 2) % 3])
        n1 = int(mesh.face_nodes[f1][b])

        if not self._rotation_allowed(mesh, o0, o1, n0, n1):
            return False

        e_o1_n0 = int(mesh.face_edges[f0][(a + 1) % 3])
        e_o0_n1 = int(mesh.face_edges[f1][(b + 1) % 3])

        mesh.face_nodes[f0][(a + 2) % 3] = n1
        mesh.face_edges[f0][a] = e_o0_n1
        mesh.face_edges[f0][(a + 1) % 3] = edge

        mesh.face_nodes[f1][(b + 2) % 3] = n0
        mesh.face_edges[f1][b] = e_o1_n0
        mesh.face_edges[f1][(b + 1) % 3] = edge

        _replace(mesh.edge_faces[e_o0_n1], f1, f0)
        _replace(mesh.edge_faces[e_o1_n0], f0, f1)
        mesh.edge_nodes[edge] = (n0, n1)

        mesh.node_faces[o0].remove(f1)
        mesh.node_faces[o1].remove(f0)
        mesh.node_faces[n0].append(f1)
        mesh.node_faces[n1].append(f0)

        mesh.node_edges[o0].remove(edge)
        mesh.node_edges[o1].remove(edge)
        mesh.node_edges[n0].append(edge)
        mesh.node_edges[n1].append(edge)

        return True

    def _rotation_allowed(self, mesh: MeshGraph, o0: int, o1: int, n0: int, n1: int) -> bool:
        opts = self.options
        faces = mesh.node_faces
        if (len(faces[n0]) >= opts.max_valence or len(faces[n1]) >= opts.max_valence
                or len(faces[o0]) <= opts.min_valence or len(faces[o1]) <= opts.min_valence):
            return False

        p = mesh.node_positions
        old_length = np.linalg.norm(p[o1] - p[o0])
        new_length = np.linalg.norm(p[n1] - p[n0])
        if new_length == 0:
            return False
        ratio = old_length / new_length
        if ratio >= opts.max_length_ratio or ratio <= opts.min_length_ratio:
            return False

        v0 = (p[o1] - p[o0]) / old_length
        if (np.dot(v0, normalize(p[n0] - p[o0])) < opts.min_direction_agreement
                or np.dot(v0, normalize(p[n1] - p[o0])) < opts.min_direction_agreement):
            return False
        v0 = -v0
        if (np.dot(v0, normalize(p[n0] - p[o1])) < opts.min_direction_agreement
                or np.dot(v0, normalize(p[n1] - p[o1])) < opts.min_direction_agreement):
            return False

        return True

    def relax(self, mesh: MeshGraph, multiplier: float) -> float:
        """
        Move every node toward the centroids of its faces.

        All shifts are computed from the current positions before any node
        moves. Rotation of the edges around a node damps its movement.

        Returns:
            Total distance moved by all nodes
        """
        positions = mesh.node_positions
        face_nodes = mesh.face_nodes
        edge_nodes = mesh.edge_nodes

        ideal_face_area = 4 * math.pi / mesh.face_count
        ideal_edge_length = math.sqrt(ideal_face_area * 4 / math.sqrt(3))
        ideal_distance = ideal_edge_length * math.sqrt(3) / 3 * self.options.centroid_distance_factor

        corners = positions[face_nodes]  # (F, 3, 3)
        centroids = normalize(corners.mean(axis=1))
        to_centroid = centroids[:, None, :] - corners
        lengths = np.linalg.norm(to_centroid, axis=2, keepdims=True)
        safe_lengths = np.where(lengths == 0, 1.0, lengths)
        to_centroid *= multiplier * (lengths - ideal_distance) / safe_lengths

        shifts = np.zeros_like(positions)
        np.add.at(shifts, face_nodes.ravel(), to_centroid.reshape(-1, 3))

        # Keep only the tangential part of each shift
        radial = np.sum(shifts * positions, axis=1, keepdims=True)
        targets = normalize(positions + shifts - radial * positions)

        old_dirs = normalize(positions[edge_nodes[:, 1]] - positions[edge_nodes[:, 0]])
        new_dirs = normalize(targets[edge_nodes[:, 1]] - targets[edge_nodes[:, 0]])
        edge_suppression = (1 - np.sum(old_dirs * new_dirs, axis=1)) * 0.5
        suppression = np.zeros(mesh.node_count)
        np.maximum.at(suppression, edge_nodes[:, 0], edge_suppression)
        np.maximum.at(suppression, edge_nodes[:, 1], edge_suppression)

        step = 1 - np.sqrt(np.clip(suppression, 0.0, 1.0))
        moved = normalize(positions + (targets - positions) * step[:, None])
        total_shift = float(np.linalg.norm(moved - positions, axis=1).sum())

        mesh.node_positions = moved
        return total_shift

    def relax_until_converged(self, mesh: MeshGraph) -> int:
        """
        Relax repeatedly until successive total shifts stop changing.

        Returns:
            Number of relaxation passes run
        """
        average_node_radius = math.sqrt(4 * math.pi / mesh.node_count)
        min_shift_delta = average_node_radius / self.options.convergence_divisor * mesh.node_count

        current_shift = self.relax(mesh, self.options.relax_multiplier)
        iterations = 1
        while iterations < self.options.max_relax_iterations:
            prior_shift = current_shift
            current_shift = self.relax(mesh, self.options.relax_multiplier)
            iterations += 1
            if abs(current_shift - prior_shift) < min_shift_delta:
                break

        logger.info("Mesh relaxed", iterations=iterations, last_shift=current_shift)
        return iterations

    def finalize(self, mesh: MeshGraph) -> None:
        """Compute face centroids and put each node's faces in cyclic order."""
        mesh.face_centroids = normalize(mesh.node_positions[mesh.face_nodes].mean(axis=1))

        for node in range(mesh.node_count):
            faces = mesh.node_faces[node]
            ordered = [faces[0]]
            while len(ordered) < len(faces):
                next_face = self._next_face(mesh, node, ordered[-1])
                if next_face in ordered:
                    raise StructuralInvariantError(f"Faces around node {node} do not form a single cycle")
                ordered.append(next_face)
            if self._next_face(mesh, node, ordered[-1]) != ordered[0]:
                raise StructuralInvariantError(f"Faces around node {node} do not close")
            mesh.node_faces[node] = ordered

    @staticmethod
    def _next_face(mesh: MeshGraph, node: int, face: int) -> int:
        """Counter-clockwise neighbour of face around node."""
        k = _position_of(mesh.face_nodes[face], node)
        edge = mesh.face_edges[face][(k + 1) % 3]
        f0, f1 = (int(f) for f in mesh.edge_faces[edge])
        return f1 if f0 == face else f0


def _position_of(row, value) -> int:
    for i in range(3):
        if row[i] == value:
            return i
    raise StructuralInvariantError(f"{value} not found in {list(row)}")


def _replace(pair, old, new) -> None:
    if pair[0] == old:
        pair[0] = new
    elif pair[1] == old:
        pair[1] = new
    else:
        raise StructuralInvariantError(f"{old} not found in {list(pair)}")


def _assemble(positions: np.ndarray, faces: List[Tuple[int, int, int]], degree: int) -> MeshGraph:
    """Derive edges and incidence lists from positions and wound faces."""
    node_edges: List[List[int]] = [[] for _ in range(len(positions))]
    node_faces: List[List[int]] = [[] for _ in range(len(positions))]
    edge_lookup: Dict[Tuple[int, int], int] = {}
    edge_nodes: List[Tuple[int, int]] = []
    edge_faces: List[List[int]] = []
    face_edges: List[List[int]] = []

    for f, nodes in enumerate(faces):
        row = []
        for i in range(3):
            a = nodes[(i + 1) % 3]
            b = nodes[(i + 2) % 3]
            key = (a, b) if a < b else (b, a)
            e = edge_lookup.get(key)
            if e is None:
                e = len(edge_nodes)
                edge_lookup[key] = e
                edge_nodes.append((a, b))
                edge_faces.append([])
                node_edges[a].append(e)
                node_edges[b].append(e)
            edge_faces[e].append(f)
            row.append(e)
        face_edges.append(row)
        for n in nodes:
            node_faces[n].append(f)

    for e, incident in enumerate(edge_faces):
        if len(incident) != 2:
            raise StructuralInvariantError(f"Edge {e} has {len(incident)} faces, expected 2")

    return MeshGraph(
        degree=degree,
        distortion_rate=0.0,
        seed=None,
        node_positions=np.asarray(positions, dtype=float),
        node_edges=node_edges,
        node_faces=node_faces,
        edge_nodes=np.array(edge_nodes, dtype=np.int64),
        edge_faces=np.array(edge_faces, dtype=np.int64),
        face_nodes=np.array(faces, dtype=np.int64),
        face_edges=np.array(face_edges, dtype=np.int64),
    )


def build_mesh(subdivisions: int, distortion: float, seed=None,
               options: Optional[MeshOptions] = None) -> MeshGraph:
    """
    Build a finalized planet mesh.

    Args:
        subdivisions: Subdivision degree (each icosahedron edge split into this many arcs)
        distortion: Edge flip rate in [0, 1]
        seed: int, str, 4-tuple or an existing XorShift128
        options: Mesh tunables

    Returns:
        MeshGraph ready for topology derivation
    """
    if subdivisions < 1:
        raise DegenerateInputError(f"Subdivision degree must be >= 1, got {subdivisions}")
    if not 0 <= distortion <= 1:
        raise DegenerateInputError(f"Distortion must be in [0, 1], got {distortion}")

    prng = make_prng(seed)
    builder = MeshBuilder(prng, options)
    recorded_seed = seed if not isinstance(seed, XorShift128) else seed.state()
    return builder.build(subdivisions, distortion, recorded_seed)


def build_or_reuse_mesh(existing: Optional[MeshGraph], subdivisions: int,
                        distortion: float, seed=None,
                        options: Optional[MeshOptions] = None) -> MeshGraph:
    """
    Reuse an existing mesh when its parameters match, otherwise build a new one.

    Args:
        existing: Previously built mesh, or None
        subdivisions: Subdivision degree
        distortion: Edge flip rate
        seed: Seed for the distortion pass

    Returns:
        MeshGraph (existing or new)
    """
    if existing is None or existing.should_rebuild(subdivisions, distortion, seed):
        logger.info("Building new mesh", subdivisions=subdivisions, distortion=distortion)
        return build_mesh(subdivisions, distortion, seed, options)

    logger.info("Reusing existing mesh", subdivisions=subdivisions, seed=seed)
    return existing
