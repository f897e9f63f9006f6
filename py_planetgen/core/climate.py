"""
Climate simulation for temperature and humidity.

This module implements:
- Air currents composed from bands of rotating whorls
- Ocean currents from one whorl per oceanic plate plus coastline repulsion
- Heat diffusion carried downstream by air and water currents
- Moisture diffusion carried downstream by air currents
- Temperature and humidity per corner and per tile

All flow fields are computed on the unit sphere; areas and positions keep
the planet radius.
"""

import math
from dataclasses import dataclass
from typing import List, NamedTuple, Optional, Tuple

import numpy as np
import structlog

from .plates import Plate
from .topology import CurrentField, HeatState, MoistureState, Topology
from .xorshift_prng import XorShift128
from ..utils.vectors import normalize, rotate_about_axis

logger = structlog.get_logger()

X_AXIS = np.array([1.0, 0.0, 0.0])
Y_AXIS = np.array([0.0, 1.0, 0.0])


@dataclass
class ClimateOptions:
    """Climate calculation options."""

    # Air whorls
    min_layers: int = 4
    max_layers: int = 7
    polar_strength: Tuple[float, float] = (2 * math.pi / 36, 2 * math.pi / 24)
    band_strength: Tuple[float, float] = (2 * math.pi / 48, 2 * math.pi / 32)
    radius_jitter: Tuple[float, float] = (0.8, 1.2)

    # Ocean currents
    ocean_strength: Tuple[float, float] = (2 * math.pi / 96, 2 * math.pi / 64)
    coast_repulsion: float = 0.02  # Push away from each adjacent land corner

    # Heat
    heat_absorption: float = 0.01  # Share of the limit absorbed per step at the fastest current
    land_absorption_factor: float = 2.0
    heat_loss: float = 0.02  # Fraction of saturation lost each iteration
    min_current_speed: float = 0.1  # Floor of the relative current speed

    # Moisture
    moisture_rate: float = 0.0075
    cold_moisture_bonus: float = 0.1
    elevation_moisture_bonus: float = 0.5
    base_moisture_limit: float = 0.25
    elevation_moisture_limit: float = 0.25

    # Diffusion stopping rules
    max_diffusion_iterations: int = 1000
    convergence_threshold: float = 1e-7  # Of the total budget, per iteration


class Whorl(NamedTuple):
    """Rotating vortex on the unit sphere."""

    center: np.ndarray
    strength: float  # Rotation angle applied at the whorl's centre, signed
    radius: float  # Angular radius of influence


def compose_whorls(positions: np.ndarray, whorls: List[Whorl]) -> np.ndarray:
    """
    Weighted sum of the displacement each whorl applies to each position.

    Args:
        positions: (N, 3) unit vectors
        whorls: Whorls to combine

    Returns:
        (N, 3) current vectors, zero where no whorl reaches
    """
    total = np.zeros_like(positions)
    weights = np.zeros(len(positions))

    for whorl in whorls:
        angles = np.arccos(np.clip(positions @ whorl.center, -1.0, 1.0))
        inside = np.flatnonzero(angles < whorl.radius)
        if len(inside) == 0:
            continue
        normalized = angles[inside] / whorl.radius
        weight = (1 - normalized) * normalized
        rotated = rotate_about_axis(positions[inside], whorl.center, whorl.strength)
        total[inside] += (rotated - positions[inside]) * weight[:, None]
        weights[inside] += weight

    has_weight = weights > 0
    total[has_weight] /= weights[has_weight][:, None]
    return total


def outflow_weights(topology: Topology, vectors: np.ndarray, allowed: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Share of each corner's flow sent to each of its three neighbours.

    Args:
        topology: Planet topology
        vectors: (C, 3) flow vectors
        allowed: Optional (C, 3) mask of neighbours that may receive flow

    Returns:
        (C, 3) weights; each row sums to 1, or 0 when nothing flows
    """
    corners = topology.corners
    to_neighbours = normalize(
        (corners.positions[corners.corners] - corners.positions[:, None, :]).reshape(-1, 3)
    ).reshape(-1, 3, 3)
    dots = np.einsum("cjk,ck->cj", to_neighbours, vectors)
    weights = np.maximum(dots, 0.0)
    if allowed is not None:
        weights = np.where(allowed, weights, 0.0)
    sums = weights.sum(axis=1, keepdims=True)
    return np.where(sums > 0, weights / np.where(sums > 0, sums, 1.0), 0.0)


class ClimateEngine:
    """Generates currents, temperature and humidity over a topology."""

    def __init__(
        self,
        topology: Topology,
        plates: List[Plate],
        prng: XorShift128,
        options: Optional[ClimateOptions] = None,
    ):
        """
        Initialize climate engine.

        Args:
            topology: Topology with elevation populated
            plates: Plates from plate assignment
            prng: Random stream for whorl placement
            options: Climate calculation options
        """
        self.topology = topology
        self.plates = plates
        self.prng = prng
        self.options = options or ClimateOptions()
        self.unit_positions = topology.corners.positions / topology.radius
        self.is_land = topology.corners.elevation > 0
        self._last_inflow = None  # Inflow of the final diffusion iteration

    def generate(self, heat_level: float, moisture_level: float) -> None:
        """Run the whole climate pipeline."""
        logger.info("Generating climate", heat_level=heat_level, moisture_level=moisture_level)

        self.generate_air_currents()
        self.generate_ocean_currents()
        self.diffuse_heat(heat_level)
        self.calculate_temperature()
        self.diffuse_moisture(moisture_level)
        self.calculate_humidity()

        tiles = self.topology.tiles
        logger.info(
            "Climate generated",
            min_temperature=float(tiles.temperature.min()),
            max_temperature=float(tiles.temperature.max()),
            mean_humidity=float(tiles.humidity.mean()),
        )

    def generate_air_whorls(self) -> List[Whorl]:
        """
        Place bands of alternating whorls from pole to pole.

        Returns:
            Whorls ordered north to south
        """
        prng = self.prng
        opts = self.options
        direction = 1 if prng.integer(0, 1) else -1
        layer_count = prng.integer(opts.min_layers, opts.max_layers)
        base_radius = math.pi / (layer_count - 1)
        tilt_jitter = 2 * math.pi / (2 * (layer_count + 4))

        whorls = []

        center = rotate_about_axis(Y_AXIS, X_AXIS, prng.real_inclusive(0, tilt_jitter))
        center = rotate_about_axis(center, Y_AXIS, prng.real(0, 2 * math.pi))
        whorls.append(Whorl(
            center=normalize(center),
            strength=prng.real_inclusive(*opts.polar_strength) * direction,
            radius=base_radius * prng.real_inclusive(*opts.radius_jitter),
        ))

        for i in range(1, layer_count - 1):
            direction = -direction
            tilt = i / (layer_count - 1) * math.pi
            count = math.ceil(math.sin(tilt) * 2 * math.pi / base_radius)
            for j in range(count):
                center = rotate_about_axis(Y_AXIS, X_AXIS, prng.real_inclusive(0, tilt_jitter))
                center = rotate_about_axis(center, X_AXIS, tilt)
                center = rotate_about_axis(center, Y_AXIS, 2 * math.pi * (j + (i % 2) / 2) / count)
                whorls.append(Whorl(
                    center=normalize(center),
                    strength=prng.real_inclusive(*opts.band_strength) * direction,
                    radius=base_radius * prng.real_inclusive(*opts.radius_jitter),
                ))

        direction = -direction
        center = rotate_about_axis(Y_AXIS, X_AXIS, prng.real_inclusive(0, tilt_jitter))
        center = rotate_about_axis(center, X_AXIS, math.pi)
        center = rotate_about_axis(center, Y_AXIS, prng.real(0, 2 * math.pi))
        whorls.append(Whorl(
            center=normalize(center),
            strength=prng.real_inclusive(*opts.polar_strength) * direction,
            radius=base_radius * prng.real_inclusive(*opts.radius_jitter),
        ))

        logger.debug("Air whorls placed", layers=layer_count, whorls=len(whorls))
        return whorls

    def generate_air_currents(self) -> CurrentField:
        """Air current vector, speed and outflow at every corner."""
        whorls = self.generate_air_whorls()
        vectors = compose_whorls(self.unit_positions, whorls)
        field = CurrentField(
            direction=vectors,
            speed=np.linalg.norm(vectors, axis=1),
            outflow=outflow_weights(self.topology, vectors),
        )
        self.topology.corners.air = field
        return field

    def generate_ocean_whorls(self) -> List[Whorl]:
        """One weak whorl per oceanic plate, centred on its root and sized to its area."""
        prng = self.prng
        radius = self.topology.radius
        whorls = []
        for plate in self.plates:
            if not plate.oceanic:
                continue
            direction = 1 if prng.integer(0, 1) else -1
            strength = prng.real_inclusive(*self.options.ocean_strength) * direction
            # Angular radius of a spherical cap with the plate's area
            cap = min(plate.area / (2 * math.pi * radius * radius), 2.0)
            whorls.append(Whorl(
                center=self.unit_positions[plate.root],
                strength=strength,
                radius=max(math.acos(1 - cap), 1e-6),
            ))
        return whorls

    def generate_ocean_currents(self) -> CurrentField:
        """Water current vector, speed and outflow; zero on land."""
        corners = self.topology.corners
        water = ~self.is_land
        positions = self.unit_positions

        vectors = compose_whorls(positions, self.generate_ocean_whorls())

        # Push water away from coastlines
        neighbour_land = self.is_land[corners.corners]  # (C, 3)
        away = positions[:, None, :] - positions[corners.corners]
        repulsion = (normalize(away.reshape(-1, 3)).reshape(-1, 3, 3) * neighbour_land[:, :, None]).sum(axis=1)
        vectors = vectors + repulsion * self.options.coast_repulsion

        radial = np.sum(vectors * positions, axis=1, keepdims=True)
        vectors = vectors - radial * positions
        vectors[~water] = 0.0

        # Average each water corner with its water neighbours
        neighbour_water = water[corners.corners]
        summed = vectors + (vectors[corners.corners] * neighbour_water[:, :, None]).sum(axis=1)
        counts = 1 + neighbour_water.sum(axis=1)
        vectors = np.where(water[:, None], summed / counts[:, None], 0.0)

        field = CurrentField(
            direction=vectors,
            speed=np.linalg.norm(vectors, axis=1),
            outflow=outflow_weights(self.topology, vectors, allowed=neighbour_water),
        )
        corners.water = field
        return field

    def relative_speed(self, speed: np.ndarray) -> np.ndarray:
        """
        Current speed relative to the fastest corner, floored at min_current_speed.

        Whorl displacements on the unit sphere stay far below 1, so absolute
        speeds would all sit on the floor.
        """
        fastest = float(speed.max()) if len(speed) else 0.0
        if fastest <= 0:
            return np.full_like(speed, self.options.min_current_speed)
        return np.clip(speed / fastest, self.options.min_current_speed, 1.0)

    def _diffuse(self, air: np.ndarray, absorb_step, outflow: np.ndarray, label: str) -> int:
        """
        Repeatedly absorb from the air at each corner and push the rest downstream.

        Args:
            air: (C,) initial amount carried by the air, modified in place
            absorb_step: Callable(air) returning the amount removed from the air at each corner
            outflow: (C, 3) downstream weights
            label: Name used in log events

        Returns:
            Iterations run
        """
        corners = self.topology.corners
        total = float(air.sum())
        threshold = total * self.options.convergence_threshold
        keep = 1 - outflow.sum(axis=1)

        iterations = 0
        consumed_total = 0.0
        while iterations < self.options.max_diffusion_iterations and air.sum() > 0:
            removed = absorb_step(air)
            air -= removed
            remaining = air.copy()
            inflow = np.zeros_like(air)
            np.add.at(inflow, corners.corners.ravel(), (remaining[:, None] * outflow).ravel())
            air[:] = remaining * keep + inflow
            self._last_inflow = inflow

            consumed = float(removed.sum())
            consumed_total += consumed
            iterations += 1
            if consumed < threshold:
                break

        logger.info(
            "Diffusion finished",
            field=label,
            iterations=iterations,
            budget=total,
            consumed=consumed_total,
        )
        return iterations

    def diffuse_heat(self, heat_level: float) -> HeatState:
        """
        Spread heat from the air into the ground, carried along currents.

        Args:
            heat_level: Heat budget multiplier (heat per unit area)

        Returns:
            HeatState stored on the corners
        """
        opts = self.options
        corners = self.topology.corners
        area = corners.area
        speed = self.relative_speed(corners.air.speed + corners.water.speed)

        absorption = opts.heat_absorption * area / speed
        absorption = np.where(self.is_land, absorption * opts.land_absorption_factor, absorption)
        limit = area.copy()
        current = np.zeros_like(area)
        air = area * heat_level

        outflow = corners.air.outflow + corners.water.outflow
        sums = outflow.sum(axis=1, keepdims=True)
        outflow = np.where(sums > 0, outflow / np.where(sums > 0, sums, 1.0), 0.0)

        def absorb(air_heat):
            change = np.minimum(air_heat, absorption * (1 - current / limit))
            change = np.clip(np.minimum(change, limit - current), 0.0, None)
            current[:] += change
            loss = area * (current / limit) * opts.heat_loss
            return np.minimum(air_heat, change + loss)

        self._last_inflow = np.zeros_like(area)
        self._diffuse(air, absorb, outflow, "Heat")

        corners.heat = HeatState(
            current=current,
            absorption=absorption,
            limit=limit,
            air=air,
            inflow=self._last_inflow,
        )
        return corners.heat

    def calculate_temperature(self) -> None:
        """Corner temperature from latitude, elevation and absorbed heat; tiles average corners."""
        corners = self.topology.corners
        tiles = self.topology.tiles
        heat = corners.heat

        latitude_factor = np.sqrt(np.clip(1 - np.abs(self.unit_positions[:, 1]), 0.0, 1.0))
        elevation_factor = 1 - np.clip(corners.elevation * 0.8, 0.0, 1.0) ** 2
        heat_factor = np.where(heat.limit > 0, heat.current / np.where(heat.limit > 0, heat.limit, 1.0), 0.0)

        value = latitude_factor * (elevation_factor * heat_factor)
        corners.temperature = (value * 5 / 3 - 2 / 3) * 2
        tiles.temperature = np.array([corners.temperature[c].mean() for c in tiles.corners])

    def diffuse_moisture(self, moisture_level: float) -> MoistureState:
        """
        Carry moisture evaporated over water onto land along air currents.

        Args:
            moisture_level: Moisture budget multiplier

        Returns:
            MoistureState stored on the corners
        """
        opts = self.options
        corners = self.topology.corners
        area = corners.area
        land = self.is_land
        temperature = corners.temperature
        elevation = np.clip(corners.elevation, 0.0, 1.0)

        air = np.where(land, 0.0, area * moisture_level * np.clip(0.5 + 0.5 * temperature, 0.0, 1.0))
        speed = self.relative_speed(corners.air.speed)
        rate =opts.moisture_rate * area / speed
        rate = rate * (1 + (1 - np.clip(temperature, 0.0, 1.0)) * opts.cold_moisture_bonus)
        rate = np.where(land, rate * (1 + elevation * opts.elevation_moisture_bonus), rate)
        limit = np.where(
            land,
            area * (opts.base_moisture_limit + elevation * opts.elevation_moisture_limit),
            area * opts.base_moisture_limit,
        )
        precipitation = np.zeros_like(area)

        def absorb(air_moisture):
            change = np.minimum(air_moisture, rate * (1 - precipitation / limit))
            change = np.clip(np.minimum(change, limit - precipitation), 0.0, None)
            precipitation[:] += change
            return change

        self._last_inflow = np.zeros_like(area)
        self._diffuse(air, absorb, corners.air.outflow, "Moisture")

        corners.moisture = MoistureState(
            air=air,
            inflow=self._last_inflow,
            precipitation=precipitation,
            rate=rate,
            limit=limit,
        )
        return corners.moisture

    def calculate_humidity(self) -> None:
        """Humidity is deposited moisture per unit area, doubled."""
        corners = self.topology.corners
        tiles = self.topology.tiles
        corners.humidity = corners.moisture.precipitation / corners.area * 2
        tiles.humidity = np.array([corners.humidity[c].mean() for c in tiles.corners])


def generate_climate(
    topology: Topology,
    plates: List[Plate],
    heat_level: float,
    moisture_level: float,
    prng: XorShift128,
    options: Optional[ClimateOptions] = None,
) -> None:
    """Convenience wrapper around ClimateEngine.generate."""
    ClimateEngine(topology, plates, prng, options).generate(heat_level, moisture_level)
