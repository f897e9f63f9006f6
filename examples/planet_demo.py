"""
Example demonstrating planet generation.
"""

import matplotlib.pyplot as plt
import numpy as np

from py_planetgen.core import BIOME_NAMES, BiomeClassifier, BiomeType, generate_planet
from py_planetgen.logging_config import configure_logging


def main():
    configure_logging(level="INFO", fmt="console")

    # Configuration
    seed = "planet_demo"

    print("Generating planet...")
    planet = generate_planet(
        subdivisions=12,
        distortion_level=1.0,
        plate_count=16,
        oceanic_rate=0.7,
        heat_level=1.0,
        moisture_level=0.3,
        seed=seed,
    )
    topology = planet.topology
    tiles = topology.tiles

    stats = planet.statistics()
    print(f"Radius: {planet.radius:.0f}")
    print(f"Tiles: {stats.tiles.count} ({stats.tiles.pentagon_count} pentagons, "
          f"{stats.tiles.heptagon_count} heptagons)")
    print(f"Plates: {stats.plates.count}, {sum(p.oceanic for p in planet.plates)} oceanic")
    print(f"Elevation range: {stats.tiles.elevation.min:.2f} to {stats.tiles.elevation.max:.2f}")
    print(f"Temperature range: {stats.tiles.temperature.min:.2f} to {stats.tiles.temperature.max:.2f}")
    print(f"Average humidity: {stats.tiles.humidity.avg:.3f}")
    print(f"Plate boundary borders: {stats.borders.plate_boundary_percentage:.1f}%")

    # Equirectangular projection of tile centres
    unit = tiles.positions / topology.radius
    longitude = np.degrees(np.arctan2(unit[:, 0], unit[:, 2]))
    latitude = np.degrees(np.arcsin(np.clip(unit[:, 1], -1, 1)))

    fig, axes = plt.subplots(2, 2, figsize=(14, 8))

    # Elevation
    ax = axes[0, 0]
    scatter = ax.scatter(longitude, latitude, c=tiles.elevation, cmap='terrain', s=6)
    ax.set_title('Elevation')
    plt.colorbar(scatter, ax=ax)

    # Plates
    ax = axes[0, 1]
    plate_colors = np.array([planet.plates[p].color for p in tiles.plate])
    rgb = np.stack([(plate_colors >> 16) & 0xFF, (plate_colors >> 8) & 0xFF, plate_colors & 0xFF], axis=1) / 255
    ax.scatter(longitude, latitude, c=rgb, s=6)
    ax.set_title('Plates')

    # Temperature
    ax = axes[1, 0]
    scatter = ax.scatter(longitude, latitude, c=tiles.temperature, cmap='RdBu_r', s=6)
    ax.set_title('Temperature')
    plt.colorbar(scatter, ax=ax)

    # Biomes
    ax = axes[1, 1]
    classifier = BiomeClassifier(topology)
    classifier.classify()
    colors = classifier.get_biome_colors()
    ax.scatter(longitude, latitude, c=[colors[b] for b in tiles.biome], s=6)
    ax.set_title('Biomes')

    for ax in axes.flat:
        ax.set_xlim(-180, 180)
        ax.set_ylim(-90, 90)
        ax.set_aspect('equal')

    plt.tight_layout()
    plt.savefig('planet_demo.png', dpi=150)
    print("\nPlanet visualization saved to planet_demo.png")

    # Print biome statistics
    print("\nBiome distribution:")
    total_area = stats.tiles.total_area
    for biome in BiomeType:
        name = BIOME_NAMES[biome]
        count = stats.tiles.biome_counts.get(name, 0)
        if count == 0:
            continue
        pct = stats.tiles.biome_areas[name] / total_area * 100
        print(f"  {name}: {count} tiles ({pct:.1f}% of surface)")

    regions = classifier.generate_biome_regions()
    largest = max(regions, key=lambda r: r.area)
    print(f"\nBiome regions: {len(regions)}, largest is {BIOME_NAMES[largest.biome_type]} "
          f"with {len(largest.tiles)} tiles")


if __name__ == "__main__":
    main()
