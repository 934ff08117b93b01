from dataclasses import dataclass, field
import numpy as np

@dataclass
class TerrainPlane:
    position_in_world: np.ndarray               # [3] support point (m)
    orientation_world_to_terrain: np.ndarray    # 3x3 rotation, terrain z = surface normal

    @property
    def normal_in_world(self) -> np.ndarray:
        # third row of world->terrain == terrain z-axis expressed in world
        return self.orientation_world_to_terrain[2, :].copy()

@dataclass
class SegmentedPlanes:
    resolution: float = 0.0
    map_origin: np.ndarray = field(default_factory=lambda: np.zeros(2))
    highest_label: int = -1
    labeled_image: np.ndarray = field(default_factory=lambda: np.zeros((0, 0), np.int32))
    label_plane_parameters: list = field(default_factory=list)  # [(label, TerrainPlane)]

    def planes_by_label(self):
        return {label: plane for label, plane in self.label_plane_parameters}

    def to_dict(self):
        """JSON-ready summary; the labeled image itself is not included."""
        planes = []
        for label, plane in self.label_plane_parameters:
            planes.append({
                "label": int(label),
                "position_in_world": [float(v) for v in plane.position_in_world],
                "normal_in_world": [float(v) for v in plane.normal_in_world],
                "orientation_world_to_terrain": plane.orientation_world_to_terrain.astype(float).tolist(),
                "num_cells": int(np.count_nonzero(self.labeled_image == label)),
            })
        return {
            "resolution": float(self.resolution),
            "map_origin": [float(v) for v in self.map_origin],
            "highest_label": int(self.highest_label),
            "planes": planes,
        }
