# src/terrain_frame.py
import numpy as np

def orientation_world_to_terrain_from_surface_normal(surface_normal):
    """
    Rotation world->terrain for a unit surface normal given in world.
    Terrain z = normal, terrain x = world x projected onto the plane
    (world y when the normal is almost parallel to world x), y = z cross x.
    """
    z_axis = np.asarray(surface_normal, dtype=np.float64)
    z_axis = z_axis / np.linalg.norm(z_axis)

    ref = np.array([1.0, 0.0, 0.0])
    if abs(z_axis[0]) > 0.99:
        ref = np.array([0.0, 1.0, 0.0])
    x_axis = ref - np.dot(ref, z_axis) * z_axis
    x_axis /= np.linalg.norm(x_axis)
    y_axis = np.cross(z_axis, x_axis)

    terrain_to_world = np.column_stack([x_axis, y_axis, z_axis])
    return terrain_to_world.T
