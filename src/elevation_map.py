# src/elevation_map.py
import os
import cv2
import numpy as np

class ElevationMap:
    """
    Regular height grid. Grid-map convention: index (0,0) sits at `origin`
    and indices grow towards -x (rows) and -y (cols):
        x = origin_x - row * resolution
        y = origin_y - col * resolution
    Non-finite heights mean "no data".
    """
    def __init__(self, height, resolution, origin=(0.0, 0.0)):
        height = np.asarray(height, dtype=np.float64)
        if height.ndim != 2 or height.size == 0:
            raise ValueError(f"elevation must be a non-empty 2D array, got shape {height.shape}")
        if not np.isfinite(resolution) or resolution <= 0.0:
            raise ValueError(f"resolution must be positive, got {resolution}")
        self.height = height
        self.resolution = float(resolution)
        self.origin = np.asarray(origin, dtype=np.float64).reshape(2)

    @property
    def size(self):
        return self.height.shape

    def index_to_world(self, row, col):
        return (self.origin[0] - row * self.resolution,
                self.origin[1] - col * self.resolution)

    def world_to_index(self, x, y):
        row = int(round((self.origin[0] - x) / self.resolution))
        col = int(round((self.origin[1] - y) / self.resolution))
        return row, col

def load_elevation(path, resolution=None, origin=None, uint16_scale_m=0.001):
    """
    Loads an elevation grid from:
      - .npy  : raw height array (resolution required)
      - .npz  : 'elevation' (+ optional 'resolution', 'origin')
      - image : uint16 millimeters or float32 meters via OpenCV
    Zeros in image inputs are treated as invalid (set to NaN).
    Explicit resolution/origin arguments override values stored in the file.
    """
    if not os.path.exists(path):
        raise FileNotFoundError(path)

    ext = os.path.splitext(path)[1].lower()
    stored_res, stored_origin = None, None
    if ext == ".npy":
        h = np.load(path).astype(np.float64)
    elif ext == ".npz":
        with np.load(path) as data:
            if "elevation" not in data:
                raise ValueError(f"{path}: missing 'elevation' array")
            h = data["elevation"].astype(np.float64)
            if "resolution" in data:
                stored_res = float(data["resolution"])
            if "origin" in data:
                stored_origin = data["origin"].astype(np.float64)
    else:
        d = cv2.imread(path, cv2.IMREAD_UNCHANGED)
        if d is None:
            raise ValueError(f"unsupported elevation file: {path}")
        if d.ndim != 2:
            raise ValueError(f"{path}: expected a single channel image")
        if d.dtype == np.uint16:
            h = d.astype(np.float64) * float(uint16_scale_m)
        else:
            h = d.astype(np.float64)
        h[h == 0.0] = np.nan

    res = resolution if resolution is not None else stored_res
    if res is None:
        raise ValueError(f"{path}: resolution not stored in file, pass it explicitly")
    org = origin if origin is not None else stored_origin
    if org is None:
        org = (0.0, 0.0)
    return ElevationMap(h, res, org)
