# src/config.py
from dataclasses import dataclass, fields, asdict
import yaml

@dataclass
class SlidingWindowPlaneExtractorParameters:
    kernel_size: int = 3                                    # odd, >= 3
    planarity_erosion: int = 0                              # erosion radius (cells)
    plane_inclination_threshold_degrees: float = 30.0
    plane_patch_error_threshold: float = 0.02               # rms (m)
    min_number_points_per_label: int = 4
    connectivity: int = 4                                   # 4 or 8
    include_ransac_refinement: bool = True
    global_plane_fit_distance_error_threshold: float = 0.025
    global_plane_fit_angle_error_threshold_degrees: float = 25.0

    def __post_init__(self):
        if self.kernel_size < 3 or self.kernel_size % 2 == 0:
            raise ValueError(f"kernel_size must be odd and >= 3, got {self.kernel_size}")
        if self.planarity_erosion < 0:
            raise ValueError(f"planarity_erosion must be >= 0, got {self.planarity_erosion}")
        if self.connectivity not in (4, 8):
            raise ValueError(f"connectivity must be 4 or 8, got {self.connectivity}")

@dataclass
class RansacPlaneExtractorParameters:
    probability: float = 0.001       # chance of missing the largest candidate
    min_points: int = 4
    epsilon: float = 0.025           # inlier distance (m)
    cluster_epsilon: float = 0.041   # max spacing inside one plane (m)
    normal_threshold: float = 25.0   # degrees
    max_iterations: int = 1000
    seed: int = 0

    def __post_init__(self):
        if not 0.0 < self.probability < 1.0:
            raise ValueError(f"probability must be in (0, 1), got {self.probability}")
        if self.min_points < 3:
            raise ValueError(f"min_points must be >= 3, got {self.min_points}")
        if self.epsilon <= 0.0 or self.cluster_epsilon <= 0.0:
            raise ValueError("epsilon and cluster_epsilon must be positive")
        if not 0.0 < self.normal_threshold <= 90.0:
            raise ValueError(f"normal_threshold must be in (0, 90], got {self.normal_threshold}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")

SECTIONS = {
    "sliding_window_plane_extractor": SlidingWindowPlaneExtractorParameters,
    "ransac_plane_refinement": RansacPlaneExtractorParameters,
}

def _build(cls, section, values):
    values = values or {}
    known = {f.name for f in fields(cls)}
    unknown = set(values) - known
    if unknown:
        raise ValueError(f"unknown keys in '{section}': {sorted(unknown)}")
    return cls(**values)

def parameters_from_dict(cfg):
    """(SlidingWindowPlaneExtractorParameters, RansacPlaneExtractorParameters) from a parsed config."""
    cfg = cfg or {}
    unknown = set(cfg) - set(SECTIONS)
    if unknown:
        raise ValueError(f"unknown config sections: {sorted(unknown)}")
    return tuple(_build(cls, name, cfg.get(name)) for name, cls in SECTIONS.items())

def load_parameters(path):
    with open(path, "r") as f:
        cfg = yaml.safe_load(f)
    return parameters_from_dict(cfg)

def parameters_to_dict(sliding_window_params, ransac_params):
    return {
        "sliding_window_plane_extractor": asdict(sliding_window_params),
        "ransac_plane_refinement": asdict(ransac_params),
    }
