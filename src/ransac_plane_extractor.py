# src/ransac_plane_extractor.py
import logging
from dataclasses import dataclass

import numpy as np
from scipy.sparse import coo_matrix
from scipy.sparse.csgraph import connected_components
from scipy.spatial import cKDTree

from config import RansacPlaneExtractorParameters
from plane_fit import fit_plane

logger = logging.getLogger(__name__)

class PlaneDetectorError(RuntimeError):
    pass

@dataclass
class DetectedPlane:
    normal: np.ndarray                       # [3] unit, z >= 0
    support: np.ndarray                      # [3] point on the plane
    indices_of_assigned_points: np.ndarray   # indices into the input cloud, never empty

def _largest_cluster(points, cluster_epsilon):
    """Indices (into `points`) of the biggest group connected by hops <= cluster_epsilon."""
    n = points.shape[0]
    if n <= 1:
        return np.arange(n)
    pairs = cKDTree(points).query_pairs(cluster_epsilon, output_type="ndarray")
    if pairs.size == 0:
        return np.arange(1)
    graph = coo_matrix((np.ones(pairs.shape[0]), (pairs[:, 0], pairs[:, 1])), shape=(n, n))
    _, comp = connected_components(graph, directed=False)
    biggest = np.argmax(np.bincount(comp))
    return np.flatnonzero(comp == biggest)

class RansacPlaneExtractor:
    """
    Sequential multi-plane RANSAC on a cloud of points with normals.

    Planes are extracted one at a time, largest first: each round samples
    minimal sets from the still unassigned points, scores a hypothesis by
    the largest connected cluster of points that are within `epsilon` of the
    plane and whose normal deviates less than `normal_threshold`, and stops
    sampling once the chance of having missed a better candidate drops below
    `probability`. Extraction ends when no candidate reaches `min_points`.

    Every detected plane owns at least one point. Results are reproducible:
    the generator is re-seeded from `parameters.seed` on each call.
    """
    def __init__(self, parameters=None):
        self.parameters = parameters or RansacPlaneExtractorParameters()
        self.detected_planes = []
        self.unassigned_point_indices = np.empty(0, dtype=np.int64)

    def detect_planes(self, points, normals):
        p = self.parameters
        points = np.asarray(points, dtype=np.float64).reshape(-1, 3)
        normals = np.asarray(normals, dtype=np.float64).reshape(-1, 3)
        if points.shape[0] != normals.shape[0]:
            raise ValueError(f"got {points.shape[0]} points but {normals.shape[0]} normals")

        rng = np.random.default_rng(p.seed)
        cos_threshold = float(np.cos(np.radians(p.normal_threshold)))
        remaining = np.arange(points.shape[0])
        planes = []

        while remaining.size >= p.min_points:
            best = self._best_candidate(points[remaining], normals[remaining], rng, cos_threshold)
            if best is None or best[2].size < p.min_points:
                break
            normal, support, members = best

            # refit on the claimed points; keep the hypothesis if they are degenerate
            support_fit, estimate = fit_plane(points[remaining[members]])
            if estimate.is_defined:
                normal, support = estimate.normal, support_fit

            planes.append(DetectedPlane(normal, support, remaining[members]))
            remaining = np.delete(remaining, members)

        self.detected_planes = planes
        self.unassigned_point_indices = remaining
        logger.debug("ransac: %d plane(s), %d of %d point(s) unassigned",
                     len(planes), remaining.size, points.shape[0])
        return planes

    def _best_candidate(self, pts, nrms, rng, cos_threshold):
        p = self.parameters
        n = pts.shape[0]
        best = None
        best_size = 0

        for it in range(p.max_iterations):
            sample = pts[rng.choice(n, size=3, replace=False)]
            normal = np.cross(sample[1] - sample[0], sample[2] - sample[0])
            norm = np.linalg.norm(normal)
            if norm >= 1e-12:
                normal = normal / norm
                if normal[2] < 0.0:
                    normal = -normal
                dist = np.abs(pts @ normal - float(np.dot(normal, sample[0])))
                inliers = np.flatnonzero((dist < p.epsilon) & (np.abs(nrms @ normal) >= cos_threshold))
                # raw inlier count bounds the cluster size from above
                if inliers.size > best_size:
                    cluster = inliers[_largest_cluster(pts[inliers], p.cluster_epsilon)]
                    if cluster.size > best_size:
                        best = (normal, sample[0].copy(), cluster)
                        best_size = cluster.size

            if best_size > 0:
                miss = (1.0 - (best_size / n) ** 3) ** (it + 1)
                if miss < p.probability:
                    break
        return best
