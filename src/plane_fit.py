from typing import NamedTuple
import numpy as np

UNIT_Z = np.array([0.0, 0.0, 1.0])

# Error reported when the normal cannot be established; fails any finite threshold.
UNDEFINED_ERROR = 1e30

# Second eigenvalue floor: below it the points are (nearly) collinear.
RANK_DEFICIENCY_EPS = 1e-8

class NormalEstimate(NamedTuple):
    normal: np.ndarray   # [3] unit vector, z >= 0
    error: float         # rms distance to the fitted plane (m)

    @property
    def is_defined(self):
        return self.error < UNDEFINED_ERROR

def undefined_estimate():
    return NormalEstimate(UNIT_Z.copy(), UNDEFINED_ERROR)

def angle_between_normalized_vectors_deg(v1, v2):
    """Angle in degrees between two unit vectors; dot product is clamped to [-1, 1]."""
    cos_rad = float(np.clip(np.dot(v1, v2), -1.0, 1.0))
    return abs(float(np.degrees(np.arccos(cos_rad))))

def accumulate_point_statistics(points):
    """
    Count, sum and sum of outer products over an iterable of 3D points.
    Returns (n: int, sum: [3], sum_squared: [3,3]).
    """
    if not isinstance(points, np.ndarray):
        points = list(points)
    pts = np.asarray(points, dtype=np.float64).reshape(-1, 3)
    n = int(pts.shape[0])
    if n == 0:
        return 0, np.zeros(3), np.zeros((3, 3))
    return n, pts.sum(axis=0), pts.T @ pts

def normal_and_error_from_covariance(num_points, mean, sum_squared):
    """
    Plane normal + rms error from accumulated statistics.
    Normal is the eigenvector of the smallest eigenvalue, flipped upward.
    If the second eigenvalue is ~0 the normal is undefined.
    """
    mean = np.asarray(mean, dtype=np.float64)
    covariance = np.asarray(sum_squared, dtype=np.float64) / num_points - np.outer(mean, mean)
    eigenvalues, eigenvectors = np.linalg.eigh(covariance)  # ascending
    if eigenvalues[1] <= RANK_DEFICIENCY_EPS:
        return undefined_estimate()

    normal = eigenvectors[:, 0].copy()
    if normal[2] < 0.0:
        normal = -normal
    # smallest eigenvalue may dip slightly below zero numerically
    error = float(np.sqrt(eigenvalues[0])) if eigenvalues[0] > 0.0 else 0.0
    return NormalEstimate(normal, error)

def batch_normals_and_errors(counts, sums, sums_squared):
    """
    Vectorised normal_and_error_from_covariance over N accumulators.
    counts: [N], sums: [N,3], sums_squared: [N,3,3].
    Returns (normals [N,3], errors [N]); entries with < 3 points or a rank-1
    covariance get the undefined estimate.
    """
    counts = np.asarray(counts)
    n_acc = counts.shape[0]
    normals = np.tile(UNIT_Z, (n_acc, 1))
    errors = np.full(n_acc, UNDEFINED_ERROR, dtype=np.float64)

    enough = counts >= 3
    if not enough.any():
        return normals, errors

    n = counts[enough].astype(np.float64)
    mean = sums[enough] / n[:, None]
    cov = sums_squared[enough] / n[:, None, None] - mean[:, :, None] * mean[:, None, :]
    eigenvalues, eigenvectors = np.linalg.eigh(cov)

    defined = eigenvalues[:, 1] > RANK_DEFICIENCY_EPS
    nrm = eigenvectors[:, :, 0]
    nrm = np.where(nrm[:, 2:3] < 0.0, -nrm, nrm)
    err = np.where(eigenvalues[:, 0] > 0.0, np.sqrt(np.maximum(eigenvalues[:, 0], 0.0)), 0.0)

    idx = np.flatnonzero(enough)[defined]
    normals[idx] = nrm[defined]
    errors[idx] = err[defined]
    return normals, errors

def fit_plane(points):
    """
    Least-squares plane through [N,3] points.
    Returns (support: [3] centroid, estimate: NormalEstimate), or None if N < 3.
    """
    n, total, sum_squared = accumulate_point_statistics(points)
    if n < 3:
        return None
    support = total / n
    return support, normal_and_error_from_covariance(n, support, sum_squared)

def signed_distance_to_plane(points, normal, support):
    """
    Signed distance of each point to the plane (normal, support).
    Positive values are in +normal direction.
    """
    normal = np.asarray(normal, dtype=np.float64)
    return np.asarray(points, dtype=np.float64) @ normal - float(np.dot(normal, support))

def is_globally_planar(normal, support, points, point_normals,
                       distance_threshold, angle_threshold_deg):
    """
    Every point must lie within distance_threshold of the plane and its own
    normal within angle_threshold_deg of the plane normal. Stops at the first
    offending point.
    """
    distances = np.abs(signed_distance_to_plane(points, normal, support))
    for distance_error, point_normal in zip(distances, point_normals):
        if distance_error > distance_threshold:
            return False
        if angle_between_normalized_vectors_deg(point_normal, normal) > angle_threshold_deg:
            return False
    return True
