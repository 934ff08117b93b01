# src/sliding_window_plane_extractor.py
import logging
import time
from dataclasses import dataclass

import numpy as np

from config import SlidingWindowPlaneExtractorParameters, RansacPlaneExtractorParameters
from elevation_map import ElevationMap
from io_types import SegmentedPlanes, TerrainPlane
from plane_fit import (UNIT_Z, angle_between_normalized_vectors_deg, accumulate_point_statistics,
                       normal_and_error_from_covariance, is_globally_planar)
from planarity import compute_window_normals, locally_planar_mask, erode_mask, label_regions
from ransac_plane_extractor import RansacPlaneExtractor, PlaneDetectorError
from terrain_frame import orientation_world_to_terrain_from_surface_normal

logger = logging.getLogger(__name__)

@dataclass
class _ExtractionRun:
    """Mutable state of one extraction; never shared between runs."""
    elevation_map: ElevationMap
    result: SegmentedPlanes
    surface_normals: np.ndarray   # [H,W,3] view into the extractor's buffer

def assign_refined_labels(label, highest_label, detected_planes):
    """
    Label bookkeeping for a refined region: the first plane keeps `label`,
    every following plane gets highest_label + 1, + 2, ...
    Returns ([(new_label, plane), ...], new_highest_label).
    """
    assigned = []
    next_label = highest_label
    for plane in detected_planes:
        if len(plane.indices_of_assigned_points) == 0:
            raise PlaneDetectorError(f"plane detector returned a plane without points for label {label}")
        if not assigned:
            new_label = label
        else:
            next_label += 1
            new_label = next_label
        assigned.append((new_label, plane))
    return assigned, next_label

class SlidingWindowPlaneExtractor:
    """
    Segments an elevation map into planar regions:
      1) local plane fit over a sliding window -> normal + planarity per cell
      2) planarity mask, optionally eroded
      3) connected components -> initial labels
      4) global plane fit per label; regions that are not planar as a whole are
         split with RANSAC (when enabled) and relabeled.

    The extractor can be reused; its surface normal buffer only grows.
    """
    def __init__(self, parameters=None, ransac_parameters=None, plane_detector_factory=RansacPlaneExtractor):
        self.parameters = parameters or SlidingWindowPlaneExtractorParameters()
        self.ransac_parameters = ransac_parameters or RansacPlaneExtractorParameters()
        self.plane_detector_factory = plane_detector_factory

        self._surface_normals = np.empty((0, 3), dtype=np.float64)
        self._segmented_planes = SegmentedPlanes()
        self._binary_image_patch = np.zeros((0, 0), np.uint8)
        self._map_size = (0, 0)

    @property
    def segmented_planes(self):
        return self._segmented_planes

    @property
    def binary_labeled_image(self):
        """Planarity mask (after erosion) of the last run."""
        return self._binary_image_patch

    @property
    def surface_normals(self):
        """Window normals of the last run, [H,W,3]. Overwritten by the next run."""
        rows, cols = self._map_size
        return self._surface_normals[:rows * cols].reshape(rows, cols, 3)

    def run_extraction(self, elevation_map):
        rows, cols = elevation_map.size
        result = SegmentedPlanes(resolution=elevation_map.resolution,
                                 map_origin=np.array(elevation_map.index_to_world(0, 0), dtype=np.float64))
        run = _ExtractionRun(elevation_map, result, self._reserve_normals(rows, cols))

        t0 = time.perf_counter()
        mask = self._run_sliding_window_detector(run)
        t1 = time.perf_counter()
        self._run_segmentation(run, mask)
        t2 = time.perf_counter()
        self._extract_plane_parameters_from_labeled_image(run)
        t3 = time.perf_counter()

        logger.debug("sliding window %.1f ms, segmentation %.1f ms, plane fitting %.1f ms",
                     1e3 * (t1 - t0), 1e3 * (t2 - t1), 1e3 * (t3 - t2))
        logger.info("extracted %d plane(s) from %dx%d map, highest label %d",
                    len(result.label_plane_parameters), rows, cols, result.highest_label)

        self._segmented_planes = result
        self._binary_image_patch = mask
        self._map_size = (rows, cols)
        return result

    def _reserve_normals(self, rows, cols):
        needed = rows * cols
        if self._surface_normals.shape[0] < needed:
            self._surface_normals = np.empty((needed, 3), dtype=np.float64)
        return self._surface_normals[:needed].reshape(rows, cols, 3)

    # ---------- steps 1-3 ----------
    def _run_sliding_window_detector(self, run):
        p = self.parameters
        em = run.elevation_map
        normals, errors = compute_window_normals(em.height, em.resolution, p.kernel_size,
                                                 out_normals=run.surface_normals)
        mask = locally_planar_mask(normals, errors, p.plane_patch_error_threshold,
                                   p.plane_inclination_threshold_degrees)
        return erode_mask(mask, p.planarity_erosion)

    def _run_segmentation(self, run, mask):
        labeled, highest_label = label_regions(mask, self.parameters.connectivity)
        run.result.labeled_image = labeled
        run.result.highest_label = highest_label

    # ---------- step 4 ----------
    def _extract_plane_parameters_from_labeled_image(self, run):
        # highest_label grows during refinement; new labels are never revisited
        number_of_labels_without_refinement = run.result.highest_label
        for label in range(1, number_of_labels_without_refinement + 1):
            self._compute_plane_parameters_for_label(run, label)

    def _points_with_normals_for_label(self, run, label):
        em = run.elevation_map
        # column-major scan order
        cols, rows = np.nonzero(run.result.labeled_image.T == label)
        heights = em.height[rows, cols]
        finite = np.isfinite(heights)
        rows, cols, heights = rows[finite], cols[finite], heights[finite]

        origin = run.result.map_origin
        points = np.column_stack([origin[0] - rows * em.resolution,
                                  origin[1] - cols * em.resolution,
                                  heights])
        return points, run.surface_normals[rows, cols].copy()

    def _compute_plane_parameters_for_label(self, run, label):
        p = self.parameters
        points, normals = self._points_with_normals_for_label(run, label)
        num_points, total, sum_squared = accumulate_point_statistics(points)
        if num_points < p.min_number_points_per_label or num_points < 3:
            logger.debug("label %d: %d point(s), skipped", label, num_points)
            return

        support = total / num_points
        normal = normal_and_error_from_covariance(num_points, support, sum_squared).normal

        if is_globally_planar(normal, support, points, normals,
                              p.global_plane_fit_distance_error_threshold,
                              p.global_plane_fit_angle_error_threshold_degrees):
            self._emit_plane(run, label, support, normal)
        elif p.include_ransac_refinement:
            logger.debug("label %d: not globally planar, refining %d point(s)", label, num_points)
            self._refine_label_with_ransac(run, label, points, normals)
        else:
            logger.debug("label %d: not globally planar, dropped", label)

    def _emit_plane(self, run, label, support, normal):
        if angle_between_normalized_vectors_deg(normal, UNIT_Z) < self.parameters.plane_inclination_threshold_degrees:
            orientation = orientation_world_to_terrain_from_surface_normal(normal)
            run.result.label_plane_parameters.append((label, TerrainPlane(support, orientation)))
        else:
            logger.debug("label %d: too steep, no plane", label)

    # ---------- step 5 ----------
    def _refine_label_with_ransac(self, run, label, points, normals):
        detector = self.plane_detector_factory(self.ransac_parameters)
        detector.detect_planes(points, normals)

        assigned, run.result.highest_label = assign_refined_labels(
            label, run.result.highest_label, detector.detected_planes)

        for new_label, plane in assigned:
            indices = np.asarray(plane.indices_of_assigned_points, dtype=np.int64)
            plane_points = points[indices]
            if new_label != label:
                self._set_labels_at(run, plane_points, new_label)

            num_points, total, sum_squared = accumulate_point_statistics(plane_points)
            support = total / num_points
            normal = normal_and_error_from_covariance(num_points, support, sum_squared).normal
            self._emit_plane(run, new_label, support, normal)

        unassigned = np.asarray(detector.unassigned_point_indices, dtype=np.int64)
        if unassigned.size:
            self._set_labels_at(run, points[unassigned], 0)
        logger.debug("label %d: refined into %d plane(s), %d point(s) to background",
                     label, len(assigned), unassigned.size)

    def _set_labels_at(self, run, points, new_label):
        # detector output is indexed by point; map back through world coordinates
        labeled = run.result.labeled_image
        for x, y in points[:, :2]:
            row, col = run.elevation_map.world_to_index(x, y)
            labeled[row, col] = new_label
