# src/planarity.py
import cv2
import numpy as np

from plane_fit import UNDEFINED_ERROR, batch_normals_and_errors

def inclination_deg(normals):
    """Angle (deg) between each unit normal [...,3] and the up axis."""
    cos_rad = np.clip(np.asarray(normals)[..., 2], -1.0, 1.0)
    return np.abs(np.degrees(np.arccos(cos_rad)))

def window_statistics(height, resolution, kernel_size):
    """
    Per-cell point statistics over the kernel_size x kernel_size window centered
    on each cell. Window point = (-kernel_row * res, -kernel_col * res, height);
    cells outside the map or with non-finite height are skipped.
    Returns counts [H,W], sums [H,W,3], sums_squared [H,W,3,3].
    """
    H, W = height.shape
    half = (kernel_size - 1) // 2
    padded = np.pad(height.astype(np.float64, copy=False), half, mode="constant", constant_values=np.nan)

    counts = np.zeros((H, W), dtype=np.int64)
    sums = np.zeros((H, W, 3), dtype=np.float64)
    sums_squared = np.zeros((H, W, 3, 3), dtype=np.float64)

    # one shifted H x W slice per kernel offset
    for kernel_row in range(kernel_size):
        for kernel_col in range(kernel_size):
            shifted = padded[kernel_row:kernel_row + H, kernel_col:kernel_col + W]
            valid = np.isfinite(shifted)
            x = -kernel_row * resolution
            y = -kernel_col * resolution
            z = np.where(valid, shifted, 0.0)
            v = valid.astype(np.float64)

            counts += valid
            sums[..., 0] += x * v
            sums[..., 1] += y * v
            sums[..., 2] += z
            sums_squared[..., 0, 0] += x * x * v
            sums_squared[..., 0, 1] += x * y * v
            sums_squared[..., 0, 2] += x * z
            sums_squared[..., 1, 1] += y * y * v
            sums_squared[..., 1, 2] += y * z
            sums_squared[..., 2, 2] += z * z

    sums_squared[..., 1, 0] = sums_squared[..., 0, 1]
    sums_squared[..., 2, 0] = sums_squared[..., 0, 2]
    sums_squared[..., 2, 1] = sums_squared[..., 1, 2]
    return counts, sums, sums_squared

def compute_window_normals(height, resolution, kernel_size, out_normals=None):
    """
    Local plane normal + rms error for every cell with a finite height.
    Cells without a finite height keep the up normal and the undefined error.
    Returns (normals [H,W,3], errors [H,W]). When `out_normals` is given it is
    filled in place and returned.
    """
    H, W = height.shape
    normals = out_normals if out_normals is not None else np.empty((H, W, 3), dtype=np.float64)
    normals[...] = (0.0, 0.0, 1.0)
    errors = np.full((H, W), UNDEFINED_ERROR, dtype=np.float64)

    center_valid = np.isfinite(height)
    if not center_valid.any():
        return normals, errors

    counts, sums, sums_squared = window_statistics(height, resolution, kernel_size)
    n, e = batch_normals_and_errors(counts[center_valid], sums[center_valid], sums_squared[center_valid])
    normals[center_valid] = n
    errors[center_valid] = e
    return normals, errors

def locally_planar_mask(normals, errors, patch_error_threshold, inclination_threshold_deg):
    """uint8 mask (1 = locally planar): small fit error and shallow inclination."""
    planar = (errors < patch_error_threshold) & (inclination_deg(normals) < inclination_threshold_deg)
    return planar.astype(np.uint8)

def erode_mask(mask, erosion):
    """Erode with a (2r+1)x(2r+1) cross; r <= 0 leaves the mask unchanged."""
    if erosion <= 0:
        return mask
    size = 2 * int(erosion) + 1
    kernel = cv2.getStructuringElement(cv2.MORPH_CROSS, (size, size))
    return cv2.erode(mask, kernel)

def label_regions(mask, connectivity=4):
    """
    Connected components of a binary mask.
    Returns (labeled [H,W] int32 with 0 = background, highest_label).
    """
    num_labels, labeled = cv2.connectedComponents(mask.astype(np.uint8, copy=False),
                                                  connectivity=connectivity, ltype=cv2.CV_32S)
    return labeled, num_labels - 1

def colorize_labels(labeled):
    """BGR visualisation: background black, each label a stable colour."""
    labeled = np.asarray(labeled)
    vis = np.zeros(labeled.shape + (3,), np.uint8)
    fg = labeled > 0
    if not fg.any():
        return vis
    # spread consecutive labels over the colormap
    hue = ((labeled.astype(np.int64) * 47) % 255).astype(np.uint8)
    colored = cv2.applyColorMap(hue, cv2.COLORMAP_TURBO)
    vis[fg] = colored[fg]
    return vis
