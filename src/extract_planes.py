# src/extract_planes.py
import argparse, json, logging, os
import cv2, numpy as np
from tqdm import tqdm

from config import load_parameters, parameters_to_dict, SlidingWindowPlaneExtractorParameters, RansacPlaneExtractorParameters
from elevation_map import load_elevation
from planarity import colorize_labels
from sliding_window_plane_extractor import SlidingWindowPlaneExtractor

# ----------------- helpers -----------------
def save_debug_image(path, img):
    os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    cv2.imwrite(path, img)

def output_path(template, src_path, many):
    """Per-input output path: with several inputs the input stem is appended."""
    if not many:
        return template
    stem = os.path.splitext(os.path.basename(src_path))[0]
    base, ext = os.path.splitext(template)
    return f"{base}_{stem}{ext}"

def extract(extractor, path, resolution=None, origin=None):
    em = load_elevation(path, resolution=resolution, origin=origin)
    result = extractor.run_extraction(em)
    summary = result.to_dict()
    summary["file"] = path
    summary["num_valid_cells"] = int(np.isfinite(em.height).sum())
    summary["num_labeled_cells"] = int((result.labeled_image > 0).sum())
    return result, summary

# ----------------- main -----------------
def main(argv=None):
    ap = argparse.ArgumentParser(description="Segment elevation maps into planar regions")
    # Inputs
    ap.add_argument("elevation", nargs="*", help="elevation files (.npy/.npz/16-bit png in mm/float tiff)")
    ap.add_argument("--resolution", type=float, default=None, help="cell size in m (required if not stored in the file)")
    ap.add_argument("--origin", type=float, nargs=2, default=None, metavar=("X", "Y"),
                    help="world position of cell (0,0)")
    # Config + output
    ap.add_argument("--config", default=None, help="YAML parameters (default: built-in defaults)")
    ap.add_argument("--out_json", default=None, help="write results here instead of stdout")
    ap.add_argument("--out_vis", default=None, help="colour-mapped label image")
    ap.add_argument("--out_labels", default=None, help="labeled image as .npy")
    # Visualization / debug
    ap.add_argument("--debug", action="store_true", help="verbose logging + save planarity mask")
    ap.add_argument("--print_config", action="store_true", help="print effective parameters and exit")
    args = ap.parse_args(argv)

    logging.basicConfig(level=logging.DEBUG if args.debug else logging.WARNING,
                        format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.config:
        params, ransac_params = load_parameters(args.config)
    else:
        params, ransac_params = SlidingWindowPlaneExtractorParameters(), RansacPlaneExtractorParameters()

    if args.print_config:
        print(json.dumps(parameters_to_dict(params, ransac_params), indent=2))
        return

    if not args.elevation:
        raise SystemExit("Provide at least one elevation file")

    extractor = SlidingWindowPlaneExtractor(params, ransac_params)
    many = len(args.elevation) > 1
    results = []

    for path in tqdm(args.elevation, disable=not many, desc="maps"):
        result, summary = extract(extractor, path, resolution=args.resolution, origin=args.origin)
        results.append(summary)

        if args.out_vis:
            save_debug_image(output_path(args.out_vis, path, many), colorize_labels(result.labeled_image))
        if args.out_labels:
            out = output_path(args.out_labels, path, many)
            os.makedirs(os.path.dirname(out) or ".", exist_ok=True)
            np.save(out, result.labeled_image)
        if args.debug:
            mask_path = output_path("out/debug_planarity_mask.png", path, many)
            save_debug_image(mask_path, extractor.binary_labeled_image * 255)

    payload = results if many else results[0]
    if args.out_json:
        os.makedirs(os.path.dirname(args.out_json) or ".", exist_ok=True)
        with open(args.out_json, "w") as f:
            json.dump(payload, f, indent=2)
    else:
        print(json.dumps(payload, indent=2))

if __name__ == "__main__":
    main()
