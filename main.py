import os
import json
import config
import hashlib
import datetime

from dateutil.relativedelta import relativedelta
from modules.change_statistics import get_statistic
from modules.errors import EmptySeriesError
from modules.evaluator import evaluate_series
from modules.exports import generate_all_exports
from modules.series import normalize_samples
from satellites.sentinel2 import get_ndvi_timeseries
from utils import EarthEngineSource, generate_metadata, parse_request_date


def default_window(end_date=None, months=config.DEFAULT_LOOKBACK_MONTHS):
    """(start, end) covering the last `months` months up to end_date (default today)."""
    end_date = end_date or datetime.date.today()
    if isinstance(end_date, str):
        end_date = parse_request_date(end_date, "end_date")
    return end_date - relativedelta(months=months), end_date


def snapshot_config(run_dir):
    """Writes the configuration constants of this run and returns (snapshot, sha256)."""
    config_dict = {k: v for k, v in vars(config).items() if k.isupper()}
    config_snapshot_path = os.path.join(run_dir, "config_snapshot.json")

    with open(config_snapshot_path, "w") as f:
        json.dump(config_dict, f, default=str, indent=4)

    with open(config_snapshot_path, "rb") as f:
        config_hash = hashlib.sha256(f.read()).hexdigest()

    return config_dict, config_hash


def run_pipeline(roi_coords=config.ROI_COORDS, start_date=None, end_date=None, source=None,
                 threshold=config.CHANGE_THRESHOLD, scale_factor=config.CONFIDENCE_SCALE, statistic=None,
                 output_root=config.OUTPUT_DIR, roi_name=config.ROI_NAME):
    """
    Fetches the Sentinel-2 NDVI series of an AOI, evaluates change and writes
    a traceable run bundle under <output_root>/runs/<run_id>/.

    A missing start_date covers the configured lookback before end_date; a
    missing end_date is today.

    An empty series ends the run with status NO_DATA; an unparseable date
    aborts it before any artifact is written.

    Returns:
        dict: the run manifest.
    """
    if start_date is None:
        start_date, end_date = default_window(end_date)
    elif end_date is None:
        end_date = datetime.date.today()

    statistic = get_statistic(statistic)

    if source is None:
        source = EarthEngineSource()
    if not source.is_ready():
        source.initialize()

    # --- ACQUISITION & EVALUATION ---
    print(f"[Pipeline] Fetching NDVI time series for {roi_name} ({start_date} to {end_date})")
    samples = get_ndvi_timeseries(roi_coords, start_date, end_date)

    try:
        series = normalize_samples(samples)
        assessment = evaluate_series(series, threshold=threshold, scale_factor=scale_factor, statistic=statistic)
        status = "SUCCESS"
    except EmptySeriesError as e:
        print(f"[Pipeline] {e}")
        series, assessment = None, None
        status = "NO_DATA"

    # --- TRACEABILITY & METADATA ---
    run_id = datetime.datetime.now().strftime("%Y%m%d_%H%M%S_%f")
    run_dir = os.path.join(output_root, "runs", run_id)
    os.makedirs(run_dir, exist_ok=True)

    print(f"[Pipeline] Run ID: {run_id}")
    print(f"[Pipeline] Run Traceability Directory: {run_dir}")

    config_dict, config_hash = snapshot_config(run_dir)

    # --- EXPORTS ---
    export_paths = generate_all_exports(run_dir, run_id, config_dict, samples, roi_coords, series, assessment)

    artifact_types = {
        "ndvi_timeseries": "csv",
        "change_assessment": "json",
        "aoi_assessment": "geojson",
        "pdf_report": "pdf",
    }

    manifest = {
        "run_id": run_id,
        "status": status,
        "timestamp": datetime.datetime.now().isoformat(),
        "config_snapshot_path": f"runs/{run_id}/config_snapshot.json",
        "config_snapshot_sha256": config_hash,
        "source": generate_metadata("Sentinel-2", config.S2_COLLECTION, len(samples), start_date, end_date, roi_coords, run_id),
        "evaluation": {
            "threshold": threshold,
            "scale_factor": scale_factor,
            "method": statistic.name,
        },
        "summary": assessment.to_dict() if assessment is not None else None,
        "artifacts": {
            key: {"path": os.path.relpath(path, start=output_root), "type": artifact_types[key]}
            for key, path in export_paths.items()
        },
    }

    manifest_path = os.path.join(run_dir, "run_manifest.json")
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=4)

    print(f"[Pipeline] Run Manifest created: {manifest_path}")
    return manifest


if __name__ == "__main__":
    run_pipeline()
