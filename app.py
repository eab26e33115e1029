from datetime import datetime, timezone

from flask import Flask, jsonify, request
from flask_cors import CORS

import config
from modules.change_statistics import get_statistic, validate_parameters
from modules.errors import ChangeEvaluationError, EmptySeriesError, InvalidDateError, InvalidParameterError
from modules.evaluator import evaluate_series
from modules.series import normalize_samples
from satellites.sentinel2 import get_ndvi_mean, get_ndvi_timeseries
from utils import EarthEngineSource, parse_request_date, validate_aoi


def parse_window(payload):
    """Validates AOI and the YYYY-MM-DD window of an NDVI request. Raises ValueError."""
    aoi = validate_aoi(payload.get("aoi"))
    start = parse_request_date(payload.get("startDate"), "startDate")
    end = parse_request_date(payload.get("endDate"), "endDate")
    if end <= start:
        raise ValueError("endDate must be after startDate")
    return aoi, start.isoformat(), end.isoformat()


def parse_evaluation_options(payload):
    """
    threshold / scaleFactor / method overrides, falling back to configuration.
    Raises InvalidParameterError before any Earth Engine query is made.
    """
    options = {
        "threshold": payload.get("threshold", config.CHANGE_THRESHOLD),
        "scale_factor": payload.get("scaleFactor", config.CONFIDENCE_SCALE),
        "statistic": get_statistic(payload.get("method")),
    }
    validate_parameters(options["threshold"], options["scale_factor"])
    return options


def create_app(source=None, start_gee=True):
    """
    Builds the Flask backend.

    Args:
        source: Earth Engine readiness capability (is_ready(), status()).
                Defaults to a new EarthEngineSource.
        start_gee (bool): start Earth Engine initialization on a background thread.
    """
    app = Flask(__name__)
    CORS(app, origins=config.CORS_ORIGINS)

    if source is None:
        source = EarthEngineSource()
        if start_gee:
            source.start_background()
    app.config["GEE_SOURCE"] = source

    def not_ready():
        status = source.status()
        return jsonify({
            "error": "Google Earth Engine is not ready. Please try again later.",
            "gee_status": status,
        }), 503

    @app.get("/api/health")
    def health():
        status = source.status()
        return jsonify({
            "status": "ok",
            "gee_authenticated": status["authenticated"],
            "gee_initialized": status["initialized"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "environment": config.ENVIRONMENT,
        })

    @app.post("/api/ndvi")
    def ndvi_mean():
        payload = request.get_json(silent=True) or {}
        try:
            aoi, start, end = parse_window(payload)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        if not source.is_ready():
            return not_ready()

        try:
            value = get_ndvi_mean(aoi, start, end)
        except Exception as e:
            print(f"[API] Error in /api/ndvi: {e}")
            return jsonify({
                "error": f"Failed to process satellite data: {e}",
                "details": "Please check your area selection and date range, then try again.",
            }), 500

        return jsonify({"ndvi_mean": value, "aoi": aoi})

    @app.post("/api/ndvi-timeseries")
    def ndvi_timeseries():
        payload = request.get_json(silent=True) or {}
        try:
            aoi, start, end = parse_window(payload)
            options = parse_evaluation_options(payload)
        except ValueError as e:
            return jsonify({"error": str(e)}), 400

        if not source.is_ready():
            return not_ready()

        try:
            samples = get_ndvi_timeseries(aoi, start, end)
        except Exception as e:
            print(f"[API] Error in /api/ndvi-timeseries: {e}")
            return jsonify({
                "error": f"Failed to process satellite time series data: {e}",
                "details": "Please check your area selection and date range, then try again.",
            }), 500

        try:
            series = normalize_samples(samples)
            assessment = evaluate_series(series, **options)
        except EmptySeriesError:
            return jsonify({
                "error": "No satellite data found for the selected area and date range.",
                "details": "Try selecting a larger area or different date range.",
            }), 404
        except InvalidDateError as e:
            print(f"[API] Unparseable acquisition date from Earth Engine: {e}")
            return jsonify({"error": f"Satellite data provider returned an invalid date: {e}"}), 502
        except ChangeEvaluationError as e:
            return jsonify({"error": str(e)}), 400

        return jsonify({
            "aoi": aoi,
            "ndvi_timeseries": [{"date": s.date.isoformat(), "ndvi_mean": s.value} for s in series.samples],
            "summary": {
                "mean": assessment.mean,
                "change_detected": assessment.change_detected,
                "confidence": assessment.confidence,
                "total_observations": assessment.sample_count,
                "date_range": {"start": start, "end": end},
            },
            "assessment": assessment.to_dict(),
        })

    @app.post("/api/change-assessment")
    def change_assessment():
        """Evaluates caller-supplied samples; no Earth Engine access needed."""
        payload = request.get_json(silent=True) or {}
        samples = payload.get("samples")
        if not isinstance(samples, list):
            return jsonify({"error": "'samples' must be a list of {date, value} objects"}), 400
        try:
            options = parse_evaluation_options(payload)
        except InvalidParameterError as e:
            return jsonify({"error": str(e)}), 400

        try:
            series = normalize_samples(samples)
            assessment = evaluate_series(series, **options)
        except EmptySeriesError as e:
            return jsonify({"error": str(e), "details": "No valid index values for this period/area."}), 422
        except ChangeEvaluationError as e:
            return jsonify({"error": str(e)}), 400

        return jsonify({
            "assessment": assessment.to_dict(),
            "normalized_series": [s.to_dict() for s in series.samples],
            "excluded": [
                {"date": s.date.isoformat(), "reason": "null" if s.value is None else "non_finite"}
                for s in series.excluded
            ],
        })

    return app


if __name__ == "__main__":
    app = create_app()
    print(f"[API] Server running on port {config.PORT}")
    print(f"[API] Health check available at: http://localhost:{config.PORT}/api/health")
    print(f"[API] Environment: {config.ENVIRONMENT}")
    app.run(host="0.0.0.0", port=config.PORT)
