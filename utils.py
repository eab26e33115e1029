import os
import ee
import json
import threading
import config

from datetime import datetime
from google.oauth2 import service_account
from tenacity import Retrying, retry_if_not_exception_type, stop_after_attempt, wait_fixed


class CredentialsError(RuntimeError):
    """Service account key missing or unreadable. Not retried."""


class EarthEngineSource:
    """
    Readiness capability of the Earth Engine data source.

    Tracks whether credentials were loaded ('authenticated') and whether the
    client was initialized, and is injected into the HTTP layer instead of
    living in module globals. Initialization is retried with a fixed delay.
    """

    def __init__(self, service_account_env=config.GEE_SERVICE_ACCOUNT_ENV, credentials_file=config.GEE_CREDENTIALS_FILE,
                 attempts=config.GEE_INIT_ATTEMPTS, retry_seconds=config.GEE_INIT_RETRY_SECONDS):
        self.service_account_env = service_account_env
        self.credentials_file = credentials_file
        self.attempts = attempts
        self.retry_seconds = retry_seconds
        self.authenticated = False
        self.initialized = False
        self._thread = None

    def is_ready(self):
        return self.authenticated and self.initialized

    def status(self):
        return {"authenticated": self.authenticated, "initialized": self.initialized}

    def load_credentials(self):
        """
        Loads the service account key, first from the environment variable
        (JSON content, used on hosted deployments), then from the local key file.
        """
        raw = os.environ.get(self.service_account_env)
        if raw:
            try:
                info = json.loads(raw)
            except ValueError as e:
                raise CredentialsError(f"{self.service_account_env} is not valid JSON: {e}") from e
            print(f"[GEE] Service account key loaded from environment variable {self.service_account_env}")
            return service_account.Credentials.from_service_account_info(info, scopes=config.GEE_SCOPES)

        if os.path.exists(self.credentials_file):
            print(f"[GEE] Service account key loaded from local file {self.credentials_file}")
            return service_account.Credentials.from_service_account_file(self.credentials_file, scopes=config.GEE_SCOPES)

        raise CredentialsError(
            f"No service account key: set {self.service_account_env} or provide {self.credentials_file}"
        )

    def _connect(self, attempt_number):
        print(f"[GEE] Attempting authentication (attempt {attempt_number}/{self.attempts})...")
        credentials = self.load_credentials()
        self.authenticated = True

        ee.Initialize(credentials=credentials)
        self.initialized = True
        print("[GEE] Earth Engine client initialized successfully")

    def _before_retry(self, retry_state):
        error = retry_state.outcome.exception()
        print(f"[GEE] Setup failed (attempt {retry_state.attempt_number}): {error}")
        print(f"[GEE] Retrying in {self.retry_seconds} seconds...")

    def initialize(self):
        """
        Authenticates and initializes Earth Engine, retrying transient failures.
        Missing credentials fail immediately. Re-raises the last error.
        """
        retrying = Retrying(
            stop=stop_after_attempt(self.attempts),
            wait=wait_fixed(self.retry_seconds),
            retry=retry_if_not_exception_type(CredentialsError),
            before_sleep=self._before_retry,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                self._connect(attempt.retry_state.attempt_number)
        return self.is_ready()

    def _initialize_in_background(self):
        try:
            self.initialize()
        except Exception as e:
            print(f"[GEE] Setup failed after all retries ({e}). Server will run with limited functionality.")

    def start_background(self):
        """Starts initialization on a daemon thread so the HTTP server can come up immediately."""
        if self._thread is None or not self._thread.is_alive():
            self._thread = threading.Thread(target=self._initialize_in_background, name="gee-init", daemon=True)
            self._thread.start()
        return self._thread


def validate_aoi(aoi):
    """
    Returns the GeoJSON geometry of an AOI given as a geometry or a Feature.
    Only the structure is checked; geometry validity is left to Earth Engine.
    """
    if isinstance(aoi, dict) and aoi.get('type') == 'Feature':
        aoi = aoi.get('geometry')

    if not isinstance(aoi, dict) or not aoi.get('type') or not isinstance(aoi.get('coordinates'), list) or not aoi['coordinates']:
        raise ValueError("AOI must be a GeoJSON geometry (or Feature) with 'type' and non-empty 'coordinates'")

    return aoi


def to_geometry(aoi):
    """ee.Geometry from a GeoJSON geometry/Feature, or from raw Polygon coordinates."""
    if isinstance(aoi, list):
        return ee.Geometry.Polygon(aoi)
    return ee.Geometry(validate_aoi(aoi))


def parse_request_date(value, field):
    """Parses a 'YYYY-MM-DD' request date. Raises ValueError naming the field."""
    try:
        return datetime.strptime(str(value), "%Y-%m-%d").date()
    except (TypeError, ValueError):
        raise ValueError(f"{field} must be a date formatted as YYYY-MM-DD, got {value!r}") from None


def retrieve_sensor_data(sensor_name, roi, start_date, end_date, **kwargs):
    """
    Retrieves and filters an Earth Engine ImageCollection.

    Args:
        sensor_name (str): The Earth Engine asset ID (e.g. 'COPERNICUS/S2_SR_HARMONIZED').
        roi (ee.Geometry): Region of Interest.
        start_date (str): Start date (YYYY-MM-DD).
        end_date (str): End date (YYYY-MM-DD).
        **kwargs: Optional filters:
            - cloud_max (int/float): Max cloud percentage.
              (Detects 'CLOUD_COVER' vs 'CLOUDY_PIXEL_PERCENTAGE' based on ID).

    Returns:
        ee.ImageCollection: The filtered collection.
    """
    col = ee.ImageCollection(sensor_name) \
        .filterBounds(roi) \
        .filterDate(str(start_date), str(end_date))

    if 'cloud_max' in kwargs:
        if 'S2' in sensor_name or 'COPERNICUS/S2' in sensor_name:
            prop = 'CLOUDY_PIXEL_PERCENTAGE'
        else:
            # Landsat standard
            prop = 'CLOUD_COVER'

        col = col.filter(ee.Filter.lt(prop, kwargs['cloud_max']))

    return col


# Calculates NDVI for Sentinel-2 as (NIR - Red) / (NIR + Red)
def ndvi(image):
    ndvi = image.normalizedDifference(config.NDVI_BANDS).rename('NDVI')
    return image.addBands(ndvi)


def generate_metadata(source, collection, image_count, start_date, end_date, roi, runid):

    metadata = {
        'run_id': runid,
        'created_at': str(datetime.now()),
        'source': source,
        'provider': collection,
        'image_count': image_count,
        'date_range': f"{start_date} to {end_date}",
        'roi_coords': roi,
    }

    return metadata
