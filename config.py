import os
import json

# Default AOI (GeoJSON Polygon coordinates, [lon, lat]) used by the batch pipeline
ROI_COORDS = [
    [
        [78.4437, 17.4065],
        [78.4983, 17.4065],
        [78.4983, 17.4498],
        [78.4437, 17.4498],
        [78.4437, 17.4065],
    ]
]
ROI_NAME = "ROI_DEFAULT"

# Dynamic ROI Loading
if os.path.exists('roi.json'):
    try:
        with open('roi.json', 'r') as f:
            roi_data = json.load(f)
            # The map UI saves the raw geometry object: {"type": "Polygon", "coordinates": [...]}
            if 'coordinates' in roi_data:
                ROI_COORDS = roi_data['coordinates']
                print("Loaded custom ROI from roi.json")
    except (OSError, ValueError) as e:
        print(f"Error loading roi.json: {e}. Using default coordinates.")


# Change evaluation
CHANGE_THRESHOLD = float(os.environ.get("CHANGE_THRESHOLD", 0.1))   # NDVI units, [-1, 1] range
CONFIDENCE_SCALE = float(os.environ.get("CONFIDENCE_SCALE", 2.0))
DEFAULT_STATISTIC = os.environ.get("CHANGE_STATISTIC", "split_mean")
SIGNIFICANCE_ALPHA = 0.05   # Only used by the statistical variants (welch_t, mann_kendall)

# Sentinel-2 acquisition
S2_COLLECTION = 'COPERNICUS/S2_SR_HARMONIZED'
NDVI_BANDS = ['B8', 'B4']   # NIR, Red
CLOUD_THRESH = 20           # Max CLOUDY_PIXEL_PERCENTAGE per scene
SAMPLING_SCALE = 10         # Resolution in meters
MAX_PIXELS = 1e9

# Batch pipeline window: last N months when no dates are given
DEFAULT_LOOKBACK_MONTHS = 12

# Earth Engine authentication
GEE_SERVICE_ACCOUNT_ENV = "GEE_SERVICE_ACCOUNT"   # Service account JSON content (deployments)
GEE_CREDENTIALS_FILE = os.environ.get("GEE_CREDENTIALS_FILE", "service-account.json")
GEE_SCOPES = ["https://www.googleapis.com/auth/earthengine"]
GEE_INIT_ATTEMPTS = 4        # 1 try + 3 retries
GEE_INIT_RETRY_SECONDS = 5

# HTTP backend
PORT = int(os.environ.get("PORT", 5000))
ENVIRONMENT = os.environ.get("APP_ENV", os.environ.get("NODE_ENV", "development"))
CORS_ORIGINS = [
    origin.strip()
    for origin in os.environ.get("CORS_ORIGINS", "https://isro-ui.netlify.app,http://localhost:3000").split(",")
    if origin.strip()
]

# Run bundles
OUTPUT_DIR = "output"
