from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv


BASE_DIR = Path(__file__).resolve().parent
load_dotenv(BASE_DIR / ".env")

DATA_DIR = Path(os.getenv("SIGNAGE_DATA_DIR", str(BASE_DIR / "public" / "data")))

MRWA_PORTAL = os.getenv(
    "MRWA_PORTAL",
    "https://gisservices.mainroads.wa.gov.au/arcgis/rest/services/OpenData/RoadAssets_DataPortal/MapServer",
)
SIGNAGE_PAGE_SIZE = 500
SIGNAGE_PAGE_TIMEOUT = float(os.getenv("SIGNAGE_PAGE_TIMEOUT", "45"))

OPEN_METEO_FORECAST_URL = os.getenv("OPEN_METEO_FORECAST_URL", "https://api.open-meteo.com/v1/forecast")
NOMINATIM_REVERSE_URL = os.getenv("NOMINATIM_REVERSE_URL", "https://nominatim.openstreetmap.org/reverse")
GEOCODER_USER_AGENT = os.getenv("GEOCODER_USER_AGENT", "WheatbeltRoadLocator/1.0")
WEATHER_TIMEOUT = float(os.getenv("WEATHER_TIMEOUT", "15"))
GEOCODE_TIMEOUT = float(os.getenv("GEOCODE_TIMEOUT", "10"))
DEFAULT_LOCATION = os.getenv("DEFAULT_LOCATION", "Wheatbelt, WA")

# "module:attribute" resolving to a road topology lookup.
ROAD_TOPOLOGY = os.getenv("ROAD_TOPOLOGY", "")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
PORT = int(os.getenv("PORT", "5000"))
