from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta
from typing import Any, Mapping

import pandas as pd
import requests
from dateutil import parser as date_parser
from dateutil import tz

import settings

logger = logging.getLogger(__name__)

# Western Australia keeps UTC+8 all year.
AWST = tz.tzoffset("AWST", 8 * 3600)

FORECAST_HOURS = 8

CURRENT_FIELDS = "temperature_2m,relative_humidity_2m,wind_speed_10m,wind_direction_10m,wind_gusts_10m,weather_code"
HOURLY_FIELDS = "temperature_2m,wind_speed_10m,wind_direction_10m,weather_code"
DAILY_FIELDS = "sunrise,sunset,uv_index_max"

WIND_DIRECTIONS = [
    "N", "NNE", "NE", "ENE", "E", "ESE", "SE", "SSE",
    "S", "SSW", "SW", "WSW", "W", "WNW", "NW", "NNW",
]

# WMO weather interpretation codes
WEATHER_CODES: dict[int, str] = {
    0: "Clear",
    1: "Mainly clear",
    2: "Partly cloudy",
    3: "Overcast",
    45: "Foggy",
    48: "Rime fog",
    51: "Light drizzle",
    53: "Drizzle",
    55: "Heavy drizzle",
    61: "Light rain",
    63: "Rain",
    65: "Heavy rain",
    66: "Freezing rain",
    67: "Heavy freezing rain",
    71: "Light snow",
    73: "Snow",
    75: "Heavy snow",
    77: "Snow grains",
    80: "Light showers",
    81: "Showers",
    82: "Heavy showers",
    85: "Light snow showers",
    86: "Snow showers",
    95: "Thunderstorm",
    96: "Thunderstorm + hail",
    99: "Heavy thunderstorm + hail",
}


def _missing(value: Any) -> bool:
    return value is None or (isinstance(value, float) and math.isnan(value))


def round_half_up(value: float | None) -> int | None:
    if _missing(value):
        return None
    return int(math.floor(float(value) + 0.5))


def wind_direction(degrees: float | None) -> str:
    if _missing(degrees):
        return "Unknown"
    index = int(math.floor(float(degrees) / 22.5 + 0.5)) % 16
    return WIND_DIRECTIONS[index]


def weather_code_to_text(code: float | None) -> str:
    if _missing(code):
        return "Unknown"
    return WEATHER_CODES.get(int(code), "Unknown") if float(code).is_integer() else "Unknown"


def uv_level(uv_index: float) -> str:
    if uv_index <= 2:
        return "Low"
    if uv_index <= 5:
        return "Moderate"
    if uv_index <= 7:
        return "High"
    if uv_index <= 10:
        return "Very High"
    return "Extreme"


def parse_utc(text: str) -> datetime:
    # Open-Meteo returns naive ISO strings when asked for timezone=UTC.
    dt = date_parser.isoparse(text)
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz.UTC)
    return dt.astimezone(tz.UTC)


def to_wa_time(utc_text: str) -> str:
    return parse_utc(utc_text).astimezone(AWST).strftime("%H:%M")


def format_sun_time(utc_text: str) -> str:
    return parse_utc(utc_text).astimezone(AWST).strftime("%I:%M %p").lower()


def daylight_hours(sunrise: str, sunset: str) -> str:
    seconds = (parse_utc(sunset) - parse_utc(sunrise)).total_seconds()
    hours = math.floor(seconds / 3600)
    minutes = math.floor((seconds % 3600) / 60 + 0.5)
    return f"{hours}h {minutes}m"


def forecast_window(now: datetime) -> tuple[str, str]:
    """Calendar dates (UTC) covering now through now + 8 hours."""
    now_utc = now.astimezone(tz.UTC)
    end = now_utc + timedelta(hours=FORECAST_HOURS)
    return now_utc.date().isoformat(), end.date().isoformat()


def parse_coordinates(args: Mapping[str, str]) -> tuple[float, float]:
    lat_text = (args.get("lat") or "").strip()
    lon_text = (args.get("lon") or "").strip()
    if not lat_text or not lon_text:
        raise ValueError("lat and lon required")
    lat, lon = float(lat_text), float(lon_text)
    if not (math.isfinite(lat) and math.isfinite(lon)):
        raise ValueError("lat and lon required")
    return lat, lon


def fetch_forecast(lat: float, lon: float, now: datetime) -> dict[str, Any]:
    start_date, end_date = forecast_window(now)
    params = {
        "latitude": lat,
        "longitude": lon,
        "current": CURRENT_FIELDS,
        "hourly": HOURLY_FIELDS,
        "daily": DAILY_FIELDS,
        "start_date": start_date,
        "end_date": end_date,
        "timezone": "UTC",
        "wind_speed_unit": "kmh",
    }
    resp = requests.get(settings.OPEN_METEO_FORECAST_URL, params=params, timeout=settings.WEATHER_TIMEOUT)
    resp.raise_for_status()
    return resp.json()


def reverse_geocode(lat: float, lon: float) -> str:
    """Best-effort place name for a coordinate; never raises."""
    name = settings.DEFAULT_LOCATION
    try:
        resp = requests.get(
            settings.NOMINATIM_REVERSE_URL,
            params={"lat": lat, "lon": lon, "format": "json"},
            headers={"User-Agent": settings.GEOCODER_USER_AGENT},
            timeout=settings.GEOCODE_TIMEOUT,
        )
        if not resp.ok:
            logger.warning("Reverse geocoding returned HTTP %s; using default location", resp.status_code)
            return name
        address = (resp.json() or {}).get("address") or {}
    except (requests.RequestException, ValueError, AttributeError) as exc:
        logger.warning("Reverse geocoding failed (%s); using default location", exc)
        return name

    name = (
        address.get("city")
        or address.get("town")
        or address.get("village")
        or address.get("hamlet")
        or address.get("county")
        or settings.DEFAULT_LOCATION
    )
    if address.get("state"):
        name += ", " + address["state"]
    return name


def build_hourly_forecast(hourly: Mapping[str, list[Any]], now: datetime) -> list[dict[str, Any]]:
    frame = pd.DataFrame(hourly)
    if frame.empty or "time" not in frame.columns:
        return []
    frame = frame.drop_duplicates(subset="time", keep="first").set_index("time")

    start = now.astimezone(tz.UTC).replace(minute=0, second=0, microsecond=0)
    forecast: list[dict[str, Any]] = []
    for i in range(FORECAST_HOURS):
        key = (start + timedelta(hours=i)).strftime("%Y-%m-%dT%H:00")
        if key not in frame.index:
            continue
        row = frame.loc[key]
        forecast.append(
            {
                "time": to_wa_time(key),
                "temp": round_half_up(row.get("temperature_2m")),
                "windSpeed": round_half_up(row.get("wind_speed_10m")),
                "windDir": wind_direction(row.get("wind_direction_10m")),
                "condition": weather_code_to_text(row.get("weather_code")),
            }
        )
    return forecast


def _first(values: list[Any] | None) -> Any:
    return values[0] if values else None


def build_sun(daily: Mapping[str, list[Any]]) -> dict[str, Any]:
    sunrise = _first(daily.get("sunrise"))
    sunset = _first(daily.get("sunset"))
    uv_index = _first(daily.get("uv_index_max")) or 0
    return {
        "sunrise": format_sun_time(sunrise) if sunrise else "N/A",
        "sunset": format_sun_time(sunset) if sunset else "N/A",
        "daylightHours": daylight_hours(sunrise, sunset) if sunrise and sunset else "N/A",
        "uvIndex": uv_index,
        "uvLevel": uv_level(uv_index),
    }


def build_weather_payload(data: dict[str, Any], location: str, now: datetime) -> dict[str, Any]:
    current = data["current"]
    return {
        "location": location,
        "current": {
            "temp": round_half_up(current.get("temperature_2m")),
            "humidity": current.get("relative_humidity_2m"),
            "windSpeed": round_half_up(current.get("wind_speed_10m")),
            "windDir": wind_direction(current.get("wind_direction_10m")),
            "windGust": round_half_up(current.get("wind_gusts_10m")),
            "condition": weather_code_to_text(current.get("weather_code")),
        },
        "sun": build_sun(data["daily"]),
        "forecast": build_hourly_forecast(data["hourly"], now),
    }


def get_weather(lat: float, lon: float, now: datetime | None = None) -> dict[str, Any]:
    now = now or datetime.now(tz=tz.UTC)
    data = fetch_forecast(lat, lon, now)
    location = reverse_geocode(lat, lon)
    return build_weather_payload(data, location, now)
