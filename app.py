from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from flask import Flask, abort, jsonify, request, send_from_directory

import settings
from intersections import (
    QueryError,
    build_intersection_payload,
    load_topology,
    not_found_payload,
    parse_intersection_query,
)
from signage import LAYER_CHOICES, SIGNAGE_LAYERS, SignageDownloadError, download_signage, layers_for
from weather import get_weather, parse_coordinates

logger = logging.getLogger(__name__)

app = Flask(__name__)
app.config["DATA_DIR"] = settings.DATA_DIR
app.config["ROAD_TOPOLOGY"] = load_topology(settings.ROAD_TOPOLOGY)


def data_dir() -> Path:
    return Path(app.config["DATA_DIR"])


def road_topology() -> Any:
    topology = app.config.get("ROAD_TOPOLOGY")
    if isinstance(topology, str):
        topology = app.config["ROAD_TOPOLOGY"] = load_topology(topology)
    if topology is None:
        raise RuntimeError("No road topology lookup configured (set ROAD_TOPOLOGY)")
    return topology


@app.route("/health")
def health() -> Any:
    folder = data_dir()
    files = {layer_def.filename: (folder / layer_def.filename).exists() for layer_def in SIGNAGE_LAYERS.values()}
    return jsonify({"ok": True, "data_dir": str(folder), "files": files})


@app.route("/data/<path:filename>")
def data_file(filename: str) -> Any:
    if filename not in {layer_def.filename for layer_def in SIGNAGE_LAYERS.values()}:
        abort(404)
    return send_from_directory(data_dir(), filename)


@app.route("/api/download-signs")
def api_download_signs() -> Any:
    layer = request.args.get("layer", "")
    try:
        layers_for(layer)
    except ValueError as exc:
        return jsonify(
            {
                "success": False,
                "error": str(exc),
                "allowed": list(LAYER_CHOICES),
                "example": "/api/download-signs?layer=all",
            }
        ), 400

    try:
        summary = download_signage(layer, data_dir())
    except SignageDownloadError as exc:
        logger.exception("Signage download failed; finished: %s", list(exc.results))
        return jsonify({"success": False, "error": str(exc), "results": exc.results}), 500
    except Exception as exc:
        logger.exception("Signage download failed")
        return jsonify({"success": False, "error": str(exc), "results": {}}), 500
    return jsonify(summary)


@app.route("/api/intersections")
def api_intersections() -> Any:
    try:
        road_id, slk_start, slk_end = parse_intersection_query(request.args)
    except QueryError as exc:
        return jsonify(exc.payload), 400

    try:
        result = road_topology().find_intersecting_roads(road_id, slk_start, slk_end)
        if result is None:
            return jsonify(not_found_payload(road_id, slk_start, slk_end)), 404
        return jsonify(build_intersection_payload(result))
    except Exception:
        logger.exception("Intersection search error for %s at %s-%s", road_id, slk_start, slk_end)
        return jsonify({"error": "Failed to find intersections"}), 500


@app.route("/api/weather")
def api_weather() -> Any:
    try:
        lat, lon = parse_coordinates(request.args)
    except ValueError:
        return jsonify({"error": "lat and lon required"}), 400

    try:
        return jsonify(get_weather(lat, lon))
    except Exception:
        logger.exception("Weather fetch failed for %s,%s", lat, lon)
        return jsonify({"error": "Failed to fetch weather"}), 500


if __name__ == "__main__":
    from logging_setup import setup_logging

    setup_logging(settings.LOG_LEVEL)
    app.run(host="0.0.0.0", port=settings.PORT, debug=False)
