from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Callable

from dateutil import tz

import settings
from fetch_utils import FetchResult, fetch_with_timeout

logger = logging.getLogger(__name__)

LAYER_ORDER = ("rail", "regulatory", "warning")
LAYER_CHOICES = (*LAYER_ORDER, "all")


def rail_crossing_from_attributes(attrs: dict[str, Any]) -> dict[str, Any]:
    return {
        "road_id": attrs.get("ROAD") or "",
        "road_name": attrs.get("ROAD_NAME") or "",
        "slk": attrs.get("START_SLK") or 0,
        "carriageway": attrs.get("CWY") or "Single",
        "crossing_type": attrs.get("XING_TYPE") or "Unknown",
        "crossing_no": attrs.get("XING_NO") or "",
    }


def _sign_from_attributes(attrs: dict[str, Any], type_field: str) -> dict[str, Any]:
    return {
        "road_id": attrs.get("ROAD") or "",
        "road_name": attrs.get("ROAD_NAME") or "",
        "slk": attrs.get("SLK") or 0,
        "carriageway": attrs.get("CWY") or "Single",
        "sign_type": attrs.get(type_field) or "Other",
        "panel_design": attrs.get("PANEL_01_DESIGN") or "",
        "panel_meaning": attrs.get("PANEL_01_DESIGN_MEANING") or "",
    }


def regulatory_sign_from_attributes(attrs: dict[str, Any]) -> dict[str, Any]:
    return _sign_from_attributes(attrs, "REGULATORY_SIGN_TYPE")


def warning_sign_from_attributes(attrs: dict[str, Any]) -> dict[str, Any]:
    return _sign_from_attributes(attrs, "WARNING_SIGN_TYPE")


@dataclass(frozen=True)
class SignageLayer:
    key: str
    label: str
    layer_id: int
    out_fields: str
    array_name: str
    filename: str
    max_offset: int
    flatten: Callable[[dict[str, Any]], dict[str, Any]]


SIGNAGE_LAYERS: dict[str, SignageLayer] = {
    "rail": SignageLayer(
        key="rail",
        label="Rail Crossings",
        layer_id=15,
        out_fields="ROAD,ROAD_NAME,START_SLK,END_SLK,CWY,XING_TYPE,XING_NO",
        array_name="railCrossings",
        filename="rail-crossings.json",
        max_offset=5_000,
        flatten=rail_crossing_from_attributes,
    ),
    "regulatory": SignageLayer(
        key="regulatory",
        label="Regulatory Signs",
        layer_id=22,
        out_fields="ROAD,ROAD_NAME,SLK,CWY,PANEL_01_DESIGN,PANEL_01_DESIGN_MEANING,REGULATORY_SIGN_TYPE",
        array_name="regulatorySigns",
        filename="regulatory-signs.json",
        max_offset=50_000,
        flatten=regulatory_sign_from_attributes,
    ),
    "warning": SignageLayer(
        key="warning",
        label="Warning Signs",
        layer_id=23,
        out_fields="ROAD,ROAD_NAME,SLK,CWY,PANEL_01_DESIGN,PANEL_01_DESIGN_MEANING,WARNING_SIGN_TYPE",
        array_name="warningSigns",
        filename="warning-signs.json",
        max_offset=50_000,
        flatten=warning_sign_from_attributes,
    ),
}


def layers_for(layer: str | None) -> list[SignageLayer]:
    key = (layer or "").strip()
    if key == "all":
        return [SIGNAGE_LAYERS[k] for k in LAYER_ORDER]
    if key in SIGNAGE_LAYERS:
        return [SIGNAGE_LAYERS[key]]
    raise ValueError(f"layer must be one of: {', '.join(LAYER_CHOICES)}")


def page_params(layer_def: SignageLayer, offset: int, page_size: int) -> dict[str, Any]:
    return {
        "where": "1=1",
        "outFields": layer_def.out_fields,
        "returnGeometry": "false",
        "resultOffset": offset,
        "resultRecordCount": page_size,
        "f": "json",
    }


def download_layer(
    layer_def: SignageLayer,
    data_dir: Path,
    fetch: Callable[..., FetchResult] = fetch_with_timeout,
    page_size: int = settings.SIGNAGE_PAGE_SIZE,
    timeout: float = settings.SIGNAGE_PAGE_TIMEOUT,
) -> dict[str, Any]:
    """Page through one feature-service layer and write it to ``data_dir``.

    Returns ``{"count", "file"}`` on success or ``{"error"}`` when a page
    fails. A failed run writes nothing, so the previous file stays in place.
    """
    logger.info("Downloading %s (Layer %d)...", layer_def.label, layer_def.layer_id)
    url = f"{settings.MRWA_PORTAL}/{layer_def.layer_id}/query"
    records: list[dict[str, Any]] = []
    offset = 0

    while True:
        result = fetch(url, params=page_params(layer_def, offset, page_size), timeout=timeout)
        if not result.ok:
            logger.warning("%s: page at offset %d failed: %s", layer_def.label, offset, result.error)
            return {"error": result.error}

        features = (result.data or {}).get("features") or []
        for feature in features:
            records.append(layer_def.flatten(feature.get("attributes") or {}))
        logger.info("%s: %d fetched...", layer_def.label, len(records))

        if len(features) < page_size:
            break
        offset += page_size
        if offset > layer_def.max_offset:
            logger.warning("%s: stopped at safety limit (offset %d)", layer_def.label, offset)
            break

    path = data_dir / layer_def.filename
    path.write_text(json.dumps({layer_def.array_name: records}, indent=2), encoding="utf-8")
    return {"count": len(records), "file": layer_def.filename}


class SignageDownloadError(Exception):
    """A category raised mid-run; ``results`` holds the categories already finished."""

    def __init__(self, message: str, results: dict[str, Any]):
        super().__init__(message)
        self.results = results


def utc_timestamp() -> str:
    return datetime.now(tz=tz.UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def download_signage(
    layer: str | None,
    data_dir: Path,
    fetch: Callable[..., FetchResult] = fetch_with_timeout,
) -> dict[str, Any]:
    layer_defs = layers_for(layer)
    data_dir.mkdir(parents=True, exist_ok=True)

    results: dict[str, Any] = {}
    try:
        for layer_def in layer_defs:
            results[layer_def.array_name] = download_layer(layer_def, data_dir, fetch=fetch)
    except Exception as exc:
        raise SignageDownloadError(str(exc), results) from exc

    return {
        "success": True,
        "message": "Signage data downloaded successfully",
        "results": results,
        "timestamp": utc_timestamp(),
    }


def main(argv: list[str] | None = None) -> int:
    from logging_setup import setup_logging

    ap = argparse.ArgumentParser(description="Download MRWA signage layers to flat JSON files")
    ap.add_argument("--layer", choices=LAYER_CHOICES, default="all", help="Which layer to download")
    ap.add_argument("--data-dir", type=Path, default=settings.DATA_DIR, help="Output directory for the JSON files")
    args = ap.parse_args(argv)

    setup_logging(settings.LOG_LEVEL)
    summary = download_signage(args.layer, args.data_dir)

    failed = False
    for name, outcome in summary["results"].items():
        if "error" in outcome:
            failed = True
            logger.error("%s: %s", name, outcome["error"])
        else:
            logger.info("%s: saved %d records to %s", name, outcome["count"], args.data_dir / outcome["file"])
    return 1 if failed else 0


if __name__ == "__main__":
    sys.exit(main())
