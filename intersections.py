"""
Intersection Finder: query validation and response shaping around a
pluggable road-topology lookup.

A lookup takes a road id and a start SLK (plus an optional end SLK) and
returns an :class:`IntersectionResult`, or ``None`` when the road has no
segments in that range. How it finds crossing roads is up to the lookup.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Mapping, Protocol

from werkzeug.utils import import_string

EXAMPLE_URL = "/api/intersections?road_id=M060&slk_start=43.13"
EXAMPLE_URL_RANGE = "/api/intersections?road_id=M060&slk_start=43.13&slk_end=43.33"


@dataclass
class RoadInfo:
    road_id: str
    road_name: str
    slk_start: float
    slk_end: float
    region: str


@dataclass
class TcZone:
    start_slk: float
    end_slk: float
    start_coord: dict[str, float] | None = None
    end_coord: dict[str, float] | None = None


@dataclass
class WorkZone:
    start_slk: float
    end_slk: float


@dataclass
class IntersectingRoad:
    road_id: str
    road_name: str
    slk_start: float
    slk_end: float
    region: str
    source: str
    intersection_slk: float
    lat: float
    lon: float
    intersection_node: str | None = None


@dataclass
class IntersectionNode:
    node_no: str
    node_name: str
    slk_on_ref_road: float
    has_connected_road: bool
    lat: float
    lon: float
    connected_road_id: str | None = None


@dataclass
class IntersectionResult:
    reference_road: RoadInfo
    tc_zone: TcZone
    work_zone: WorkZone | None = None
    intersecting_roads: list[IntersectingRoad] = field(default_factory=list)
    intersection_nodes: list[IntersectionNode] = field(default_factory=list)


class RoadTopology(Protocol):
    def find_intersecting_roads(
        self, road_id: str, slk_start: float, slk_end: float | None = None
    ) -> IntersectionResult | None:
        ...


def load_topology(path: str) -> RoadTopology | None:
    """Resolve a ``module:attribute`` import path to a lookup object."""
    if not path:
        return None
    obj = import_string(path)
    return obj() if isinstance(obj, type) else obj


class QueryError(ValueError):
    def __init__(self, payload: dict[str, Any]):
        super().__init__(payload.get("error", "Invalid query"))
        self.payload = payload


def _finite(text: str) -> float:
    value = float(text)
    if not math.isfinite(value):
        raise ValueError(f"not a finite number: {text}")
    return value


def parse_intersection_query(args: Mapping[str, str]) -> tuple[str, float, float | None]:
    road_id = (args.get("road_id") or "").strip()
    slk_start_text = (args.get("slk_start") or "").strip()
    slk_end_text = (args.get("slk_end") or "").strip()

    if not road_id or not slk_start_text:
        raise QueryError(
            {
                "error": "Parameters required: road_id, slk_start (optional: slk_end)",
                "example": EXAMPLE_URL,
                "example2": EXAMPLE_URL_RANGE,
            }
        )

    try:
        slk_start = _finite(slk_start_text)
        slk_end = _finite(slk_end_text) if slk_end_text else None
    except ValueError:
        raise QueryError({"error": "Invalid SLK values"}) from None

    return road_id, slk_start, slk_end


def road_type_for(road_id: str) -> str:
    if road_id.startswith("H"):
        return "Highway"
    if road_id.startswith("M"):
        return "Main Road"
    return "Local Road"


def maps_url(lat: float | None, lon: float | None) -> str:
    if not lat or not lon:
        return ""
    return f"https://www.google.com/maps?q={lat},{lon}"


def _cross_road(road: IntersectingRoad) -> dict[str, Any]:
    return {
        "name": road.road_name,
        "road_id": road.road_id,
        "distance": f"{road.intersection_slk:.2f} km",
        "lat": road.lat,
        "lon": road.lon,
        "roadType": road_type_for(road.road_id),
        "googleMapsUrl": maps_url(road.lat, road.lon),
        "intersectionNode": road.intersection_node,
        "intersectionSlk": road.intersection_slk,
    }


def _unconfirmed_cross_road(node: IntersectionNode) -> dict[str, Any]:
    # Named in the topology, but no road record in the MRWA network.
    return {
        "name": node.node_name,
        "road_id": "LOCAL",
        "distance": f"{node.slk_on_ref_road:.2f} km",
        "lat": node.lat,
        "lon": node.lon,
        "roadType": "Local Road (unconfirmed)",
        "googleMapsUrl": maps_url(node.lat, node.lon),
        "intersectionNode": node.node_name,
        "intersectionSlk": node.slk_on_ref_road,
    }


def build_intersection_payload(result: IntersectionResult) -> dict[str, Any]:
    cross_roads = [_cross_road(road) for road in result.intersecting_roads]
    for node in result.intersection_nodes:
        if not node.has_connected_road and node.node_name:
            cross_roads.append(_unconfirmed_cross_road(node))

    tc = result.tc_zone
    payload: dict[str, Any] = {
        "referenceRoad": {
            "road_id": result.reference_road.road_id,
            "road_name": result.reference_road.road_name,
            "region": result.reference_road.region,
        },
        "tcZone": {
            "start_slk": tc.start_slk,
            "end_slk": tc.end_slk,
            "start": tc.start_coord,
            "end": tc.end_coord,
        },
        "crossRoads": cross_roads,
        "intersectionNodes": [
            {
                "nodeName": node.node_name,
                "slkOnRefRoad": node.slk_on_ref_road,
                "hasConnectedRoad": node.has_connected_road,
                "connectedRoadId": node.connected_road_id,
                "lat": node.lat,
                "lon": node.lon,
            }
            for node in result.intersection_nodes
        ],
        "count": len(cross_roads),
        "nodesWithoutRoads": sum(1 for node in result.intersection_nodes if not node.has_connected_road),
        "searchType": "mrwa-tc-zone",
        "tcZoneLength": f"{math.floor((tc.end_slk - tc.start_slk) * 1000 + 0.5)} m",
    }
    if result.work_zone is not None:
        payload["workZone"] = {"startSlk": result.work_zone.start_slk, "endSlk": result.work_zone.end_slk}
    return payload


def not_found_payload(road_id: str, slk_start: float, slk_end: float | None) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "error": f"No road segments found for {road_id} at the specified SLK range",
        "road_id": road_id,
        "slk_start": slk_start,
    }
    if slk_end is not None:
        payload["slk_end"] = slk_end
    return payload
