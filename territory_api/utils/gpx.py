"""
GPX reading and writing.

Each territory is stored as one `<trk>` whose `<name>` reads
"<number> - <name>" and whose `<trkpt>` elements form the polygon.
"""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from typing import Any, Dict, Iterable, List
from xml.sax.saxutils import escape, quoteattr

logger = logging.getLogger(__name__)

DEFAULT_TRACK_NAME = "A00 - Territoire"
GPX_CREATOR = "territory.djahmo.fr"
GPX_NAMESPACE = "http://www.topografix.com/GPX/1/1"


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _children(element: ET.Element, name: str) -> Iterable[ET.Element]:
    return (el for el in element.iter() if _local_name(el.tag) == name)


def _to_float(value: str | None) -> float:
    try:
        return float(value or 0)
    except ValueError:
        return 0.0


# PUBLIC_INTERFACE
def parse_gpx(xml: str) -> List[Dict[str, Any]]:
    """
    Parse a GPX document into territories.

    Returns a list of `{"num", "name", "polygon", "isDefault"}` dicts. Tracks
    without points are dropped and a malformed document yields an empty list.
    """
    if not xml or not xml.strip():
        return []
    try:
        root = ET.fromstring(xml.strip().encode("utf-8"))
    except ET.ParseError as exc:
        logger.warning("Could not parse GPX document: %s", exc)
        return []

    territories: List[Dict[str, Any]] = []
    for trk in _children(root, "trk"):
        name_el = next(_children(trk, "name"), None)
        num_name = (name_el.text or "").strip() if name_el is not None else ""
        num_name = num_name or DEFAULT_TRACK_NAME
        # "<num> - <name>"; older files may end with a bare " -"
        num, _, name = num_name.removesuffix(" -").partition(" - ")
        num, name = num.strip(), name.strip() or None

        polygon = [
            {"lat": _to_float(pt.get("lat")), "lon": _to_float(pt.get("lon"))}
            for pt in _children(trk, "trkpt")
        ]
        if not polygon:
            continue
        territories.append({"num": num, "name": name, "polygon": polygon, "isDefault": True})
    return territories


# PUBLIC_INTERFACE
def make_gpx(territories: Iterable[Dict[str, Any]]) -> str:
    """Serialize territories into a GPX 1.1 document."""
    tracks = []
    for territory in territories:
        points = "\n".join(
            f"      <trkpt lat={quoteattr(str(p['lat']))} lon={quoteattr(str(p['lon']))} />"
            for p in territory["polygon"]
        )
        label = str(territory["num"])
        if territory.get("name"):
            label = f"{label} - {territory['name']}"
        name = escape(label)
        tracks.append(
            f"  <trk>\n    <name>{name}</name>\n    <trkseg>\n{points}\n    </trkseg>\n  </trk>"
        )
    body = "\n".join(tracks)
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<gpx version="1.1" creator="{GPX_CREATOR}" xmlns="{GPX_NAMESPACE}">\n'
        f"{body}\n"
        "</gpx>"
    )
