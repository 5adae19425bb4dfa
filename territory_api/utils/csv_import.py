"""Import of territories exported as CSV rows carrying `[lon,lat]` pairs."""
from __future__ import annotations

import logging
import re
from typing import Any, Dict, List

logger = logging.getLogger(__name__)

_COORD_PATTERN = re.compile(r"\[([0-9.\-]+),([0-9.\-]+)\]")


# PUBLIC_INTERFACE
def parse_csv(content: str) -> List[Dict[str, Any]]:
    """
    Parse CSV content into territories.

    Only lines containing coordinates are considered; lines starting with a
    quoted coordinate list are skipped. The territory number concatenates the
    fifth and fourth columns and the name is the third column.
    """
    lines = [
        line for line in content.split("\n")
        if "[" in line and not line.strip().startswith('"[')
    ]

    territories: List[Dict[str, Any]] = []
    for index, line in enumerate(lines, start=1):
        try:
            polygon = [
                {"lat": float(match.group(2)), "lon": float(match.group(1))}
                for match in _COORD_PATTERN.finditer(line)
            ]
        except ValueError as exc:
            logger.warning("CSV line %d: invalid coordinate (%s)", index, exc)
            continue
        if not polygon:
            logger.warning("CSV line %d: no coordinates found", index)
            continue

        parts = line.split(",")
        num = ((parts[4] if len(parts) > 4 else "") + (parts[3] if len(parts) > 3 else "")) or "Territoire"
        name = (parts[2] if len(parts) > 2 else "").replace("ï¿½", "è").strip()
        territories.append({"num": num, "name": name, "polygon": polygon, "isDefault": True})
    return territories
