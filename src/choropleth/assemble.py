"""Group ordered boundary points into closed rings."""

from __future__ import annotations

import logging
from typing import Iterable

from .errors import InconsistentGroupError, MalformedOrderError
from .models import BoundaryPoint, PolygonSet, Ring

_LOGGER = logging.getLogger("choropleth.assemble")


def assemble(points: Iterable[BoundaryPoint], *, min_ring_points: int = 3) -> PolygonSet:
    """Assemble a point stream into a PolygonSet in one pass.

    A change of ``group_id`` closes the current ring. Group boundaries are the
    only ring breaks; spatial proximity is never used. Within a group,
    ``sequence_index`` must strictly increase and region/subregion must stay
    constant. A group id may not reappear once its ring has been closed.
    """
    if min_ring_points < 1:
        raise ValueError("min_ring_points must be >= 1")

    rings: list[Ring] = []
    closed_groups: set[int] = set()
    current: list[BoundaryPoint] = []

    for point in points:
        if current and point.group_id != current[-1].group_id:
            rings.append(_close_ring(current, min_ring_points))
            closed_groups.add(current[-1].group_id)
            current = []

        if not current:
            if point.group_id in closed_groups:
                raise InconsistentGroupError(
                    f"Group {point.group_id} reappears at sequence {point.sequence_index} "
                    "after its ring was closed; group points must be contiguous"
                )
        else:
            _check_continuation(current[-1], point)
        current.append(point)

    if current:
        rings.append(_close_ring(current, min_ring_points))

    polygon_set = PolygonSet(rings=tuple(rings))
    _LOGGER.debug(
        "Assembled %d rings from %d points (%d regions)",
        len(polygon_set),
        polygon_set.point_count,
        len(polygon_set.regions),
    )
    return polygon_set


def _check_continuation(prev: BoundaryPoint, point: BoundaryPoint) -> None:
    if point.sequence_index <= prev.sequence_index:
        raise MalformedOrderError(
            f"Group {point.group_id}: sequence index {point.sequence_index} follows "
            f"{prev.sequence_index}; points must be in strictly increasing order"
        )
    if point.region != prev.region or point.subregion != prev.subregion:
        raise InconsistentGroupError(
            f"Group {point.group_id} spans '{_label(prev)}' and '{_label(point)}'"
        )


def _close_ring(points: list[BoundaryPoint], min_ring_points: int) -> Ring:
    first = points[0]
    if len(points) < min_ring_points:
        raise MalformedOrderError(
            f"Group {first.group_id} ({_label(first)}) has {len(points)} points; "
            f"at least {min_ring_points} are required to close a ring"
        )
    return Ring(
        group_id=first.group_id,
        region=first.region,
        subregion=first.subregion,
        points=tuple(points),
    )


def _label(point: BoundaryPoint) -> str:
    if point.subregion is None:
        return point.region
    return f"{point.region}/{point.subregion}"
