"""Boundary dataset catalog: named sources of ordered boundary point streams."""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Any, Callable, Iterable, Iterator, Sequence

from .assemble import assemble
from .errors import ChoroplethError, UnknownDatasetError
from .models import BoundaryPoint, PolygonSet

PointFactory = Callable[[], Iterable[BoundaryPoint]]

_LOGGER = logging.getLogger("choropleth.catalog")

DEMO_DATASET = "demo_states"

# Rough outlines, one four-point ring per state.
_DEMO_STATES: tuple[tuple[str, tuple[tuple[float, float], ...]], ...] = (
    ("oregon", ((-124.5, 42.0), (-116.5, 42.0), (-116.9, 46.0), (-124.0, 46.2))),
    ("nevada", ((-120.0, 42.0), (-114.0, 42.0), (-114.0, 36.0), (-120.0, 39.0))),
    ("california", ((-124.4, 42.0), (-120.0, 42.0), (-114.6, 32.7), (-117.1, 32.5))),
)


def _first_existing_column(columns: Iterable[str], candidates: Sequence[str]) -> str | None:
    existing = {col.lower(): col for col in columns}
    for candidate in candidates:
        match = existing.get(candidate.lower())
        if match:
            return match
    return None


class BoundaryCatalog:
    """Registry mapping dataset names to lazily produced point streams.

    Each source is a zero-argument factory, so a lookup only reads data when
    the returned iterator is consumed.
    """

    LONGITUDE_COLUMNS = ("longitude", "long", "lon", "lng", "x")
    LATITUDE_COLUMNS = ("latitude", "lat", "y")
    ORDER_COLUMNS = ("sequence_index", "order", "seq", "point_order")
    GROUP_COLUMNS = ("group_id", "group", "ring", "part")
    REGION_COLUMNS = ("region", "state", "name")
    SUBREGION_COLUMNS = ("subregion", "county", "subname")

    def __init__(self, *, table_chunksize: int = 50_000) -> None:
        if table_chunksize < 1:
            raise ValueError("table_chunksize must be >= 1")
        self._sources: dict[str, PointFactory] = {}
        self.table_chunksize = table_chunksize

    def __contains__(self, name: object) -> bool:
        return name in self._sources

    def names(self) -> tuple[str, ...]:
        return tuple(sorted(self._sources))

    def register(self, name: str, factory: PointFactory, *, replace: bool = False) -> None:
        key = name.strip()
        if not key:
            raise ValueError("Dataset name must be a non-empty string")
        if key in self._sources and not replace:
            raise ValueError(f"Dataset '{key}' is already registered")
        self._sources[key] = factory

    def register_points(self, name: str, points: Sequence[BoundaryPoint], *, replace: bool = False) -> None:
        frozen = tuple(points)
        self.register(name, lambda: frozen, replace=replace)

    def register_table(self, name: str, path: Path, *, replace: bool = False) -> None:
        """Register a CSV point table (columns long/lat/group/order/region/subregion)."""
        table_path = Path(path)
        self.register(name, lambda: self._iter_table(table_path), replace=replace)

    def register_geodataframe(
        self,
        name: str,
        frame: Any,
        *,
        region_column: str,
        subregion_column: str | None = None,
        replace: bool = False,
    ) -> None:
        """Register polygon rows of a GeoDataFrame as a point stream."""
        self.register(
            name,
            lambda: points_from_geometries(
                _geometry_rows(frame, region_column=region_column, subregion_column=subregion_column)
            ),
            replace=replace,
        )

    def register_boundary_file(
        self,
        name: str,
        path: Path,
        *,
        region_column: str,
        subregion_column: str | None = None,
        replace: bool = False,
    ) -> None:
        """Register a vector boundary file readable by GeoPandas (GeoJSON, GPKG, ...)."""
        boundary_path = Path(path)

        def _factory() -> Iterator[BoundaryPoint]:
            frame = _require_geopandas().read_file(boundary_path)
            yield from points_from_geometries(
                _geometry_rows(frame, region_column=region_column, subregion_column=subregion_column)
            )

        self.register(name, _factory, replace=replace)

    def lookup(self, name: str) -> Iterator[BoundaryPoint]:
        """Return the ordered point stream for one dataset."""
        factory = self._sources.get(name)
        if factory is None:
            raise UnknownDatasetError(name, self.names())
        return iter(factory())

    def _iter_table(self, path: Path) -> Iterator[BoundaryPoint]:
        pd = _require_pandas()
        if not path.exists():
            raise FileNotFoundError(f"Boundary table not found: {path}")
        columns: dict[str, str | None] | None = None
        rows_read = 0
        for chunk in pd.read_csv(path, chunksize=self.table_chunksize):
            if columns is None:
                columns = self._resolve_columns(chunk.columns)
            for row_dict in chunk.to_dict("records"):
                yield BoundaryPoint.from_mapping(
                    {
                        field_name: row_dict.get(col) if col is not None else None
                        for field_name, col in columns.items()
                    }
                )
                rows_read += 1
        _LOGGER.debug("Read %d boundary points from %s", rows_read, path)

    def _resolve_columns(self, columns: Iterable[Any]) -> dict[str, str | None]:
        names = [str(col) for col in columns]
        resolved = {
            "longitude": _first_existing_column(names, self.LONGITUDE_COLUMNS),
            "latitude": _first_existing_column(names, self.LATITUDE_COLUMNS),
            "sequence_index": _first_existing_column(names, self.ORDER_COLUMNS),
            "group_id": _first_existing_column(names, self.GROUP_COLUMNS),
            "region": _first_existing_column(names, self.REGION_COLUMNS),
        }
        missing = sorted(key for key, value in resolved.items() if value is None)
        if missing:
            raise ValueError(
                "Boundary table missing required columns: "
                f"{', '.join(missing)}. Available columns: {', '.join(names)}"
            )
        subregion = _first_existing_column(names, self.SUBREGION_COLUMNS)
        return {**resolved, "subregion": subregion}


def points_from_geometries(
    rows: Iterable[tuple[Any, str, str | None]],
    *,
    first_group_id: int = 1,
) -> Iterator[BoundaryPoint]:
    """Flatten (geometry, region, subregion) rows into a grouped point stream.

    Every exterior and interior ring becomes its own group. The repeated
    closing vertex is dropped since rings close implicitly.
    """
    group_id = first_group_id
    sequence_index = 1
    for geometry, region, subregion in rows:
        for ring in _iter_linear_rings(geometry):
            coords = list(ring)
            if len(coords) > 1 and coords[0] == coords[-1]:
                coords = coords[:-1]
            if len(coords) < 3:
                continue
            for lon, lat in coords:
                yield BoundaryPoint(
                    longitude=lon,
                    latitude=lat,
                    sequence_index=sequence_index,
                    group_id=group_id,
                    region=region,
                    subregion=subregion,
                )
                sequence_index += 1
            group_id += 1


def _geometry_rows(
    frame: Any,
    *,
    region_column: str,
    subregion_column: str | None,
) -> Iterator[tuple[Any, str, str | None]]:
    if region_column not in frame.columns:
        raise ValueError(f"Region column '{region_column}' not found in boundary frame")
    if subregion_column is not None and subregion_column not in frame.columns:
        raise ValueError(f"Subregion column '{subregion_column}' not found in boundary frame")
    for _, row in frame.iterrows():
        geometry = row.get("geometry")
        if geometry is None or getattr(geometry, "is_empty", True):
            continue
        region = str(row[region_column]).strip()
        subregion = None
        if subregion_column is not None:
            raw = row[subregion_column]
            if isinstance(raw, str) and raw.strip():
                subregion = raw.strip()
        yield (geometry, region, subregion)


def _iter_linear_rings(geometry: Any) -> list[list[tuple[float, float]]]:
    geom_type = getattr(geometry, "geom_type", "")
    if geom_type == "Polygon":
        rings = [[(float(x), float(y)) for x, y, *_ in geometry.exterior.coords]]
        for interior in geometry.interiors:
            rings.append([(float(x), float(y)) for x, y, *_ in interior.coords])
        return rings

    if geom_type in {"MultiPolygon", "GeometryCollection"}:
        rings = []
        for part in geometry.geoms:
            rings.extend(_iter_linear_rings(part))
        return rings

    return []


def _demo_states_points() -> Iterator[BoundaryPoint]:
    sequence_index = 1
    for group_id, (region, coords) in enumerate(_DEMO_STATES, start=1):
        for lon, lat in coords:
            yield BoundaryPoint(
                longitude=lon,
                latitude=lat,
                sequence_index=sequence_index,
                group_id=group_id,
                region=region,
            )
            sequence_index += 1


def default_catalog() -> BoundaryCatalog:
    """Catalog with the built-in demo dataset registered."""
    catalog = BoundaryCatalog()
    catalog.register(DEMO_DATASET, _demo_states_points)
    return catalog


def load_many(
    catalog: BoundaryCatalog,
    names: Sequence[str],
    *,
    max_workers: int = 4,
) -> tuple[dict[str, PolygonSet], dict[str, str]]:
    """Look up and assemble independent datasets concurrently.

    Returns (assembled sets by name, failure messages by name). A failure in
    one dataset does not affect the others.
    """
    if max_workers < 1:
        raise ValueError("max_workers must be >= 1")
    assembled: dict[str, PolygonSet] = {}
    failures: dict[str, str] = {}
    unique_names = list(dict.fromkeys(names))
    with ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="catalog") as executor:
        futures = {
            executor.submit(lambda n=name: assemble(catalog.lookup(n))): name
            for name in unique_names
        }
        for future in as_completed(futures):
            name = futures[future]
            try:
                assembled[name] = future.result()
            except (ChoroplethError, OSError, ValueError) as exc:
                _LOGGER.warning("Dataset %s failed to assemble: %s", name, exc)
                failures[name] = str(exc)
    return (
        {name: assembled[name] for name in unique_names if name in assembled},
        failures,
    )


def _require_pandas() -> Any:
    try:
        import pandas as pd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("pandas is required for boundary table loading") from exc
    return pd


def _require_geopandas() -> Any:
    try:
        import geopandas as gpd
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("geopandas is required for boundary file loading") from exc
    return gpd
