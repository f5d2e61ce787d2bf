"""Matplotlib choropleth renderer consuming assembled and encoded rings."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Sequence

from .clip import display_extent, visible_rings
from .config import RenderConfig
from .models import PolygonSet, Ring
from .pipeline import EncodedRing
from .scale import FittedScale

_LOGGER = logging.getLogger("choropleth.render")


@dataclass(frozen=True, slots=True)
class _ContextDrawPolicy:
    line_alpha: float
    line_style: tuple[Any, ...]
    line_color: str


# Unjoined rings are drawn as a faint backdrop beneath the shaded ones.
_CONTEXT_DRAW_POLICY = _ContextDrawPolicy(
    line_alpha=0.6,
    line_style=(0, (1.8, 2.8)),
    line_color="#777777",
)


@dataclass(frozen=True, slots=True)
class RenderRequest:
    polygon_set: PolygonSet
    rings: tuple[EncodedRing, ...]
    scale: FittedScale | None
    output_path: Path
    title: str | None = None
    legend_label: str | None = None


class ChoroplethRenderer:
    """Draw one choropleth PNG from an explicit render configuration.

    Each ring becomes its own closed patch, so separate groups are never
    joined by a stroke. Draw order follows ring order.
    """

    def __init__(self, cfg: RenderConfig) -> None:
        self.cfg = cfg

    def render(self, req: RenderRequest) -> Path:
        mpl, plt, patches = _require_matplotlib()
        image = self.cfg.image
        fig, ax = plt.subplots(figsize=(image.width_px / image.dpi, image.height_px / image.dpi), dpi=image.dpi)
        try:
            fig.patch.set_facecolor(image.background)
            ax.set_facecolor(image.background)

            shaded_groups = {encoded.joined.ring.group_id for encoded in req.rings}
            context = [ring for ring in visible_rings(req.polygon_set) if ring.group_id not in shaded_groups]
            self._draw_context(ax=ax, patches=patches, rings=context)
            cmap = self._colormap(mpl)
            drawn = self._draw_shaded(ax=ax, patches=patches, rings=req.rings, cmap=cmap, scale=req.scale)

            extent = display_extent(req.polygon_set, padding_ratio=self.cfg.padding_ratio)
            if extent is not None:
                ax.set_xlim(extent[0], extent[1])
                ax.set_ylim(extent[2], extent[3])
            ax.set_aspect("equal", adjustable="datalim" if req.polygon_set.viewport is None else "box")
            ax.set_xticks([])
            ax.set_yticks([])
            title = req.title or self.cfg.title
            if title:
                ax.set_title(title, fontsize=12)

            if self.cfg.legend.show and req.scale is not None:
                self._draw_legend(
                    fig=fig,
                    ax=ax,
                    mpl=mpl,
                    cmap=cmap,
                    scale=req.scale,
                    label=req.legend_label or self.cfg.legend.label,
                )

            req.output_path.parent.mkdir(parents=True, exist_ok=True)
            fig.savefig(req.output_path, dpi=image.dpi, format=image.format)
            _LOGGER.info(
                "Rendered %d shaded rings (%d context) to %s", drawn, len(context), req.output_path
            )
            return req.output_path
        finally:
            plt.close(fig)

    def _colormap(self, mpl: Any) -> Any:
        try:
            return mpl.colormaps[self.cfg.style.colormap]
        except KeyError as exc:
            raise ValueError(f"Unknown colormap '{self.cfg.style.colormap}'") from exc

    def _draw_context(self, *, ax: Any, patches: Any, rings: Sequence[Ring]) -> None:
        for zorder_offset, ring in enumerate(rings):
            ax.add_patch(
                patches.Polygon(
                    ring.coordinates,
                    closed=True,
                    facecolor="none",
                    edgecolor=_CONTEXT_DRAW_POLICY.line_color,
                    linewidth=self.cfg.style.line_width,
                    linestyle=_CONTEXT_DRAW_POLICY.line_style,
                    alpha=_CONTEXT_DRAW_POLICY.line_alpha,
                    zorder=1 + zorder_offset * 1e-6,
                )
            )

    def _draw_shaded(
        self,
        *,
        ax: Any,
        patches: Any,
        rings: Sequence[EncodedRing],
        cmap: Any,
        scale: FittedScale | None,
    ) -> int:
        drawn = 0
        for zorder_offset, encoded in enumerate(rings):
            if encoded.encoding is None or scale is None:
                facecolor: Any = self.cfg.style.missing_color
            else:
                facecolor = cmap(_unit_fraction(encoded.encoding, scale.output_range))
            ax.add_patch(
                patches.Polygon(
                    encoded.joined.ring.coordinates,
                    closed=True,
                    facecolor=facecolor,
                    edgecolor=self.cfg.style.edge_color,
                    linewidth=self.cfg.style.line_width,
                    zorder=2 + zorder_offset * 1e-6,
                )
            )
            drawn += 1
        return drawn

    def _draw_legend(
        self,
        *,
        fig: Any,
        ax: Any,
        mpl: Any,
        cmap: Any,
        scale: FittedScale,
        label: str | None,
    ) -> None:
        low, high = sorted(scale.output_range)
        mappable = mpl.cm.ScalarMappable(norm=mpl.colors.Normalize(vmin=low, vmax=high), cmap=cmap)
        mappable.set_array([])
        colorbar = fig.colorbar(mappable, ax=ax, fraction=0.035, pad=0.02)
        ticks = scale.ticks(self.cfg.legend.ticks)
        colorbar.set_ticks([scale.encode(tick) for tick in ticks])
        colorbar.set_ticklabels([_format_tick(tick) for tick in ticks])
        if label:
            colorbar.set_label(label)


def _unit_fraction(encoding: float, output_range: tuple[float, float]) -> float:
    low, high = output_range
    return (encoding - low) / (high - low)


def _format_tick(value: float) -> str:
    magnitude = abs(value)
    if magnitude >= 10_000:
        return f"{value:,.0f}"
    if magnitude >= 100:
        return f"{value:.0f}"
    if magnitude >= 1:
        return f"{value:.1f}"
    return f"{value:.3g}"


def _require_matplotlib() -> tuple[Any, Any, Any]:
    try:
        import matplotlib

        matplotlib.use("Agg", force=False)
        import matplotlib.cm
        import matplotlib.colors
        import matplotlib.patches as patches
        import matplotlib.pyplot as plt
    except ImportError as exc:  # pragma: no cover
        raise RuntimeError("matplotlib is required for map rendering") from exc
    return (matplotlib, plt, patches)
