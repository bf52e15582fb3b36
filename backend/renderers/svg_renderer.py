"""
SVG Renderer

Draws a PositionedGraph as a standalone SVG document: node rects colored by
tier, horizontal link curves with optional source-to-target gradients, and
text labels for nodes and links.
"""

from html import escape
from typing import List

from schemas.sankey_layout import PositionedGraph, PositionedLink

# category10 palette, indexed by tier
TIER_COLORS = [
    "#1f77b4", "#ff7f0e", "#2ca02c", "#d62728", "#9467bd",
    "#8c564b", "#e377c2", "#7f7f7f", "#bcbd22", "#17becf",
]


def format_value(value: float) -> str:
    """Thousands-separated, no decimals: 1234.5 -> '1,234'."""
    return f"{value:,.0f}"


def tier_color(tier: int) -> str:
    return TIER_COLORS[int(tier) % len(TIER_COLORS)]


def _link_ends(link: PositionedLink):
    # engines without per-link offsets attach links at node centers
    y0 = link.y0 if link.y0 is not None else (link.source.y0 + link.source.y1) / 2
    y1 = link.y1 if link.y1 is not None else (link.target.y0 + link.target.y1) / 2
    return y0, y1


def _link_path(link: PositionedLink) -> str:
    x0 = link.source.x1
    x1 = link.target.x0
    mid = (x0 + x1) / 2
    y0, y1 = _link_ends(link)
    return f"M{x0},{y0}C{mid},{y0},{mid},{y1},{x1},{y1}"


def _link_stroke(link: PositionedLink, link_color: str) -> str:
    if link_color == "source-target":
        return f"url(#link-{link.index})"
    if link_color == "source":
        return tier_color(link.source.tier)
    if link_color == "target":
        return tier_color(link.target.tier)
    return escape(link_color)


def render_svg(
    graph: PositionedGraph,
    width: float = 928,
    height: float = 600,
    link_color: str = "source-target",
) -> str:
    """
    Render positioned geometry to SVG markup.

    Args:
        graph: Output of the Sankey translator
        width, height: Canvas size; labels flip sides at width / 2
        link_color: "source", "target", "source-target" or any CSS color
    """
    svg: List[str] = [
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}" '
        f'viewBox="0 0 {width} {height}" '
        f'style="max-width: 100%; height: auto; font: 10px sans-serif;">'
    ]

    # Nodes
    svg.append('<g stroke="#000">')
    for n in graph.nodes:
        svg.append(
            f'<rect x="{n.x0}" y="{n.y0}" width="{n.x1 - n.x0}" height="{n.y1 - n.y0}" '
            f'fill="{tier_color(n.tier)}">'
            f'<title>{escape(n.title)}\n{format_value(n.value)}</title></rect>'
        )
    svg.append('</g>')

    # Links
    svg.append('<g fill="none" stroke-opacity="0.5">')
    for link in graph.links:
        svg.append('<g style="mix-blend-mode: multiply;">')
        if link_color == "source-target":
            svg.append(
                f'<linearGradient id="link-{link.index}" gradientUnits="userSpaceOnUse" '
                f'x1="{link.source.x1}" x2="{link.target.x0}">'
                f'<stop offset="0%" stop-color="{tier_color(link.source.tier)}"/>'
                f'<stop offset="100%" stop-color="{tier_color(link.target.tier)}"/>'
                f'</linearGradient>'
            )
        svg.append(
            f'<path d="{_link_path(link)}" stroke="{_link_stroke(link, link_color)}" '
            f'stroke-width="{max(1, link.width)}">'
            f'<title>{escape(link.source.title)} → {escape(link.target.title)}\n'
            f'{format_value(link.value)}</title></path>'
        )
        svg.append('</g>')
    svg.append('</g>')

    # Node labels
    svg.append('<g>')
    for n in graph.nodes:
        left_half = n.x0 < width / 2
        x = n.x1 + 6 if left_half else n.x0 - 6
        svg.append(
            f'<text x="{x}" y="{(n.y0 + n.y1) / 2}" dy="0.35em" '
            f'text-anchor="{"start" if left_half else "end"}">{escape(n.title)}</text>'
        )
    svg.append('</g>')

    # Link labels
    svg.append('<g>')
    for link in graph.links:
        mid = (link.source.x1 + link.target.x0) / 2
        left_half = mid < width / 2
        y0, y1 = _link_ends(link)
        svg.append(
            f'<text x="{mid + 6 if left_half else mid - 6}" y="{(y0 + y1) / 2}" dy="0.35em" '
            f'text-anchor="{"start" if left_half else "end"}">'
            f'{escape(link.source.title)} → {format_value(link.value)} → {escape(link.target.title)}</text>'
        )
    svg.append('</g>')

    svg.append("</svg>")
    return "\n".join(svg)
