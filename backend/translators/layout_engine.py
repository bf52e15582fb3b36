"""
Sankey Layout Engines

A layout engine accepts {"nodes": [...], "links": [...]} as plain dicts plus a
LayoutConfig and returns the same entities with geometry added. Engines may
mutate the dicts they receive, so callers hand them copies.

Nodes gain: value, depth, height, layer, x0, y0, x1, y1
Links gain: index, resolved source/target node dicts, width, y0, y1
"""

from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Dict, List

from schemas.sankey_layout import LayoutConfig, NodeAlignment

LayoutInput = Dict[str, List[Dict[str, Any]]]


class LayoutEngineError(Exception):
    """Raised when the layout engine cannot position a graph"""
    pass


class LayoutEngine(ABC):
    """Capability interface: positions a node/link set inside an extent."""

    @abstractmethod
    def compute(self, graph: LayoutInput, config: LayoutConfig) -> LayoutInput:
        ...


class ColumnLayoutEngine(LayoutEngine):
    """
    Level-based Sankey layout.
    Columns come from longest-path depth, node heights are proportional to
    node value, and link widths share the same scale. Nodes keep their input
    order within a column; no crossing minimization is attempted.
    """

    def compute(self, graph: LayoutInput, config: LayoutConfig) -> LayoutInput:
        nodes = graph["nodes"]
        links = graph["links"]
        if not nodes:
            return {"nodes": [], "links": []}

        outgoing, incoming = self._resolve_links(nodes, links)
        self._compute_values(nodes, outgoing, incoming)
        self._compute_depths(nodes, outgoing, "depth")
        self._compute_depths(nodes, incoming, "height")
        columns = self._assign_columns(nodes, outgoing, incoming, config.alignment)
        ky = self._place_nodes(columns, config)
        self._place_links(nodes, outgoing, incoming, ky)

        return {"nodes": nodes, "links": links}

    def _resolve_links(self, nodes, links):
        node_by_id = {n["id"]: n for n in nodes}
        outgoing: Dict[Any, List[Dict]] = defaultdict(list)
        incoming: Dict[Any, List[Dict]] = defaultdict(list)

        for index, link in enumerate(links):
            source_id = endpoint_id(link["source"])
            target_id = endpoint_id(link["target"])
            if source_id not in node_by_id:
                raise LayoutEngineError(f"Link source '{source_id}' not found")
            if target_id not in node_by_id:
                raise LayoutEngineError(f"Link target '{target_id}' not found")

            link["index"] = index
            link["source"] = node_by_id[source_id]
            link["target"] = node_by_id[target_id]
            outgoing[source_id].append(link)
            incoming[target_id].append(link)

        return outgoing, incoming

    def _compute_values(self, nodes, outgoing, incoming):
        for node in nodes:
            node["value"] = max(
                sum(l["value"] for l in incoming[node["id"]]),
                sum(l["value"] for l in outgoing[node["id"]]),
            )

    def _compute_depths(self, nodes, adjacency, key: str):
        """Longest-path distance from sources (depth) or to sinks (height)."""
        other_end = "target" if key == "depth" else "source"
        current = list(nodes)
        level = 0

        while current:
            following: Dict[Any, Dict] = {}
            for node in current:
                node[key] = level
                for link in adjacency[node["id"]]:
                    neighbour = link[other_end]
                    following[neighbour["id"]] = neighbour
            level += 1
            if level > len(nodes):
                raise LayoutEngineError("Circular link detected")
            current = list(following.values())

    def _assign_columns(self, nodes, outgoing, incoming, alignment: NodeAlignment) -> List[List[Dict]]:
        column_count = max(n["depth"] for n in nodes) + 1
        align = _ALIGNERS[alignment]

        columns: List[List[Dict]] = [[] for _ in range(column_count)]
        for node in nodes:
            layer = align(node, column_count, outgoing[node["id"]], incoming[node["id"]])
            node["layer"] = max(0, min(column_count - 1, layer))
            columns[node["layer"]].append(node)

        return columns

    def _place_nodes(self, columns: List[List[Dict]], config: LayoutConfig) -> float:
        (x0, y0), (x1, y1) = config.extent
        extent_height = y1 - y0
        dx = config.node_width

        padding = config.node_padding
        longest = max(len(c) for c in columns)
        if longest > 1:
            padding = min(padding, extent_height / (longest - 1))

        totals = [(c, sum(n["value"] for n in c)) for c in columns if c]
        scales = [
            (extent_height - (len(c) - 1) * padding) / total
            for c, total in totals if total > 0
        ]
        ky = min(scales) if scales else 0.0

        kx = (x1 - x0 - dx) / (len(columns) - 1) if len(columns) > 1 else 0.0
        for index, column in enumerate(columns):
            for node in column:
                node["x0"] = x0 + index * kx
                node["x1"] = node["x0"] + dx

            heights = [n["value"] * ky for n in column]
            free = extent_height - sum(heights)
            if config.alignment == NodeAlignment.JUSTIFY and len(column) > 1:
                gap = free / (len(column) - 1)
                y = y0
            else:
                gap = padding
                y = y0 + (free - (len(column) - 1) * padding) / 2

            for node, height in zip(column, heights):
                node["y0"] = y
                node["y1"] = y + height
                y = node["y1"] + gap

        return ky

    def _place_links(self, nodes, outgoing, incoming, ky: float):
        for node in nodes:
            y = node["y0"]
            for link in outgoing[node["id"]]:
                link["width"] = link["value"] * ky
                link["y0"] = y + link["width"] / 2
                y += link["width"]

        for node in nodes:
            y = node["y0"]
            for link in incoming[node["id"]]:
                link["y1"] = y + link["width"] / 2
                y += link["width"]


def endpoint_id(endpoint: Any) -> Any:
    return endpoint.get("id") if isinstance(endpoint, dict) else endpoint


def _align_left(node, column_count, outgoing, incoming) -> int:
    return node["depth"]

def _align_right(node, column_count, outgoing, incoming) -> int:
    return column_count - 1 - node["height"]

def _align_center(node, column_count, outgoing, incoming) -> int:
    if incoming:
        return node["depth"]
    if outgoing:
        return min(l["target"]["depth"] for l in outgoing) - 1
    return 0

def _align_justify(node, column_count, outgoing, incoming) -> int:
    return node["depth"] if outgoing else column_count - 1


_ALIGNERS: Dict[NodeAlignment, Callable[..., int]] = {
    NodeAlignment.LEFT: _align_left,
    NodeAlignment.RIGHT: _align_right,
    NodeAlignment.CENTER: _align_center,
    NodeAlignment.JUSTIFY: _align_justify,
}
