"""
Sankey Translator

Converts a canonical FlowGraph into the layout engine's input contract and
normalizes the engine output into a read-only PositionedGraph.
The layout math itself lives in the engine; this layer only translates.
"""

from typing import Any, Dict, List, Optional
import logging

from schemas.flow_graph import FlowGraph
from schemas.sankey_layout import LayoutConfig, PositionedGraph, PositionedLink, PositionedNode
from translators.layout_engine import ColumnLayoutEngine, LayoutEngine, endpoint_id

logger = logging.getLogger(__name__)


class LayoutContractError(Exception):
    """Raised when the layout engine drops, adds or rewires entities"""
    pass


class SankeyTranslator:
    """
    Deterministic translator from FlowGraph to positioned Sankey geometry.
    Any LayoutEngine implementation can be swapped in.
    """

    def __init__(self, engine: Optional[LayoutEngine] = None):
        self.engine = engine or ColumnLayoutEngine()

    def translate(self, flow: FlowGraph, layout_config: Optional[LayoutConfig] = None) -> PositionedGraph:
        """
        Lay out a FlowGraph.

        Args:
            flow: Canonical flow graph, never handed to the engine directly
            layout_config: Extent, node width, padding and alignment

        Returns:
            PositionedGraph with one positioned node per flow node and one
            positioned link per flow link, in input order
        """
        config = layout_config or LayoutConfig()

        engine_input = {
            "nodes": [self._convert_node(n) for n in flow.nodes],
            "links": [self._convert_link(l) for l in flow.links],
        }
        result = self.engine.compute(engine_input, config)
        self._check_contract(flow, result)

        nodes = {}
        for raw in result["nodes"]:
            nodes[raw["id"]] = PositionedNode.model_validate(_pick(raw, PositionedNode.model_fields))

        links = []
        for index, raw in enumerate(result["links"]):
            fields = _pick(raw, PositionedLink.model_fields)
            fields["index"] = raw.get("index", index)
            fields["source"] = nodes[endpoint_id(raw["source"])]
            fields["target"] = nodes[endpoint_id(raw["target"])]
            links.append(PositionedLink.model_validate(fields))

        logger.debug(f"Positioned {len(nodes)} nodes and {len(links)} links")
        return PositionedGraph(
            nodes=[nodes[n.id] for n in flow.nodes],
            links=links,
            extent=config.extent,
        )

    layout = translate

    def _convert_node(self, node) -> Dict[str, Any]:
        return {"id": node.id, "title": node.title, "tier": int(node.tier)}

    def _convert_link(self, link) -> Dict[str, Any]:
        return {"source": link.source_id, "target": link.target_id, "value": link.value}

    def _check_contract(self, flow: FlowGraph, result: Dict[str, List[Dict[str, Any]]]) -> None:
        node_ids = [raw.get("id") for raw in result.get("nodes", [])]
        if sorted(node_ids) != sorted(n.id for n in flow.nodes):
            raise LayoutContractError(
                f"Layout engine returned nodes {node_ids}, expected {[n.id for n in flow.nodes]}"
            )

        raw_links = result.get("links", [])
        if len(raw_links) != len(flow.links):
            raise LayoutContractError(
                f"Layout engine returned {len(raw_links)} links, expected {len(flow.links)}"
            )

        for link, raw in zip(flow.links, raw_links):
            missing = [key for key in ("source", "target") if raw.get(key) is None]
            if missing:
                raise LayoutContractError(
                    f"Layout engine dropped {missing} from link {link.source_id} -> {link.target_id}"
                )
            endpoints = (endpoint_id(raw["source"]), endpoint_id(raw["target"]))
            if endpoints != (link.source_id, link.target_id):
                raise LayoutContractError(
                    f"Layout engine rewired link {link.source_id} -> {link.target_id} to "
                    f"{endpoints[0]} -> {endpoints[1]}"
                )


def _pick(raw: Dict[str, Any], fields) -> Dict[str, Any]:
    return {k: v for k, v in raw.items() if k in fields}
