#!/usr/bin/env python3
"""
Render the configured financial dataset as a Sankey SVG
Builds the flow graph, lays it out and writes the SVG file
"""
import asyncio
import os
import sys

import config
from renderers.svg_renderer import render_svg
from services.graph_builder import FlowGraphError, build_flow_graph
from translators.sankey_translator import SankeyTranslator
from utils.dataset_loader import load_dataset_file


def render_dataset(dataset_path, output_path="sankey.svg"):
    """Render a dataset file to an SVG file"""

    # Make path absolute relative to this script
    if not os.path.isabs(dataset_path):
        script_dir = os.path.dirname(__file__)
        dataset_path = os.path.join(script_dir, dataset_path)

    print(f"Rendering dataset at: {dataset_path}")

    if not os.path.exists(dataset_path):
        print(f"Error: dataset not found at {dataset_path}")
        return False

    try:
        leaf_records, category_records = asyncio.run(
            load_dataset_file(dataset_path, config.LEAF_DATASET_KEY, config.CATEGORY_DATASET_KEY)
        )
        flow_graph = build_flow_graph(leaf_records, category_records, config.get_build_config())
        positioned = SankeyTranslator().translate(flow_graph, config.get_layout_config())
        svg = render_svg(positioned, width=config.SANKEY_WIDTH, height=config.SANKEY_HEIGHT)
    except FlowGraphError as e:
        print(f"\n✗ Error building flow graph: {e}")
        return False

    try:
        with open(output_path, "w", encoding="utf-8") as f:
            f.write(svg)
    except OSError as e:
        print(f"\n✗ Error writing {output_path}: {e}")
        return False

    print(f"\n✓ Sankey written to {output_path}")
    print(f"✓ {len(flow_graph.nodes)} nodes, {len(flow_graph.links)} links")
    return True


if __name__ == "__main__":
    # Get dataset and output paths from command line or use defaults
    dataset_path = sys.argv[1] if len(sys.argv) > 1 else config.DATASET_PATH
    output_path = sys.argv[2] if len(sys.argv) > 2 else "sankey.svg"

    success = render_dataset(dataset_path, output_path)
    sys.exit(0 if success else 1)
