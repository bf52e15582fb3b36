# schemas/sankey_layout.py
from __future__ import annotations
from typing import List, Optional, Tuple
from enum import Enum
from pydantic import BaseModel, ConfigDict, Field, model_validator

from schemas.flow_graph import Tier

# ---------- Core Enums ----------

class NodeAlignment(str, Enum):
    LEFT = "left"
    RIGHT = "right"
    CENTER = "center"
    JUSTIFY = "justify"

# ---------- Layout Configuration ----------

Point = Tuple[float, float]

class LayoutConfig(BaseModel):
    extent: Tuple[Point, Point] = ((1, 5), (927, 595))
    node_width: float = Field(default=15, gt=0)
    node_padding: float = Field(default=10, ge=0)
    alignment: NodeAlignment = NodeAlignment.JUSTIFY
    iterations: int = Field(default=6, ge=0)

    @model_validator(mode="after")
    def check_extent(self) -> "LayoutConfig":
        (x0, y0), (x1, y1) = self.extent
        if x1 <= x0 or y1 <= y0:
            raise ValueError(f"Layout extent {self.extent} has no area")
        if x1 - x0 < self.node_width:
            raise ValueError("Layout extent is narrower than a single node")
        return self

    @classmethod
    def for_canvas(cls, width: float, height: float, **kwargs) -> "LayoutConfig":
        """Extent inset by the margins the renderer leaves around the canvas."""
        return cls(extent=((1, 5), (width - 1, height - 5)), **kwargs)

# ---------- Positioned Models ----------

class PositionedNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    tier: Tier
    value: float
    depth: Optional[int] = None
    height: Optional[int] = None
    layer: Optional[int] = None
    x0: float
    y0: float
    x1: float
    y1: float

class PositionedLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    index: int
    source: PositionedNode
    target: PositionedNode
    value: float
    width: float
    y0: Optional[float] = None
    y1: Optional[float] = None

class PositionedGraph(BaseModel):
    model_config = ConfigDict(frozen=True)

    nodes: List[PositionedNode] = Field(default_factory=list)
    links: List[PositionedLink] = Field(default_factory=list)
    extent: Tuple[Point, Point]

    def node(self, node_id: int) -> Optional[PositionedNode]:
        return next((n for n in self.nodes if n.id == node_id), None)
