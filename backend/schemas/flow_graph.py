# schemas/flow_graph.py
from __future__ import annotations
from typing import Callable, Dict, List, Optional, Set, Tuple
from enum import Enum, IntEnum
from pydantic import BaseModel, ConfigDict, Field

# ---------- Core Enums ----------

class Tier(IntEnum):
    REVENUE_LEAF = 0
    REVENUE_CATEGORY = 1
    HUB = 2
    EXPENSE_CATEGORY = 3
    EXPENSE_LEAF = 4

class ExpenseAllocationPolicy(str, Enum):
    PARTITION = "partition"        # each expense category carries its own rows
    REPEAT_TOTAL = "repeat_total"  # every expense category carries the whole pool

# ---------- Graph Models ----------

class FlowNode(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    tier: Tier

class FlowLink(BaseModel):
    model_config = ConfigDict(frozen=True)

    source_id: int
    target_id: int
    value: float = Field(ge=0)

class FlowGraph(BaseModel):
    model_config = ConfigDict(frozen=True)

    nodes: List[FlowNode] = Field(default_factory=list)
    links: List[FlowLink] = Field(default_factory=list)

    def find_node(self, title: str, tier: Tier) -> Optional[FlowNode]:
        return next((n for n in self.nodes if n.title == title and n.tier == tier), None)

# ---------- Build Configuration ----------

class BuildConfig(BaseModel):
    model_config = ConfigDict(arbitrary_types_allowed=True)

    fiscal_year: str = "2023"
    expense_types: List[str] = Field(default_factory=lambda: ["Operating Expense"])
    expense_predicate: Optional[Callable[[str], bool]] = Field(default=None, exclude=True)
    default_revenue_target: str = "Operating revenues"
    hub_title: str = "JMU"
    expense_category_labels: Dict[str, str] = Field(
        default_factory=lambda: {"Operating Expense": "Operating Expenses"}
    )
    summable_fields: Optional[List[str]] = None
    expense_policy: ExpenseAllocationPolicy = ExpenseAllocationPolicy.PARTITION
    value_precision: Optional[int] = Field(default=None, ge=0)

    def is_expense(self, record_type: str) -> bool:
        if self.expense_predicate is not None:
            return bool(self.expense_predicate(record_type))
        return record_type in self.expense_types

    def expense_category_title(self, record_type: str) -> str:
        return self.expense_category_labels.get(record_type, record_type)

# ---------- Validation Helpers ----------

def validate_flow_graph(graph: FlowGraph) -> List[str]:
    """
    Validate structural constraints for flow graphs:
    - node ids are unique
    - no two nodes share a (title, tier) pair
    - every link references existing node ids
    - tier(source) < tier(target) for every link
    - link values are non-negative
    """
    errs: List[str] = []
    tiers: Dict[int, Tier] = {}
    seen_pairs: Set[Tuple[str, Tier]] = set()

    for n in graph.nodes:
        if n.id in tiers:
            errs.append(f"Duplicate node id {n.id}")
            continue
        tiers[n.id] = n.tier
        if (n.title, n.tier) in seen_pairs:
            errs.append(f"Duplicate node '{n.title}' in tier {int(n.tier)}")
        seen_pairs.add((n.title, n.tier))

    for e in graph.links:
        if e.source_id not in tiers:
            errs.append(f"Link source {e.source_id} not found")
            continue
        if e.target_id not in tiers:
            errs.append(f"Link target {e.target_id} not found")
            continue
        if tiers[e.source_id] >= tiers[e.target_id]:
            errs.append(
                f"Link {e.source_id} -> {e.target_id} does not flow left to right "
                f"(tier {int(tiers[e.source_id])} -> {int(tiers[e.target_id])})"
            )
        if e.value < 0:
            errs.append(f"Link {e.source_id} -> {e.target_id} has negative value {e.value}")

    return errs
