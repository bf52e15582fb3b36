"""
Deterministic Graph Builder

Turns itemized revenue records and categorized revenue/expense records into a
five-tier FlowGraph:

    revenue leaf -> revenue category -> hub -> expense category -> expense leaf

The builder is a pure function of its inputs and configuration. Every call
owns a fresh node table, so nothing leaks between builds.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging
import math
import numbers

from schemas.flow_graph import (
    BuildConfig, ExpenseAllocationPolicy, FlowGraph, FlowLink, FlowNode, Tier,
    validate_flow_graph
)

logger = logging.getLogger(__name__)

Record = Mapping[str, Any]


class FlowGraphError(Exception):
    """Raised when a flow graph cannot be built"""
    pass

class EmptyDatasetError(FlowGraphError):
    """Raised when one of the input collections has no records"""
    pass

class MissingFieldError(FlowGraphError):
    """Raised when a record lacks a required field or holds a non-numeric amount"""
    pass

class UnresolvedReferenceError(FlowGraphError):
    """Raised when a link points at a title that was never allocated a node"""
    pass

class InvalidValueError(FlowGraphError):
    """Raised when a link would carry a negative value"""
    pass


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Real) and not isinstance(value, bool)


class NodeTable:
    """
    Name-to-id table owned by a single build.
    Keyed by (title, tier) so a title reused in two tiers yields two nodes.
    """

    def __init__(self):
        self.nodes: List[FlowNode] = []
        self._ids: Dict[Tuple[str, Tier], int] = {}
        self._tiers_by_title: Dict[str, Tier] = {}

    def allocate(self, title: str, tier: Tier) -> int:
        key = (title, tier)
        if key in self._ids:
            return self._ids[key]

        previous_tier = self._tiers_by_title.get(title)
        if previous_tier is not None and previous_tier != tier:
            logger.warning(
                f"Title '{title}' appears in tier {int(previous_tier)} and tier {int(tier)}; "
                f"allocating a separate node"
            )
        self._tiers_by_title.setdefault(title, tier)

        node_id = len(self.nodes)
        self._ids[key] = node_id
        self.nodes.append(FlowNode(id=node_id, title=title, tier=tier))
        return node_id

    def resolve(self, title: str, tier: Tier) -> int:
        try:
            return self._ids[(title, tier)]
        except KeyError:
            raise UnresolvedReferenceError(
                f"No node titled '{title}' in tier {int(tier)}"
            ) from None


class GraphBuilder:
    """
    Builds a FlowGraph from leaf and category records.
    Stage order is fixed and node ids are allocated in first-seen order.
    """

    def __init__(self, config: Optional[BuildConfig] = None):
        self.config = config or BuildConfig()

    def build(self, leaf_records: Sequence[Record], category_records: Sequence[Record]) -> FlowGraph:
        """Build and validate the flow graph, or raise a FlowGraphError."""
        leaf_records = list(leaf_records)
        category_records = list(category_records)

        if not leaf_records:
            raise EmptyDatasetError("No revenue leaf records supplied")
        if not category_records:
            raise EmptyDatasetError("No category records supplied")

        for record in leaf_records:
            self._require(record, "name", text=True)
        for record in category_records:
            self._require(record, "name", text=True)
            self._require(record, "type", text=True)
            self._require(record, self.config.fiscal_year)
            self._amount(record, self.config.fiscal_year)

        revenue_rows = [r for r in category_records if not self.config.is_expense(r["type"])]
        expense_rows = [r for r in category_records if self.config.is_expense(r["type"])]

        table = NodeTable()
        self._allocate_nodes(table, leaf_records, revenue_rows, expense_rows)
        logger.debug(f"Allocated {len(table.nodes)} nodes")

        links: List[FlowLink] = []
        links.extend(self._leaf_links(table, leaf_records))
        links.extend(self._revenue_category_links(table, revenue_rows))
        links.extend(self._expense_category_links(table, expense_rows))
        links.extend(self._expense_leaf_links(table, expense_rows))

        graph = FlowGraph(nodes=table.nodes, links=links)

        errors = validate_flow_graph(graph)
        if errors:
            raise FlowGraphError(f"Built graph is invalid: {'; '.join(errors)}")

        logger.info(f"Built flow graph with {len(graph.nodes)} nodes and {len(graph.links)} links")
        return graph

    # ---------- Node stages ----------

    def _allocate_nodes(
        self, table: NodeTable, leaf_records: List[Record],
        revenue_rows: List[Record], expense_rows: List[Record]
    ) -> None:
        for record in leaf_records:
            table.allocate(record["name"], Tier.REVENUE_LEAF)

        for category in _distinct(r["type"] for r in revenue_rows):
            table.allocate(category, Tier.REVENUE_CATEGORY)

        table.allocate(self.config.hub_title, Tier.HUB)

        for category in _distinct(r["type"] for r in expense_rows):
            table.allocate(self.config.expense_category_title(category), Tier.EXPENSE_CATEGORY)

        for record in expense_rows:
            table.allocate(record["name"], Tier.EXPENSE_LEAF)

    # ---------- Link stages ----------

    def _leaf_links(self, table: NodeTable, leaf_records: List[Record]) -> List[FlowLink]:
        target = table.resolve(self.config.default_revenue_target, Tier.REVENUE_CATEGORY)
        return [
            self._link(table.resolve(r["name"], Tier.REVENUE_LEAF), target, self._leaf_total(r))
            for r in leaf_records
        ]

    def _revenue_category_links(self, table: NodeTable, revenue_rows: List[Record]) -> List[FlowLink]:
        hub = table.resolve(self.config.hub_title, Tier.HUB)
        links = []
        for category in _distinct(r["type"] for r in revenue_rows):
            total = self._year_total(r for r in revenue_rows if r["type"] == category)
            links.append(self._link(table.resolve(category, Tier.REVENUE_CATEGORY), hub, total))
        return links

    def _expense_category_links(self, table: NodeTable, expense_rows: List[Record]) -> List[FlowLink]:
        hub = table.resolve(self.config.hub_title, Tier.HUB)
        pool = self._year_total(expense_rows)
        links = []
        for category in _distinct(r["type"] for r in expense_rows):
            if self.config.expense_policy == ExpenseAllocationPolicy.REPEAT_TOTAL:
                total = pool
            else:
                total = self._year_total(r for r in expense_rows if r["type"] == category)
            target = table.resolve(self.config.expense_category_title(category), Tier.EXPENSE_CATEGORY)
            links.append(self._link(hub, target, total))
        return links

    def _expense_leaf_links(self, table: NodeTable, expense_rows: List[Record]) -> List[FlowLink]:
        links = []
        for record in expense_rows:
            source = table.resolve(self.config.expense_category_title(record["type"]), Tier.EXPENSE_CATEGORY)
            target = table.resolve(record["name"], Tier.EXPENSE_LEAF)
            links.append(self._link(source, target, self._amount(record, self.config.fiscal_year)))
        return links

    # ---------- Values ----------

    def _leaf_total(self, record: Record) -> float:
        if self.config.summable_fields is None:
            return sum(self._amount(record, k) for k, v in record.items() if _is_number(v))

        total = 0
        for field_name in self.config.summable_fields:
            if field_name in record:
                total += self._amount(record, field_name)
        return total

    def _year_total(self, rows: Iterable[Record]) -> float:
        return sum(self._amount(r, self.config.fiscal_year) for r in rows)

    def _amount(self, record: Record, field_name: str) -> float:
        value = record[field_name]
        if not _is_number(value):
            raise MissingFieldError(
                f"Field '{field_name}' of record '{record.get('name', '?')}' is not numeric: {value!r}"
            )
        if not math.isfinite(value):
            raise MissingFieldError(
                f"Field '{field_name}' of record '{record.get('name', '?')}' is not a finite number: {value!r}"
            )
        return value

    def _link(self, source_id: int, target_id: int, value: float) -> FlowLink:
        if self.config.value_precision is not None:
            value = round(value, self.config.value_precision)
        if value < 0:
            raise InvalidValueError(f"Link {source_id} -> {target_id} has negative value {value}")
        return FlowLink(source_id=source_id, target_id=target_id, value=value)

    @staticmethod
    def _require(record: Record, field_name: str, text: bool = False) -> None:
        if field_name not in record or record[field_name] is None:
            raise MissingFieldError(
                f"Record '{record.get('name', '?')}' is missing required field '{field_name}'"
            )
        if text and not isinstance(record[field_name], str):
            raise MissingFieldError(
                f"Field '{field_name}' of record '{record.get('name', '?')}' is not text: {record[field_name]!r}"
            )


def _distinct(values: Iterable[str]) -> List[str]:
    return list(dict.fromkeys(values))


def build_flow_graph(
    leaf_records: Sequence[Record],
    category_records: Sequence[Record],
    config: Optional[BuildConfig] = None
) -> FlowGraph:
    """Build a FlowGraph with a fresh builder. See GraphBuilder.build."""
    return GraphBuilder(config).build(leaf_records, category_records)
