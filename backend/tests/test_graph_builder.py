import logging

import pytest

from schemas.flow_graph import ExpenseAllocationPolicy, Tier, validate_flow_graph
from services.graph_builder import (
    EmptyDatasetError,
    GraphBuilder,
    InvalidValueError,
    MissingFieldError,
    UnresolvedReferenceError,
    build_flow_graph,
)


def _titled_links(graph):
    titles = {n.id: n.title for n in graph.nodes}
    return [(titles[l.source_id], titles[l.target_id], l.value) for l in graph.links]


def _tier_of(graph):
    return {n.id: n.tier for n in graph.nodes}


class TestWorkedExample:
    def test_nodes_follow_stage_order(self, leaf_records, category_records, build_config):
        graph = build_flow_graph(leaf_records, category_records, build_config)

        assert [(n.id, n.title, n.tier) for n in graph.nodes] == [
            (0, "Football", Tier.REVENUE_LEAF),
            (1, "Operating revenues", Tier.REVENUE_CATEGORY),
            (2, "Hub", Tier.HUB),
            (3, "Operating Expenses", Tier.EXPENSE_CATEGORY),
            (4, "Coaching", Tier.EXPENSE_LEAF),
        ]

    def test_links_carry_aggregated_values(self, leaf_records, category_records, build_config):
        graph = build_flow_graph(leaf_records, category_records, build_config)

        assert _titled_links(graph) == [
            ("Football", "Operating revenues", 15),
            ("Operating revenues", "Hub", 15),
            ("Hub", "Operating Expenses", 4),
            ("Operating Expenses", "Coaching", 4),
        ]

    def test_default_config_uses_jmu_hub(self, leaf_records, category_records):
        graph = build_flow_graph(leaf_records, category_records)

        assert graph.find_node("JMU", Tier.HUB) is not None


class TestGraphInvariants:
    def test_links_flow_left_to_right(self, jmu_dataset):
        graph = build_flow_graph(jmu_dataset["jmu-athletics"], jmu_dataset["jmu-revenues"])
        tiers = _tier_of(graph)

        assert graph.links
        assert all(tiers[l.source_id] < tiers[l.target_id] for l in graph.links)
        assert validate_flow_graph(graph) == []

    def test_no_duplicate_title_tier_pairs(self, jmu_dataset):
        graph = build_flow_graph(jmu_dataset["jmu-athletics"], jmu_dataset["jmu-revenues"])
        pairs = [(n.title, n.tier) for n in graph.nodes]

        assert len(pairs) == len(set(pairs))

    def test_jmu_dataset_shape(self, jmu_dataset):
        graph = build_flow_graph(jmu_dataset["jmu-athletics"], jmu_dataset["jmu-revenues"])
        per_tier = [sum(1 for n in graph.nodes if n.tier == t) for t in Tier]

        assert per_tier == [4, 2, 1, 1, 4]
        assert len(graph.links) == 11

    def test_build_is_idempotent(self, jmu_dataset):
        first = build_flow_graph(jmu_dataset["jmu-athletics"], jmu_dataset["jmu-revenues"])
        second = build_flow_graph(jmu_dataset["jmu-athletics"], jmu_dataset["jmu-revenues"])

        assert first == second

    def test_each_build_gets_a_fresh_node_table(self, leaf_records, category_records, build_config):
        builder = GraphBuilder(build_config)
        builder.build([{"name": "Soccer", "ticket": 3}, {"name": "Golf", "ticket": 1}], category_records)
        graph = builder.build(leaf_records, category_records)

        assert [n.id for n in graph.nodes] == [0, 1, 2, 3, 4]
        assert graph.nodes[0].title == "Football"

    def test_graph_is_immutable(self, leaf_records, category_records, build_config):
        graph = build_flow_graph(leaf_records, category_records, build_config)

        with pytest.raises(Exception):
            graph.nodes[0].title = "Renamed"


class TestDeduplication:
    def test_repeated_leaf_name_shares_node_but_keeps_links(self, category_records, build_config):
        leaves = [{"name": "Football", "ticket": 10}, {"name": "Football", "media": 5}]
        graph = build_flow_graph(leaves, category_records, build_config)

        assert [n.title for n in graph.nodes if n.tier == Tier.REVENUE_LEAF] == ["Football"]
        assert _titled_links(graph)[:2] == [
            ("Football", "Operating revenues", 10),
            ("Football", "Operating revenues", 5),
        ]

    def test_repeated_expense_name_shares_node_but_keeps_links(self, leaf_records, build_config):
        rows = [
            {"name": "Operating revenues", "type": "Operating revenues", "2023": 15},
            {"name": "Coaching", "type": "Operating Expense", "2023": 3},
            {"name": "Coaching", "type": "Operating Expense", "2023": 1},
        ]
        graph = build_flow_graph(leaf_records, rows, build_config)

        assert [n.title for n in graph.nodes if n.tier == Tier.EXPENSE_LEAF] == ["Coaching"]
        assert _titled_links(graph)[2:] == [
            ("Hub", "Operating Expenses", 4),
            ("Operating Expenses", "Coaching", 3),
            ("Operating Expenses", "Coaching", 1),
        ]

    def test_title_reused_across_tiers_gets_two_nodes(self, category_records, build_config, caplog):
        leaves = [{"name": "Coaching", "ticket": 2}]

        with caplog.at_level(logging.WARNING, logger="services.graph_builder"):
            graph = build_flow_graph(leaves, category_records, build_config)

        coaching = [n for n in graph.nodes if n.title == "Coaching"]
        assert [n.tier for n in coaching] == [Tier.REVENUE_LEAF, Tier.EXPENSE_LEAF]
        assert coaching[0].id != coaching[1].id
        assert "appears in tier 0 and tier 4" in caplog.text

    def test_revenue_categories_in_first_occurrence_order(self, leaf_records, multi_expense_records, build_config):
        graph = build_flow_graph(leaf_records, multi_expense_records, build_config)

        assert [n.title for n in graph.nodes if n.tier == Tier.REVENUE_CATEGORY] == [
            "Operating revenues", "Nonoperating revenues", "Nonoperating Expense",
        ]


class TestExpensePolicy:
    @pytest.fixture
    def two_expense_config(self, build_config):
        return build_config.model_copy(
            update={"expense_types": ["Operating Expense", "Nonoperating Expense"]}
        )

    def test_partition_gives_each_category_its_own_rows(
        self, leaf_records, multi_expense_records, two_expense_config
    ):
        graph = build_flow_graph(leaf_records, multi_expense_records, two_expense_config)
        hub_links = [l for l in _titled_links(graph) if l[0] == "Hub"]

        assert hub_links == [
            ("Hub", "Operating Expenses", 100),
            ("Hub", "Nonoperating Expense", 20),
        ]

    def test_repeat_total_double_counts_the_expense_pool(
        self, leaf_records, multi_expense_records, two_expense_config
    ):
        config = two_expense_config.model_copy(update={"expense_policy": ExpenseAllocationPolicy.REPEAT_TOTAL})
        graph = build_flow_graph(leaf_records, multi_expense_records, config)
        hub_links = [l for l in _titled_links(graph) if l[0] == "Hub"]

        assert hub_links == [
            ("Hub", "Operating Expenses", 120),
            ("Hub", "Nonoperating Expense", 120),
        ]

    def test_partition_conserves_flow_through_balanced_hub(self, leaf_records, build_config):
        rows = [
            {"name": "Operating revenues", "type": "Operating revenues", "2023": 80},
            {"name": "Student fees", "type": "Nonoperating revenues", "2023": 40},
            {"name": "Coaching", "type": "Operating Expense", "2023": 70},
            {"name": "Travel", "type": "Operating Expense", "2023": 30},
            {"name": "Bond interest", "type": "Nonoperating Expense", "2023": 20},
        ]
        config = build_config.model_copy(
            update={"expense_types": ["Operating Expense", "Nonoperating Expense"]}
        )
        graph = build_flow_graph(leaf_records, rows, config)
        hub = graph.find_node("Hub", Tier.HUB)

        inflow = sum(l.value for l in graph.links if l.target_id == hub.id)
        outflow = sum(l.value for l in graph.links if l.source_id == hub.id)
        assert inflow == outflow == 120

    def test_partition_matches_expense_leaf_totals(self, leaf_records, multi_expense_records, two_expense_config):
        graph = build_flow_graph(leaf_records, multi_expense_records, two_expense_config)
        tiers = _tier_of(graph)

        hub_out = sum(l.value for l in graph.links if tiers[l.source_id] == Tier.HUB)
        leaf_in = sum(l.value for l in graph.links if tiers[l.target_id] == Tier.EXPENSE_LEAF)
        assert hub_out == leaf_in == 120

    def test_expense_leaves_link_from_their_own_category(
        self, leaf_records, multi_expense_records, two_expense_config
    ):
        graph = build_flow_graph(leaf_records, multi_expense_records, two_expense_config)

        assert [l for l in _titled_links(graph) if l[1] == "Bond interest"] == [
            ("Nonoperating Expense", "Bond interest", 20),
        ]

    def test_predicate_overrides_expense_types(self, leaf_records, multi_expense_records, build_config):
        config = build_config.model_copy(update={"expense_predicate": lambda t: t.endswith("Expense")})
        graph = build_flow_graph(leaf_records, multi_expense_records, config)

        assert [n.title for n in graph.nodes if n.tier == Tier.EXPENSE_CATEGORY] == [
            "Operating Expenses", "Nonoperating Expense",
        ]

    def test_no_expense_rows_yields_no_expense_tiers(self, leaf_records, build_config):
        rows = [{"name": "Operating revenues", "type": "Operating revenues", "2023": 15}]
        graph = build_flow_graph(leaf_records, rows, build_config)

        assert max(n.tier for n in graph.nodes) == Tier.HUB
        assert len(graph.links) == 2


class TestLeafValues:
    def test_structural_sum_ignores_booleans_and_text(self, category_records, build_config):
        leaves = [{"name": "Football", "ticket": 10, "featured": True, "notes": "sold out", "media": 2.5}]
        graph = build_flow_graph(leaves, category_records, build_config)

        assert graph.links[0].value == 12.5

    def test_summable_fields_restrict_the_sum(self, category_records, build_config):
        leaves = [{"name": "Football", "ticket": 10, "media": 5, "season": 2023}]
        config = build_config.model_copy(update={"summable_fields": ["ticket", "media", "parking"]})
        graph = build_flow_graph(leaves, category_records, config)

        assert graph.links[0].value == 15

    def test_value_precision_rounds_link_values(self, category_records, build_config):
        leaves = [{"name": "Football", "ticket": 10.123, "media": 5.0}]
        config = build_config.model_copy(update={"value_precision": 2})
        graph = build_flow_graph(leaves, category_records, config)

        assert graph.links[0].value == 15.12


class TestFailures:
    def test_empty_leaf_records(self, category_records, build_config):
        with pytest.raises(EmptyDatasetError):
            build_flow_graph([], category_records, build_config)

    def test_empty_category_records(self, leaf_records, build_config):
        with pytest.raises(EmptyDatasetError):
            build_flow_graph(leaf_records, [], build_config)

    def test_both_empty(self, build_config):
        with pytest.raises(EmptyDatasetError):
            build_flow_graph([], [], build_config)

    def test_missing_fiscal_year_column(self, leaf_records, category_records, build_config):
        category_records[1] = {"name": "Coaching", "type": "Operating Expense", "2022": 4}

        with pytest.raises(MissingFieldError, match="2023"):
            build_flow_graph(leaf_records, category_records, build_config)

    def test_other_fiscal_year_is_missing_everywhere(self, leaf_records, category_records, build_config):
        config = build_config.model_copy(update={"fiscal_year": "2024"})

        with pytest.raises(MissingFieldError):
            build_flow_graph(leaf_records, category_records, config)

    @pytest.mark.parametrize("field", ["name", "type"])
    def test_missing_name_or_type(self, leaf_records, category_records, build_config, field):
        del category_records[0][field]

        with pytest.raises(MissingFieldError, match=field):
            build_flow_graph(leaf_records, category_records, build_config)

    def test_non_numeric_fiscal_value(self, leaf_records, category_records, build_config):
        category_records[0]["2023"] = "15"

        with pytest.raises(MissingFieldError, match="not numeric"):
            build_flow_graph(leaf_records, category_records, build_config)

    def test_unknown_default_revenue_target(self, leaf_records, category_records, build_config):
        config = build_config.model_copy(update={"default_revenue_target": "Ticket revenue"})

        with pytest.raises(UnresolvedReferenceError, match="Ticket revenue"):
            build_flow_graph(leaf_records, category_records, config)

    def test_negative_value_rejected(self, leaf_records, category_records, build_config):
        category_records[1]["2023"] = -4

        with pytest.raises(InvalidValueError):
            build_flow_graph(leaf_records, category_records, build_config)

    def test_non_text_leaf_name(self, category_records, build_config):
        with pytest.raises(MissingFieldError, match="not text"):
            build_flow_graph([{"name": 7, "ticket": 1}], category_records, build_config)

    @pytest.mark.parametrize("field", ["name", "type"])
    def test_non_text_name_or_type(self, leaf_records, category_records, build_config, field):
        category_records[1][field] = 5

        with pytest.raises(MissingFieldError, match="not text"):
            build_flow_graph(leaf_records, category_records, build_config)

    @pytest.mark.parametrize("amount", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_fiscal_value(self, leaf_records, category_records, build_config, amount):
        category_records[0]["2023"] = amount

        with pytest.raises(MissingFieldError, match="not a finite number"):
            build_flow_graph(leaf_records, category_records, build_config)

    def test_non_finite_leaf_field(self, category_records, build_config):
        leaves = [{"name": "Football", "ticket": 10, "media": float("inf")}]

        with pytest.raises(MissingFieldError, match="media"):
            build_flow_graph(leaves, category_records, build_config)
