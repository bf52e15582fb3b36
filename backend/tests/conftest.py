"""Shared fixtures for flow graph, layout and API tests."""

import json
import os

import pytest

from schemas.flow_graph import BuildConfig

DATA_DIR = os.path.join(os.path.dirname(__file__), "..", "data")


@pytest.fixture
def leaf_records():
    """Single revenue item from the worked example."""
    return [{"name": "Football", "ticket": 10, "media": 5}]


@pytest.fixture
def category_records():
    """One revenue line and one expense line for fiscal year 2023."""
    return [
        {"name": "Operating revenues", "type": "Operating revenues", "2023": 15},
        {"name": "Coaching", "type": "Operating Expense", "2023": 4},
    ]


@pytest.fixture
def build_config() -> BuildConfig:
    return BuildConfig(
        fiscal_year="2023",
        expense_types=["Operating Expense"],
        default_revenue_target="Operating revenues",
        hub_title="Hub",
    )


@pytest.fixture
def multi_expense_records():
    """Two revenue categories and two expense categories."""
    return [
        {"name": "Operating revenues", "type": "Operating revenues", "2023": 100},
        {"name": "Student fees", "type": "Nonoperating revenues", "2023": 60},
        {"name": "Coaching", "type": "Operating Expense", "2023": 70},
        {"name": "Travel", "type": "Operating Expense", "2023": 30},
        {"name": "Bond interest", "type": "Nonoperating Expense", "2023": 20},
    ]


@pytest.fixture
def jmu_dataset_path() -> str:
    return os.path.abspath(os.path.join(DATA_DIR, "jmu.json"))


@pytest.fixture
def jmu_dataset(jmu_dataset_path):
    with open(jmu_dataset_path, "r", encoding="utf-8") as f:
        return json.load(f)
