import os
from typing import List
from dotenv import load_dotenv

from schemas.flow_graph import BuildConfig, ExpenseAllocationPolicy
from schemas.sankey_layout import LayoutConfig, NodeAlignment
from utils.dataset_loader import DEFAULT_CATEGORY_KEY, DEFAULT_LEAF_KEY

# Load .env from the backend directory or any parent
load_dotenv()

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

DATASET_PATH = os.getenv("DATASET_PATH", "data/jmu.json")
LEAF_DATASET_KEY = os.getenv("LEAF_DATASET_KEY", DEFAULT_LEAF_KEY)
CATEGORY_DATASET_KEY = os.getenv("CATEGORY_DATASET_KEY", DEFAULT_CATEGORY_KEY)

FISCAL_YEAR = os.getenv("FISCAL_YEAR", "2023")
EXPENSE_TYPES = os.getenv("EXPENSE_TYPES", "Operating Expense")
DEFAULT_REVENUE_TARGET = os.getenv("DEFAULT_REVENUE_TARGET", "Operating revenues")
HUB_TITLE = os.getenv("HUB_TITLE", "JMU")
EXPENSE_POLICY = os.getenv("EXPENSE_POLICY", ExpenseAllocationPolicy.PARTITION.value)

SANKEY_WIDTH = float(os.getenv("SANKEY_WIDTH", "928"))
SANKEY_HEIGHT = float(os.getenv("SANKEY_HEIGHT", "600"))
NODE_WIDTH = float(os.getenv("NODE_WIDTH", "15"))
NODE_PADDING = float(os.getenv("NODE_PADDING", "10"))
NODE_ALIGNMENT = os.getenv("NODE_ALIGNMENT", NodeAlignment.JUSTIFY.value)

CORS_ORIGINS = os.getenv("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000,http://localhost:8000")


def _split(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


def get_cors_origins() -> List[str]:
    return _split(CORS_ORIGINS)


def get_build_config() -> BuildConfig:
    return BuildConfig(
        fiscal_year=FISCAL_YEAR,
        expense_types=_split(EXPENSE_TYPES),
        default_revenue_target=DEFAULT_REVENUE_TARGET,
        hub_title=HUB_TITLE,
        expense_policy=ExpenseAllocationPolicy(EXPENSE_POLICY),
    )


def get_layout_config() -> LayoutConfig:
    return LayoutConfig.for_canvas(
        SANKEY_WIDTH,
        SANKEY_HEIGHT,
        node_width=NODE_WIDTH,
        node_padding=NODE_PADDING,
        alignment=NodeAlignment(NODE_ALIGNMENT),
    )
