from fastapi import FastAPI, File, UploadFile, HTTPException
from fastapi.responses import Response
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
import os
import logging

import config

# Configure logging
logging.basicConfig(level=config.LOG_LEVEL)
logger = logging.getLogger(__name__)

from schemas.flow_graph import BuildConfig, ExpenseAllocationPolicy, FlowGraph
from schemas.sankey_layout import LayoutConfig, PositionedGraph
from services.graph_builder import (
    FlowGraphError, EmptyDatasetError, MissingFieldError, UnresolvedReferenceError,
    InvalidValueError, build_flow_graph
)
from translators.layout_engine import LayoutEngineError
from translators.sankey_translator import LayoutContractError, SankeyTranslator
from renderers.svg_renderer import render_svg
from utils.dataset_loader import DatasetFormatError, load_dataset_file, load_dataset_upload, parse_dataset


def get_user_friendly_error(error: FlowGraphError) -> str:
    """Convert graph construction errors to user-friendly messages."""
    if isinstance(error, EmptyDatasetError):
        return f"The dataset has nothing to chart: {error}. Both revenue items and category lines are required."

    if isinstance(error, MissingFieldError):
        return f"A record is incomplete: {error}. Check that every category line has a name, a type and the selected fiscal year."

    if isinstance(error, UnresolvedReferenceError):
        return f"The flow references an unknown entry: {error}. Check the default revenue category setting."

    if isinstance(error, InvalidValueError):
        return f"Flows cannot be negative: {error}."

    if isinstance(error, DatasetFormatError):
        return str(error)

    return f"Flow graph construction failed: {error}"


# Initialize services
sankey_translator = SankeyTranslator()
default_build_config = config.get_build_config()
default_layout_config = config.get_layout_config()

dataset_path = config.DATASET_PATH
if not os.path.isabs(dataset_path):
    # Make path relative to backend directory
    dataset_path = os.path.join(os.path.dirname(__file__), dataset_path)


# Lifespan event handler
@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log configuration on startup"""
    logger.info("Starting up Financial Flow Sankey API...")
    logger.info(
        f"Fiscal year {default_build_config.fiscal_year}, expense types {default_build_config.expense_types}, "
        f"policy {default_build_config.expense_policy.value}"
    )
    if os.path.exists(dataset_path):
        logger.info(f"Default dataset at: {dataset_path}")
    else:
        logger.warning(f"Default dataset not found at: {dataset_path}")

    yield

    logger.info("Shutting down Financial Flow Sankey API...")

app = FastAPI(
    title="Financial Flow Sankey",
    version="1.0.0",
    lifespan=lifespan,
)

allowed_origins = config.get_cors_origins()

logger.info(f"CORS enabled for origins: {allowed_origins}")

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    max_age=3600,
)


# ============================================================================
# REQUEST MODELS
# ============================================================================

class BuildOptions(BaseModel):
    fiscal_year: Optional[str] = None
    expense_types: Optional[List[str]] = None
    default_revenue_target: Optional[str] = None
    hub_title: Optional[str] = None
    expense_category_labels: Optional[Dict[str, str]] = None
    summable_fields: Optional[List[str]] = None
    expense_policy: Optional[ExpenseAllocationPolicy] = None
    value_precision: Optional[int] = Field(default=None, ge=0)

    def apply_to(self, base: BuildConfig) -> BuildConfig:
        return base.model_copy(update=self.model_dump(exclude_none=True))

class FlowGraphRequest(BaseModel):
    dataset: Dict[str, Any]
    leafKey: str = config.LEAF_DATASET_KEY
    categoryKey: str = config.CATEGORY_DATASET_KEY
    options: Optional[BuildOptions] = None

class SankeyRequest(FlowGraphRequest):
    layout: Optional[LayoutConfig] = None
    linkColor: str = "source-target"


# ============================================================================
# HELPER FUNCTIONS
# ============================================================================

def build_from_records(
    leaf_records: List[Dict[str, Any]],
    category_records: List[Dict[str, Any]],
    options: Optional[BuildOptions] = None
) -> FlowGraph:
    """Build a flow graph, mapping construction errors to HTTP 422."""
    build_config = options.apply_to(default_build_config) if options else default_build_config
    try:
        return build_flow_graph(leaf_records, category_records, build_config)
    except FlowGraphError as e:
        logger.error(f"Flow graph construction error: {e}")
        raise HTTPException(status_code=422, detail=get_user_friendly_error(e))

def build_from_request(request: FlowGraphRequest) -> FlowGraph:
    try:
        leaf_records, category_records = parse_dataset(request.dataset, request.leafKey, request.categoryKey)
    except DatasetFormatError as e:
        logger.error(f"Dataset format error: {e}")
        raise HTTPException(status_code=422, detail=get_user_friendly_error(e))
    return build_from_records(leaf_records, category_records, request.options)

def layout_flow_graph(flow_graph: FlowGraph, layout: Optional[LayoutConfig] = None) -> PositionedGraph:
    """Lay out a flow graph, mapping engine failures to HTTP 500."""
    try:
        return sankey_translator.translate(flow_graph, layout or default_layout_config)
    except (LayoutContractError, LayoutEngineError) as e:
        logger.error(f"Layout error: {e}")
        raise HTTPException(status_code=500, detail=f"Layout failed: {e}")


# ============================================================================
# SANKEY ENDPOINTS
# ============================================================================

@app.get("/api/health")
async def health():
    return {"status": "ok"}

@app.post("/api/flow-graph", response_model=FlowGraph)
async def create_flow_graph(request: FlowGraphRequest):
    """Build the five-tier flow graph for a dataset"""
    return build_from_request(request)

@app.post("/api/sankey", response_model=PositionedGraph)
async def create_sankey(request: SankeyRequest):
    """Build and lay out the flow graph for a dataset"""
    flow_graph = build_from_request(request)
    return layout_flow_graph(flow_graph, request.layout)

@app.post("/api/sankey/svg")
async def create_sankey_svg(request: SankeyRequest):
    """Build, lay out and render the flow graph as SVG"""
    flow_graph = build_from_request(request)
    layout = request.layout or default_layout_config
    positioned = layout_flow_graph(flow_graph, layout)
    # extent is inset symmetrically from the canvas edges
    (x0, y0), (x1, y1) = layout.extent
    svg = render_svg(positioned, width=x1 + x0, height=y1 + y0, link_color=request.linkColor)
    return Response(content=svg, media_type="image/svg+xml")

@app.post("/api/sankey/upload", response_model=PositionedGraph)
async def upload_sankey(file: UploadFile = File(...)):
    """Build and lay out the flow graph for an uploaded dataset file"""
    try:
        leaf_records, category_records = await load_dataset_upload(
            file, config.LEAF_DATASET_KEY, config.CATEGORY_DATASET_KEY
        )
    except DatasetFormatError as e:
        logger.error(f"Upload format error: {e}")
        raise HTTPException(status_code=422, detail=get_user_friendly_error(e))

    flow_graph = build_from_records(leaf_records, category_records)
    return layout_flow_graph(flow_graph)

@app.get("/api/sankey/default", response_model=PositionedGraph)
async def default_sankey():
    """Build and lay out the flow graph for the configured dataset file"""
    try:
        leaf_records, category_records = await load_dataset_file(
            dataset_path, config.LEAF_DATASET_KEY, config.CATEGORY_DATASET_KEY
        )
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail=f"Dataset not found: {config.DATASET_PATH}")
    except DatasetFormatError as e:
        logger.error(f"Dataset format error: {e}")
        raise HTTPException(status_code=422, detail=get_user_friendly_error(e))

    flow_graph = build_from_records(leaf_records, category_records)
    return layout_flow_graph(flow_graph)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
