"""
Deterministic Translator Layer

Converts the canonical FlowGraph into positioned Sankey geometry.
Layout engines are pluggable; the translator only adapts contracts.
"""

from .layout_engine import ColumnLayoutEngine, LayoutEngine, LayoutEngineError
from .sankey_translator import LayoutContractError, SankeyTranslator

__all__ = [
    'ColumnLayoutEngine', 'LayoutEngine', 'LayoutEngineError',
    'LayoutContractError', 'SankeyTranslator',
]
