"""Formula engine boundary and the bundled grid engine."""

from gridbook.engine.grid_engine import GridEngine, literal_value
from gridbook.engine.protocol import EngineFactory, FormulaEngine
from gridbook.engine.values import ArrayResult, EngineValue, ErrorResult, Scalar

__all__ = [
    "ArrayResult",
    "EngineFactory",
    "EngineValue",
    "ErrorResult",
    "FormulaEngine",
    "GridEngine",
    "Scalar",
    "literal_value",
]
