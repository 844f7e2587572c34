"""
Entry2JS Core - transpiles Entry block projects into FastEntry JavaScript.

This package normalizes Entry block scripts into a typed program AST, renders
that AST as JavaScript with correct precedence and async propagation, and runs
the pipeline over every scripted object of a project with failure isolation.
"""

__version__ = "0.1.0"
__author__ = "Entry2JS Development Team"

from .models import (
    Literal, Expression, Node, EventHandler, FunctionDefinition, Program,
    CodegenContext, ExpressionFailure, TranspileUnit, EmitResult
)
from .ast_builder import ASTBuilder, parse_script
from .expression_emitter import ExpressionEmitter, Precedence
from .statement_emitter import StatementEmitter
from .program_emitter import ProgramEmitter, EventBinding, EVENT_BINDINGS
from .orchestrator import TranspileOrchestrator, BatchReport, transpile_unit
from .config import TranspilerConfig
from .exceptions import (
    TranspilerError, ManifestError, ManifestNotFoundError, OutputDirectoryError, UnitTimeoutError
)

__all__ = [
    "Literal",
    "Expression",
    "Node",
    "EventHandler",
    "FunctionDefinition",
    "Program",
    "CodegenContext",
    "ExpressionFailure",
    "TranspileUnit",
    "EmitResult",
    "ASTBuilder",
    "parse_script",
    "ExpressionEmitter",
    "Precedence",
    "StatementEmitter",
    "ProgramEmitter",
    "EventBinding",
    "EVENT_BINDINGS",
    "TranspileOrchestrator",
    "BatchReport",
    "transpile_unit",
    "TranspilerConfig",
    "TranspilerError",
    "ManifestError",
    "ManifestNotFoundError",
    "OutputDirectoryError",
    "UnitTimeoutError",
]
