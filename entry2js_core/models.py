"""
Core data models for the transpiler.

This module defines the normalized block representation (nodes and their
arguments), the program-level declarations produced by the AST builder, and
the per-unit records exchanged between the orchestrator and its workers.
"""

from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Union


@dataclass(frozen=True)
class Literal:
    """A plain value sitting in an argument slot (number, text, dropdown key)."""
    value: Any


@dataclass(frozen=True)
class Expression:
    """An argument slot holding a nested block."""
    node: 'Node'


Argument = Union[Literal, Expression]


@dataclass
class Node:
    """Normalized, emitter-facing representation of one block."""
    type: str
    arguments: List[Argument] = field(default_factory=list)
    statements: List[List['Node']] = field(default_factory=list)
    func_id: Optional[str] = None
    param_id: Optional[str] = None
    object_id: Optional[str] = None
    block_id: Optional[str] = None

    def argument(self, index: int) -> Optional[Argument]:
        """Return the argument at ``index`` or None when the slot is absent."""
        if 0 <= index < len(self.arguments):
            return self.arguments[index]
        return None

    def literal(self, index: int, default: Any = None) -> Any:
        """Return the raw value of a literal argument, or ``default``."""
        arg = self.argument(index)
        if isinstance(arg, Literal):
            return arg.value
        return default

    def branch(self, index: int) -> List['Node']:
        """Return the nested statement list at ``index`` (empty when absent)."""
        if 0 <= index < len(self.statements):
            return self.statements[index]
        return []

    def walk(self):
        """Yield this node and every node nested in its arguments and branches."""
        yield self
        for arg in self.arguments:
            if isinstance(arg, Expression):
                yield from arg.node.walk()
        for branch in self.statements:
            for child in branch:
                yield from child.walk()


@dataclass
class EventHandler:
    """A start block together with the statements it triggers."""
    event_name: str
    arguments: List[Argument] = field(default_factory=list)
    handler_body: List[Node] = field(default_factory=list)


@dataclass
class FunctionDefinition:
    """A user-defined function declared with ``function_create``."""
    id: str
    is_value_returning: bool = False
    params: List[str] = field(default_factory=list)
    body: List[Node] = field(default_factory=list)
    local_variables: List[str] = field(default_factory=list)


Declaration = Union[EventHandler, FunctionDefinition]


@dataclass
class Program:
    """All declarations found in one script."""
    body: List[Declaration] = field(default_factory=list)

    @property
    def functions(self) -> List[FunctionDefinition]:
        return [decl for decl in self.body if isinstance(decl, FunctionDefinition)]

    @property
    def handlers(self) -> List[EventHandler]:
        return [decl for decl in self.body if isinstance(decl, EventHandler)]


@dataclass(frozen=True)
class CodegenContext:
    """State threaded by value through the emitters."""
    object_id: Optional[str] = None
    loop_level: int = 0

    def enter_loop(self) -> 'CodegenContext':
        """Return a copy for the body of a nested loop."""
        return replace(self, loop_level=self.loop_level + 1)


@dataclass(frozen=True)
class ExpressionFailure:
    """Structured failure returned when an expression cannot be rendered."""
    node_type: str
    reason: str = "unsupported"

    def describe(self) -> str:
        if self.reason == "unsupported":
            return f"unresolved expression '{self.node_type}'"
        return f"{self.reason} in '{self.node_type}'"


@dataclass
class TranspileUnit:
    """One object's (or one project function's) independent transpilation task."""
    object_id: str
    object_name: str
    raw_script: str
    output_path: str
    function_id: Optional[str] = None
    indent_size: int = 2

    @property
    def kind(self) -> str:
        return 'function' if self.function_id else 'object'

    @property
    def label(self) -> str:
        if self.function_id:
            return f"function {self.object_name} ({self.object_id})"
        return f"object {self.object_name} ({self.object_id})"


@dataclass
class EmitResult:
    """Terminal outcome of one unit."""
    object_id: str
    success: bool
    source: Optional[str] = None
    message: Optional[str] = None
    trace: Optional[str] = None

    @classmethod
    def ok(cls, object_id: str, source: str) -> 'EmitResult':
        return cls(object_id=object_id, success=True, source=source)

    @classmethod
    def failed(cls, object_id: str, message: str, trace: str = "") -> 'EmitResult':
        return cls(object_id=object_id, success=False, message=message, trace=trace)

    def __str__(self) -> str:
        """String representation of the unit outcome."""
        if self.success:
            return f"Success: {self.object_id}"
        return f"Error: {self.object_id}: {self.message}"
