"""
Program Emitter for assembling one object's complete JavaScript output.

Layout of every generated file:

    banner comment
    'use strict' and the ``self`` binding
    function declarations registered on ``Entry.func``
    event handler registrations on ``self``

Event handlers are driven by ``EVENT_BINDINGS``, a static table from Entry start
block types to runtime events. A binding may guard the handler body with a
condition built from the start block's arguments (the pressed key, the
message id); when that condition cannot be built the handler is skipped.
"""

import re
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Union

from . import __author__, __version__
from .expression_emitter import ExpressionEmitter, format_numeric, quote
from .identifiers import function_identifier, has_stable_id, local_identifier
from .models import (
    Argument, CodegenContext, EventHandler, ExpressionFailure, FunctionDefinition, Literal, Node, Program
)
from .statement_emitter import StatementEmitter

TOOL_NAME = "entry2js"

HEADER = """/*
 *  _____       _              ____      _ ____
 * | ____|_ __ | |_ _ __ _   _|___ \\    | / ___|
 * |  _| | '_ \\| __| '__| | | | __) |_  | \\___ \\
 * | |___| | | | |_| |  | |_| |/ __/ |__| |___) |
 * |_____|_| |_|\\__|_|   \\__, |_____\\____/|____/
 *                       |___/
 *
 * Generated by {tool} {version} ({author})
 * Targets the FastEntry runtime. Safe to edit by hand.
 */
"""

_VALUED_RETURN = re.compile(r'^\s*return\s+[^\s;]', re.MULTILINE)

ASSIGNMENT_TYPES = frozenset({'set_func_variable', 'set_variable', 'change_variable'})

GuardBuilder = Callable[[List[Argument]], Optional[str]]


@dataclass(frozen=True)
class EventBinding:
    """How a start block maps onto a runtime event."""
    target_event: str
    bound_param: Optional[str] = None
    guard: Union[str, GuardBuilder, None] = None
    extra_indent: int = 0


def _first_literal(arguments: List[Argument]):
    for arg in arguments:
        if isinstance(arg, Literal) and arg.value not in (None, ''):
            return arg.value
    return None


def key_guard(arguments: List[Argument]) -> Optional[str]:
    key = _first_literal(arguments)
    if key is None:
        return None
    code = format_numeric(str(key))
    return f"key === {code if code is not None else quote(key)}"


def message_guard(arguments: List[Argument]) -> Optional[str]:
    message_id = _first_literal(arguments)
    if message_id is None:
        return None
    return f"msg === {quote(message_id)}"


EVENT_BINDINGS: Dict[str, EventBinding] = {
    'when_run_button_click': EventBinding('start'),
    'when_some_key_pressed': EventBinding('keydown', 'key', key_guard, 1),
    'mouse_clicked': EventBinding('mousedown'),
    'mouse_click_cancled': EventBinding('mouseup'),
    'when_object_click': EventBinding('click'),
    'when_object_click_canceled': EventBinding('clickcancel'),
    'when_message_cast': EventBinding('message', 'msg', message_guard, 1),
    'when_scene_start': EventBinding('scenestart'),
    'when_clone_start': EventBinding('clonestart', guard='self.isClone', extra_indent=1),
}


def last_assigned_variable(nodes: List[Node]) -> Optional[Node]:
    """Find the last assignment along the trailing branches of ``nodes``.

    Nodes are searched right to left; nested branches are searched last branch
    first, depth first.
    """
    for node in reversed(nodes):
        if node.type in ASSIGNMENT_TYPES:
            return node
        for branch in reversed(node.statements):
            found = last_assigned_variable(branch)
            if found is not None:
                return found
    return None


class ProgramEmitter:
    """Renders a Program into the source text of one output file."""

    def __init__(self, statements: Optional[StatementEmitter] = None, indent_size: int = 2,
                 bindings: Optional[Dict[str, EventBinding]] = None):
        self.statements = statements or StatementEmitter(ExpressionEmitter(), indent_size)
        self.expressions = self.statements.expressions
        self.bindings = EVENT_BINDINGS if bindings is None else bindings

    def emit(self, program: Program, object_id: Optional[str] = None) -> str:
        """Generate the complete source for ``program``."""
        parts = [self.header(object_id)]

        for function in program.functions:
            parts.append(self.emit_function(function, object_id))

        for handler in program.handlers:
            parts.append(self.emit_handler(handler, object_id))

        return "\n".join(parts)

    def header(self, object_id: Optional[str]) -> str:
        text = HEADER.format(tool=TOOL_NAME, version=__version__, author=__author__)
        text += "'use strict';\n"
        if object_id:
            text += f"\nconst self = Entry.getObject({quote(object_id)});\n"
        return text

    def emit_function(self, function: FunctionDefinition, object_id: Optional[str]) -> str:
        """Render one function as an entry of the shared ``Entry.func`` namespace."""
        context = CodegenContext(object_id=object_id)
        line = self.statements.line
        params = ", ".join(["self"] + function.params)

        text = f"Entry.func.{function_identifier(function.id)} = async function ({params}) {{\n"
        for name in function.local_variables:
            text += line(1, f"let {name} = 0;")

        body = function.body
        last = body[-1] if body else None
        if (function.is_value_returning and last is not None
                and self.expressions.handles(last) and not self.statements.handles(last)):
            text += self.statements.emit_block(body[:-1], 1, context)
            value = self.expressions.emit(last, context)
            if isinstance(value, ExpressionFailure):
                text += line(1, f"// skipped return: {value.describe()}")
            else:
                text += line(1, f"return {value};")
        else:
            body_text = self.statements.emit_block(body, 1, context)
            text += body_text
            if function.is_value_returning and last is not None and not _VALUED_RETURN.search(body_text):
                returned = self._returned_variable(last)
                if returned:
                    text += line(1, f"return {returned};")

        return text + "};\n"

    def _returned_variable(self, last: Node) -> Optional[str]:
        assignment = last_assigned_variable([last])
        if assignment is None:
            return None
        variable_id = assignment.literal(0)
        if assignment.type == 'set_func_variable':
            return local_identifier(variable_id) if has_stable_id(variable_id) else None
        if variable_id is None:
            return None
        return f"Entry.variables.get({quote(variable_id)})"

    def emit_handler(self, handler: EventHandler, object_id: Optional[str]) -> str:
        """Render one event handler registration."""
        binding = self.bindings.get(handler.event_name)
        if binding is None:
            return f"// TODO: unsupported event '{handler.event_name}'\n"

        guard = binding.guard
        if callable(guard):
            guard = guard(handler.arguments)
            if guard is None:
                return f"// skipped handler '{handler.event_name}': missing event argument\n"

        context = CodegenContext(object_id=object_id)
        line = self.statements.line
        param = binding.bound_param or ""
        text = f"self.on({quote(binding.target_event)}, async ({param}) => {{\n"
        body_indent = 1 + binding.extra_indent
        if guard:
            text += line(1, f"if ({guard}) {{")
            text += self.statements.emit_block(handler.handler_body, body_indent, context)
            text += line(1, "}")
        else:
            text += self.statements.emit_block(handler.handler_body, body_indent, context)
        return text + "});\n"
