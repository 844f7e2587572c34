"""
Expression Emitter for rendering value-producing blocks as JavaScript expressions.

Every render returns either the expression text or an ``ExpressionFailure``.
Failures are never turned into inline comments here; the statement emitter
decides what to do with them.
"""

import json
import re
from enum import IntEnum
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple, Union

from .identifiers import function_identifier, has_stable_id, local_identifier, param_identifier
from .models import Argument, CodegenContext, Expression, ExpressionFailure, Literal, Node


class Precedence(IntEnum):
    """Binding strength of rendered expressions, loosest first."""
    NONE = 0
    OR = 1
    AND = 2
    COMPARISON = 3
    ADDITIVE = 4
    MULTIPLICATIVE = 5
    UNARY = 6
    ATOM = 7


EmitOutcome = Union[str, ExpressionFailure]
ExpressionHandler = Callable[[Node, CodegenContext, int], EmitOutcome]

_DECIMAL = re.compile(r'^([+-]?)([0-9]+)?(\.[0-9]*)?([eE][+-]?[0-9]+)?$')
_RADIX = re.compile(r'^([+-]?)(0[xX][0-9a-fA-F]+|0[oO][0-7]+|0[bB][01]+)$')

# operator key -> (js operator, rank, non-associative)
ARITHMETIC_OPERATORS = {
    'PLUS': ('+', Precedence.ADDITIVE, False),
    'MINUS': ('-', Precedence.ADDITIVE, False),
    'MULTI': ('*', Precedence.MULTIPLICATIVE, False),
    'DIVIDE': ('/', Precedence.MULTIPLICATIVE, False),
}

COMPARISON_OPERATORS = {
    'EQUAL': ('==', Precedence.COMPARISON, True),
    'NOT_EQUAL': ('!=', Precedence.COMPARISON, True),
    'GREATER': ('>', Precedence.COMPARISON, True),
    'LESS': ('<', Precedence.COMPARISON, True),
    'GREATER_OR_EQUAL': ('>=', Precedence.COMPARISON, True),
    'LESS_OR_EQUAL': ('<=', Precedence.COMPARISON, True),
}

LOGICAL_OPERATORS = {
    'AND': ('&&', Precedence.AND, False),
    'OR': ('||', Precedence.OR, False),
}

OBJECT_PROPERTIES = {
    'x': 'x',
    'y': 'y',
    'rotation': 'rotation',
    'direction': 'direction',
    'size': 'size',
    'picture_index': 'pictureIndex',
    'picture_name': 'pictureName',
}

STRING_CASES = frozenset({'toUpperCase', 'toLowerCase'})


def format_numeric(text: str) -> Optional[str]:
    """Return ``text`` as a strict-mode JS numeric literal, or None if it is not numeric."""
    match = _RADIX.match(text)
    if match:
        sign, digits = match.groups()
        return ('-' if sign == '-' else '') + digits
    match = _DECIMAL.match(text)
    if not match:
        return None
    sign, whole, fraction, exponent = match.groups()
    if whole is None and (fraction is None or len(fraction) < 2):
        return None
    if whole is not None:
        # "007" is a legacy octal literal and a syntax error in strict mode
        whole = whole.lstrip('0') or '0'
    return ('-' if sign == '-' else '') + (whole or '') + (fraction or '') + (exponent or '')


def quote(value: Any) -> str:
    """Render ``value`` as a double-quoted JS string literal."""
    if not isinstance(value, str):
        value = '' if value is None else str(value)
    return json.dumps(value, ensure_ascii=False)


def render_literal(value: Any) -> Tuple[str, int]:
    """Render a raw literal, returning the text and its precedence."""
    if isinstance(value, str):
        numeric = format_numeric(value)
        if numeric is None:
            return quote(value), Precedence.ATOM
        return numeric, Precedence.UNARY if numeric.startswith('-') else Precedence.ATOM
    if isinstance(value, bool) or value is None:
        return json.dumps(value), Precedence.ATOM
    text = json.dumps(value)
    return text, Precedence.UNARY if text.startswith('-') else Precedence.ATOM


def wrap(text: str, rank: int, parent_precedence: int) -> str:
    """Parenthesize ``text`` when it binds looser than its surroundings require."""
    if rank < parent_precedence:
        return f"({text})"
    return text


class ExpressionEmitter:
    """Renders expression nodes using a type-keyed handler registry."""

    def __init__(self):
        self._handlers: Dict[str, ExpressionHandler] = {}
        self._register_defaults()

    def register(self, block_type: str, handler: ExpressionHandler):
        """Register (or replace) the handler for ``block_type``."""
        self._handlers[block_type] = handler

    def handles(self, node: Node) -> bool:
        """Return True if ``node`` produces a value this emitter can render."""
        return node.type in self._handlers or bool(node.param_id) or bool(node.func_id)

    def emit(self, value: Union[Argument, Node, Any], context: CodegenContext,
             parent_precedence: int = Precedence.NONE) -> EmitOutcome:
        """Render a node, an argument or a raw literal."""
        if isinstance(value, Expression):
            value = value.node
        elif isinstance(value, Literal):
            value = value.value

        if not isinstance(value, Node):
            text, rank = render_literal(value)
            return wrap(text, rank, parent_precedence)

        handler = self._handlers.get(value.type)
        if handler is None:
            if value.param_id:
                handler = self._emit_param
            elif value.func_id:
                handler = self._emit_function_call
            else:
                return ExpressionFailure(value.type)
        return handler(value, context, parent_precedence)

    def emit_argument(self, node: Node, index: int, context: CodegenContext,
                      precedence: int = Precedence.NONE) -> EmitOutcome:
        """Render argument ``index`` of ``node``; a missing slot is a failure."""
        arg = node.argument(index)
        if arg is None:
            return ExpressionFailure(node.type, "missing argument")
        return self.emit(arg, context, precedence)

    def emit_all(self, node: Node, slots: Sequence[Union[int, Tuple[int, int]]],
                 context: CodegenContext) -> Union[List[str], ExpressionFailure]:
        """Render several arguments, stopping at the first failure."""
        values = []
        for slot in slots:
            index, precedence = slot if isinstance(slot, tuple) else (slot, Precedence.NONE)
            outcome = self.emit_argument(node, index, context, precedence)
            if isinstance(outcome, ExpressionFailure):
                return outcome
            values.append(outcome)
        return values

    def _register_defaults(self):
        handlers = {
            'number': self._emit_number,
            'angle': self._emit_number,
            'text': self._emit_text,
            'True': lambda node, context, parent: 'true',
            'False': lambda node, context, parent: 'false',
            'get_pictures': self._emit_text,
            'get_sounds': self._emit_text,
            'calc_basic': self._operator_handler(ARITHMETIC_OPERATORS),
            'boolean_basic_operator': self._operator_handler(COMPARISON_OPERATORS),
            'boolean_and_or': self._operator_handler(LOGICAL_OPERATORS),
            'boolean_and': self._fixed_operator('AND', LOGICAL_OPERATORS),
            'boolean_or': self._fixed_operator('OR', LOGICAL_OPERATORS),
            'boolean_not': self._emit_not,
            'quotient_and_mod': self._emit_quotient_and_mod,
            'calc_operation': self._emit_calc_operation,
            'calc_rand': self._call_handler('Entry.random', 2),
            'length_of_string': self._emit_string_length,
            'combine_something': self._emit_combine,
            'char_at': self._emit_char_at,
            'substring': self._emit_substring,
            'index_of_string': self._emit_index_of,
            'replace_string': self._emit_replace,
            'change_string_case': self._emit_string_case,
            'get_variable': self._emit_get_variable,
            'value_of_index_from_list': self._emit_list_item,
            'length_of_list': self._emit_list_length,
            'is_included_in_list': self._emit_list_includes,
            'coordinate_mouse': self._emit_mouse_coordinate,
            'coordinate_object': self._emit_object_property,
            'distance_something': self._target_handler('self.distanceTo'),
            'reach_something': self._target_handler('self.isTouching'),
            'is_clicked': lambda node, context, parent: 'Entry.mouse.pressed',
            'is_press_some_key': self._call_handler('Entry.isKeyPressed', 1),
            'get_date': self._target_handler('Entry.date'),
            'calc_timer_value': lambda node, context, parent: 'Entry.timer.value',
            'get_canvas_input_value': lambda node, context, parent: 'Entry.answer',
            'get_sound_volume': lambda node, context, parent: 'Entry.sound.volume',
            'get_func_variable': self._emit_local_variable,
        }
        for block_type, handler in handlers.items():
            self.register(block_type, handler)

    # -- literal wrappers -------------------------------------------------

    def _emit_number(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        value = node.literal(0, '')
        if value == '':
            return '0'
        text, rank = render_literal(value)
        return wrap(text, rank, parent)

    def _emit_text(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        return quote(node.literal(0, ''))

    # -- operators --------------------------------------------------------

    def _binary(self, node: Node, left: Argument, right: Argument, operator: Tuple[str, int, bool],
                context: CodegenContext, parent: int) -> EmitOutcome:
        symbol, rank, non_associative = operator
        left_text = self.emit(left, context, rank + 1 if non_associative else rank)
        if isinstance(left_text, ExpressionFailure):
            return left_text
        right_text = self.emit(right, context, rank + 1)
        if isinstance(right_text, ExpressionFailure):
            return right_text
        return wrap(f"{left_text} {symbol} {right_text}", rank, parent)

    def _operator_handler(self, table: Dict[str, Tuple[str, int, bool]]) -> ExpressionHandler:
        """Handler for blocks shaped ``[left, OPERATOR_KEY, right]``."""
        def handler(node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
            for position, arg in enumerate(node.arguments):
                if isinstance(arg, Literal) and arg.value in table:
                    operands = node.arguments[:position] + node.arguments[position + 1:]
                    if len(operands) < 2:
                        return ExpressionFailure(node.type, "missing argument")
                    return self._binary(node, operands[0], operands[1], table[arg.value], context, parent)
            return ExpressionFailure(node.type, "unknown operator")
        return handler

    def _fixed_operator(self, key: str, table: Dict[str, Tuple[str, int, bool]]) -> ExpressionHandler:
        def handler(node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
            if len(node.arguments) < 2:
                return ExpressionFailure(node.type, "missing argument")
            return self._binary(node, node.arguments[0], node.arguments[1], table[key], context, parent)
        return handler

    def _emit_not(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        operand = self.emit_argument(node, 0, context, Precedence.UNARY)
        if isinstance(operand, ExpressionFailure):
            return operand
        return wrap(f"!{operand}", Precedence.UNARY, parent)

    def _emit_quotient_and_mod(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        mode = 'QUOTIENT'
        operands = []
        for arg in node.arguments:
            if isinstance(arg, Literal) and arg.value in ('QUOTIENT', 'MOD'):
                mode = arg.value
            else:
                operands.append(arg)
        if len(operands) < 2:
            return ExpressionFailure(node.type, "missing argument")
        if mode == 'MOD':
            return self._binary(node, operands[0], operands[1], ('%', Precedence.MULTIPLICATIVE, False),
                                context, parent)
        quotient = self._binary(node, operands[0], operands[1], ('/', Precedence.MULTIPLICATIVE, False),
                                context, Precedence.NONE)
        if isinstance(quotient, ExpressionFailure):
            return quotient
        return f"Math.floor({quotient})"

    def _emit_calc_operation(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        operation = None
        operand = None
        for arg in node.arguments:
            if isinstance(arg, Literal) and isinstance(arg.value, str) and format_numeric(arg.value) is None:
                operation = arg.value
            elif operand is None:
                operand = arg
        if operation is None or operand is None:
            return ExpressionFailure(node.type, "missing argument")
        value = self.emit(operand, context)
        if isinstance(value, ExpressionFailure):
            return value
        return f"Entry.math({quote(operation)}, {value})"

    # -- calls ------------------------------------------------------------

    def _call_handler(self, callee: str, arity: int) -> ExpressionHandler:
        def handler(node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
            values = self.emit_all(node, range(arity), context)
            if isinstance(values, ExpressionFailure):
                return values
            return f"{callee}({', '.join(values)})"
        return handler

    def _target_handler(self, callee: str) -> ExpressionHandler:
        """Handler for calls taking a single dropdown key."""
        def handler(node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
            target = node.literal(0)
            if target is None:
                return ExpressionFailure(node.type, "missing argument")
            return f"{callee}({quote(target)})"
        return handler

    def _emit_function_call(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        values = self.emit_all(node, range(len(node.arguments)), context)
        if isinstance(values, ExpressionFailure):
            return values
        args = ', '.join(['self'] + values)
        return wrap(f"await Entry.func.{function_identifier(node.func_id)}({args})", Precedence.UNARY, parent)

    # -- strings ----------------------------------------------------------

    def _string_of(self, node: Node, index: int, context: CodegenContext) -> EmitOutcome:
        value = self.emit_argument(node, index, context)
        if isinstance(value, ExpressionFailure):
            return value
        return f"String({value})"

    def _emit_string_length(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        text = self._string_of(node, 0, context)
        if isinstance(text, ExpressionFailure):
            return text
        return f"{text}.length"

    def _emit_combine(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        left = self._string_of(node, 0, context)
        if isinstance(left, ExpressionFailure):
            return left
        right = self._string_of(node, 1, context)
        if isinstance(right, ExpressionFailure):
            return right
        return wrap(f"{left} + {right}", Precedence.ADDITIVE, parent)

    def _emit_char_at(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        text = self._string_of(node, 0, context)
        if isinstance(text, ExpressionFailure):
            return text
        index = self.emit_argument(node, 1, context, Precedence.ADDITIVE)
        if isinstance(index, ExpressionFailure):
            return index
        return f"{text}.charAt({index} - 1)"

    def _emit_substring(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        text = self._string_of(node, 0, context)
        if isinstance(text, ExpressionFailure):
            return text
        bounds = self.emit_all(node, [(1, Precedence.ADDITIVE), 2], context)
        if isinstance(bounds, ExpressionFailure):
            return bounds
        return f"{text}.substring({bounds[0]} - 1, {bounds[1]})"

    def _emit_index_of(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        text = self._string_of(node, 0, context)
        if isinstance(text, ExpressionFailure):
            return text
        target = self.emit_argument(node, 1, context)
        if isinstance(target, ExpressionFailure):
            return target
        return wrap(f"{text}.indexOf({target}) + 1", Precedence.ADDITIVE, parent)

    def _emit_replace(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        text = self._string_of(node, 0, context)
        if isinstance(text, ExpressionFailure):
            return text
        values = self.emit_all(node, [1, 2], context)
        if isinstance(values, ExpressionFailure):
            return values
        return f"{text}.replaceAll({values[0]}, {values[1]})"

    def _emit_string_case(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        text = self._string_of(node, 0, context)
        if isinstance(text, ExpressionFailure):
            return text
        case = node.literal(1)
        if case not in STRING_CASES:
            return ExpressionFailure(node.type, "unknown case conversion")
        return f"{text}.{case}()"

    # -- variables and lists ----------------------------------------------

    def _emit_get_variable(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        variable_id = node.literal(0)
        if variable_id is None:
            return ExpressionFailure(node.type, "missing argument")
        return f"Entry.variables.get({quote(variable_id)})"

    def _emit_local_variable(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        variable_id = node.literal(0)
        if not has_stable_id(variable_id):
            return ExpressionFailure(node.type, "missing argument")
        return local_identifier(variable_id)

    def _emit_param(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        return param_identifier(node.param_id)

    def _list_of(self, node: Node) -> Optional[str]:
        list_id = node.literal(0)
        if list_id is None:
            return None
        return f"Entry.list({quote(list_id)})"

    def _emit_list_item(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        target = self._list_of(node)
        index = self.emit_argument(node, 1, context)
        if target is None:
            return ExpressionFailure(node.type, "missing argument")
        if isinstance(index, ExpressionFailure):
            return index
        return f"{target}.get({index})"

    def _emit_list_length(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        target = self._list_of(node)
        if target is None:
            return ExpressionFailure(node.type, "missing argument")
        return f"{target}.length"

    def _emit_list_includes(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        target = self._list_of(node)
        value = self.emit_argument(node, 1, context)
        if target is None:
            return ExpressionFailure(node.type, "missing argument")
        if isinstance(value, ExpressionFailure):
            return value
        return f"{target}.includes({value})"

    # -- sprite and mouse -------------------------------------------------

    def _emit_mouse_coordinate(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        axis = node.literal(0)
        if axis not in ('x', 'y'):
            return ExpressionFailure(node.type, "unknown axis")
        return f"Entry.mouse.{axis}"

    def _emit_object_property(self, node: Node, context: CodegenContext, parent: int) -> EmitOutcome:
        target = node.literal(0)
        prop = OBJECT_PROPERTIES.get(node.literal(1))
        if target is None or prop is None:
            return ExpressionFailure(node.type, "missing argument")
        if target == 'self' or target == context.object_id:
            return f"self.{prop}"
        return f"Entry.getObject({quote(target)}).{prop}"
