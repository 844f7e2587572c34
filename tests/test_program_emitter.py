"""
Unit tests for the Program Emitter.
"""

import json
import pytest
from entry2js_core import __version__
from entry2js_core.ast_builder import ASTBuilder
from entry2js_core.models import EventHandler, Expression, FunctionDefinition, Literal, Node, Program
from entry2js_core.program_emitter import (
    EventBinding, ProgramEmitter, key_guard, last_assigned_variable, message_guard
)


def node(block_type, *arguments, statements=None, **fields):
    args = [arg if isinstance(arg, (Expression, Literal)) else Literal(arg) for arg in arguments]
    return Node(block_type, args, statements or [], **fields)


def num(value):
    return Expression(node('number', str(value)))


def param(param_id):
    return Expression(node(f'stringParam_{param_id}', param_id=param_id))


@pytest.fixture
def emitter():
    return ProgramEmitter()


class TestHeader:
    """Test cases for the file header."""

    def test_header_with_object(self, emitter):
        header = emitter.header("obj1")
        assert f"entry2js {__version__}" in header
        assert "'use strict';\n" in header
        assert header.endswith('\nconst self = Entry.getObject("obj1");\n')

    def test_header_without_object(self, emitter):
        header = emitter.header(None)
        assert header.endswith("'use strict';\n")
        assert "const self" not in header

    def test_empty_program(self, emitter):
        assert emitter.emit(Program(), "obj1") == emitter.header("obj1")


class TestEventHandlers:
    """Test cases for handler registration."""

    def test_start_handler(self, emitter):
        handler = EventHandler('when_run_button_click', [], [node('move_direction', num(10))])
        assert emitter.emit_handler(handler, "obj1") == (
            'self.on("start", async () => {\n'
            "  self.move(10);\n"
            "});\n"
        )

    def test_key_handler(self, emitter):
        handler = EventHandler('when_some_key_pressed', [Literal('65')], [node('move_direction', num(10))])
        assert emitter.emit_handler(handler, "obj1") == (
            'self.on("keydown", async (key) => {\n'
            "  if (key === 65) {\n"
            "    self.move(10);\n"
            "  }\n"
            "});\n"
        )

    def test_message_handler(self, emitter):
        handler = EventHandler('when_message_cast', [Literal('msg1')], [node('hide')])
        result = emitter.emit_handler(handler, "obj1")
        assert result.startswith('self.on("message", async (msg) => {\n  if (msg === "msg1") {\n')

    def test_clone_handler(self, emitter):
        handler = EventHandler('when_clone_start', [], [node('show')])
        assert emitter.emit_handler(handler, "obj1") == (
            'self.on("clonestart", async () => {\n'
            "  if (self.isClone) {\n"
            "    self.visible = true;\n"
            "  }\n"
            "});\n"
        )

    def test_missing_event_argument(self, emitter):
        handler = EventHandler('when_some_key_pressed', [], [node('show')])
        assert emitter.emit_handler(handler, "obj1") \
            == "// skipped handler 'when_some_key_pressed': missing event argument\n"

    def test_unknown_event(self, emitter):
        handler = EventHandler('when_gamepad_pressed', [], [node('show')])
        assert emitter.emit_handler(handler, "obj1") == "// TODO: unsupported event 'when_gamepad_pressed'\n"

    @pytest.mark.parametrize("event_name, target", [
        ('mouse_clicked', 'mousedown'),
        ('mouse_click_cancled', 'mouseup'),
        ('when_object_click', 'click'),
        ('when_scene_start', 'scenestart'),
    ])
    def test_plain_bindings(self, emitter, event_name, target):
        result = emitter.emit_handler(EventHandler(event_name), "obj1")
        assert result == f'self.on("{target}", async () => {{\n}});\n'

    def test_custom_bindings(self):
        emitter = ProgramEmitter(bindings={'when_tick': EventBinding('tick', 'dt')})
        result = emitter.emit_handler(EventHandler('when_tick', [], [node('hide')]), "obj1")
        assert result.startswith('self.on("tick", async (dt) => {\n')

    def test_guards(self):
        assert key_guard([Literal('32')]) == "key === 32"
        assert key_guard([Literal('space')]) == 'key === "space"'
        assert key_guard([]) is None
        assert message_guard([Literal('')]) is None


class TestFunctions:
    """Test cases for function declarations."""

    def test_value_function_returns_last_expression(self, emitter):
        body = [node('calc_basic', param('a'), 'PLUS', param('b'))]
        function = FunctionDefinition('add', True, ['p_a', 'p_b'], body)
        assert emitter.emit_function(function, None) == (
            "Entry.func.f_add = async function (self, p_a, p_b) {\n"
            "  return p_a + p_b;\n"
            "};\n"
        )

    def test_value_function_returns_last_local(self, emitter):
        body = [node('set_func_variable', 'r', num(3))]
        function = FunctionDefinition('three', True, [], body, ['v_r'])
        assert emitter.emit_function(function, None) == (
            "Entry.func.f_three = async function (self) {\n"
            "  let v_r = 0;\n"
            "  v_r = 3;\n"
            "  return v_r;\n"
            "};\n"
        )

    def test_value_function_returns_nested_global(self, emitter):
        body = [
            node('show'),
            node('_if', Expression(node('True')), statements=[[node('set_variable', 'g', num(1))]]),
        ]
        text = emitter.emit_function(FunctionDefinition('f1', True, [], body), None)
        assert text.endswith('  return Entry.variables.get("g");\n};\n')

    def test_value_function_returns_else_branch_assignment(self, emitter):
        """A trailing if/else assigning only in its else branch returns that variable."""
        branches = [[node('show')], [node('set_func_variable', 'r', num(1))]]
        body = [node('if_else', Expression(node('True')), statements=branches)]
        text = emitter.emit_function(FunctionDefinition('pick', True, [], body, ['v_r']), None)

        assert "  } else {\n    v_r = 1;\n  }\n" in text
        assert text.endswith("  return v_r;\n};\n")

    def test_value_function_without_assignment(self, emitter):
        text = emitter.emit_function(FunctionDefinition('f1', True, [], [node('show')]), None)
        assert "return" not in text

    def test_failed_return_expression(self, emitter):
        function = FunctionDefinition('f1', True, [], [node('show'), node('calc_basic', num(1), 'PLUS')])
        text = emitter.emit_function(function, None)
        assert "  self.visible = true;\n" in text
        assert "  // skipped return: missing argument in 'calc_basic'\n" in text

    def test_plain_function_never_returns(self, emitter):
        body = [node('set_func_variable', 'r', num(3))]
        text = emitter.emit_function(FunctionDefinition('f1', False, [], body, ['v_r']), None)
        assert "return" not in text

    def test_last_assigned_variable(self):
        first = node('set_variable', 'a', num(1))
        nested = node('set_func_variable', 'b', num(2))
        nodes = [first, node('repeat_inf', statements=[[nested, node('show')]]), node('hide')]
        assert last_assigned_variable(nodes) is nested
        assert last_assigned_variable([node('show')]) is None


class TestProgramLayout:
    """Test cases for whole-program output."""

    def test_functions_precede_handlers(self, emitter):
        program = Program([
            EventHandler('when_run_button_click', [], [node('func_f1', func_id='f1')]),
            FunctionDefinition('f1', False, [], [node('show')]),
        ])
        output = emitter.emit(program, "obj1")

        assert output.index("Entry.func.f_f1 = async function") < output.index('self.on("start"')
        assert "  await Entry.func.f_f1(self);\n" in output

    def test_emit_is_deterministic(self):
        raw = json.dumps([[
            {'type': 'when_run_button_click', 'params': []},
            {'type': 'repeat_basic', 'params': [{'type': 'number', 'params': ['3']}],
             'statements': [[{'type': 'move_direction', 'params': [{'type': 'number', 'params': ['5']}]}]]},
        ]])
        first = ProgramEmitter().emit(ASTBuilder().build(raw, "obj1"), "obj1")
        second = ProgramEmitter().emit(ASTBuilder().build(raw, "obj1"), "obj1")
        assert first == second
        assert "for (let _i0 = 0, _n0 = 3; _i0 < _n0; _i0++) {" in first
