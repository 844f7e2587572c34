"""
Unit tests for the Statement Emitter.
"""

import pytest
from hypothesis import given, strategies as st
from entry2js_core.statement_emitter import StatementEmitter, YIELD_STATEMENT, contains_suspension
from entry2js_core.models import CodegenContext, Expression, Literal, Node


def node(block_type, *arguments, statements=None, **fields):
    args = [arg if isinstance(arg, (Expression, Literal)) else Literal(arg) for arg in arguments]
    return Node(block_type, args, statements or [], **fields)


def num(value):
    return Expression(node('number', str(value)))


def text(value):
    return Expression(node('text', value))


def value(block_type, *arguments, **fields):
    return Expression(node(block_type, *arguments, **fields))


@pytest.fixture
def emitter():
    return StatementEmitter()


def render(emitter, statement, indent=0, object_id="obj1"):
    return emitter.emit(statement, indent, CodegenContext(object_id=object_id))


class TestSimpleStatements:
    """Test cases for single-line statements."""

    def test_move(self, emitter):
        assert render(emitter, node('move_direction', num(10)), indent=1) == "  self.move(10);\n"

    def test_locate_xy(self, emitter):
        assert render(emitter, node('locate_xy', num(1), num(-2))) == "self.setXY(1, -2);\n"

    def test_glide_is_awaited(self, emitter):
        assert render(emitter, node('locate_xy_time', num(2), num(10), num(20))) \
            == "await self.glideTo(10, 20, 2);\n"

    def test_show_hide(self, emitter):
        assert render(emitter, node('show')) == "self.visible = true;\n"
        assert render(emitter, node('hide')) == "self.visible = false;\n"

    def test_dialog(self, emitter):
        assert render(emitter, node('dialog', text("hi"), 'speak')) == 'self.say("hi");\n'
        assert render(emitter, node('dialog', text("hmm"), 'think')) == 'self.think("hmm");\n'
        assert render(emitter, node('dialog_time', text("hi"), num(2), 'speak')) \
            == 'await self.say("hi", 2);\n'

    def test_wait(self, emitter):
        assert render(emitter, node('wait_second', num(1.5))) == "await Entry.wait(1.5);\n"

    def test_messages(self, emitter):
        assert render(emitter, node('message_cast', 'msg1')) == 'Entry.broadcast("msg1");\n'
        assert render(emitter, node('message_cast_wait', 'msg1')) == 'await Entry.broadcastAndWait("msg1");\n'

    def test_variables(self, emitter):
        assert render(emitter, node('set_variable', 'v1', num(5))) == 'Entry.variables.set("v1", 5);\n'
        assert render(emitter, node('change_variable', 'v1', num(1))) == 'Entry.variables.change("v1", 1);\n'
        assert render(emitter, node('show_variable', 'v1')) == 'Entry.variables.show("v1");\n'

    def test_lists(self, emitter):
        assert render(emitter, node('add_value_to_list', text("a"), 'l1')) == 'Entry.list("l1").push("a");\n'
        assert render(emitter, node('remove_value_from_list', num(1), 'l1')) == 'Entry.list("l1").removeAt(1);\n'
        assert render(emitter, node('insert_value_to_list', num(5), 'l1', num(2))) \
            == 'Entry.list("l1").insertAt(2, 5);\n'
        assert render(emitter, node('change_value_list_index', 'l1', num(1), text("b"))) \
            == 'Entry.list("l1").set(1, "b");\n'

    def test_clones(self, emitter):
        assert render(emitter, node('create_clone', 'self')) == "self.clone();\n"
        assert render(emitter, node('create_clone', 'obj2')) == 'Entry.getObject("obj2").clone();\n'
        assert render(emitter, node('delete_clone')) == "self.deleteClone();\nreturn;\n"

    def test_local_assignment(self, emitter):
        assert render(emitter, node('set_func_variable', 'loc1', num(3))) == "v_loc1 = 3;\n"

    def test_function_call(self, emitter):
        call = node('func_abc', text("hi"), num(2), func_id='abc')
        assert render(emitter, call, indent=1) == '  await Entry.func.f_abc(self, "hi", 2);\n'

    def test_indent_size(self):
        emitter = StatementEmitter(indent_size=4)
        assert render(emitter, node('hide'), indent=2) == "        self.visible = false;\n"


class TestFailures:
    """Test cases for unsupported blocks and unresolvable arguments."""

    def test_unsupported_block(self, emitter):
        assert render(emitter, node('fly_to_moon'), indent=1) == "  // TODO: unsupported block 'fly_to_moon'\n"

    def test_unresolved_expression_skips_statement(self, emitter):
        result = render(emitter, node('move_direction', value('mystery_block')), indent=1)
        assert result == "  // skipped 'move_direction': unresolved expression 'mystery_block'\n"

    def test_missing_argument(self, emitter):
        assert render(emitter, node('move_direction')) \
            == "// skipped 'move_direction': missing argument in 'move_direction'\n"

    def test_missing_dropdown_key(self, emitter):
        assert render(emitter, node('message_cast')) \
            == "// skipped 'message_cast': missing argument in 'message_cast'\n"

    def test_failed_condition_skips_whole_block(self, emitter):
        """A compound statement whose header fails collapses into one line."""
        statement = node('_if', value('mystery_block'), statements=[[node('show'), node('hide')]])
        result = render(emitter, statement)
        assert result.count("\n") == 1
        assert result.startswith("// skipped '_if'")

    def test_failure_inside_body_is_local(self, emitter):
        statement = node('_if', value('True'), statements=[[node('move_x', value('mystery_block')), node('show')]])
        assert render(emitter, statement) == (
            "if (true) {\n"
            "  // skipped 'move_x': unresolved expression 'mystery_block'\n"
            "  self.visible = true;\n"
            "}\n"
        )


class TestControlFlow:
    """Test cases for branches and loops."""

    def test_if(self, emitter):
        statement = node('_if', value('True'), statements=[[node('show')]])
        assert render(emitter, statement) == "if (true) {\n  self.visible = true;\n}\n"

    def test_if_else(self, emitter):
        statement = node('if_else', value('True'), statements=[[node('show')], [node('hide')]])
        assert render(emitter, statement) == (
            "if (true) {\n"
            "  self.visible = true;\n"
            "} else {\n"
            "  self.visible = false;\n"
            "}\n"
        )

    def test_repeat_basic(self, emitter):
        statement = node('repeat_basic', num(10), statements=[[node('move_direction', num(1))]])
        assert render(emitter, statement) == (
            "for (let _i0 = 0, _n0 = 10; _i0 < _n0; _i0++) {\n"
            "  self.move(1);\n"
            f"  {YIELD_STATEMENT}\n"
            "}\n"
        )

    def test_repeat_count_expression(self, emitter):
        count = value('calc_basic', num(2), 'PLUS', num(3))
        statement = node('repeat_basic', count, statements=[[]])
        assert "_n0 = 2 + 3;" in render(emitter, statement)

    def test_repeat_count_is_evaluated_once(self, emitter):
        """A non-constant count is bound on entry, never re-read by the condition."""
        count = value('calc_rand', num(1), num(10))
        result = render(emitter, node('repeat_basic', count, statements=[[node('show')]]))

        assert result.startswith("for (let _i0 = 0, _n0 = Entry.random(1, 10); _i0 < _n0; _i0++) {\n")
        assert result.count("Entry.random") == 1

    def test_repeat_count_function_call_is_evaluated_once(self, emitter):
        count = value('func_size', func_id='size')
        result = render(emitter, node('repeat_basic', count))
        assert result.count("await Entry.func.f_size(self)") == 1
        assert "_i0 < _n0;" in result

    def test_continue_in_loop_yields_first(self, emitter):
        """Every path back to the loop header passes a yield."""
        branch = node('_if', value('True'), statements=[[node('continue_repeat')]])
        statement = node('repeat_inf', statements=[[branch, node('show')]])
        assert render(emitter, statement) == (
            "while (true) {\n"
            "  if (true) {\n"
            f"    {YIELD_STATEMENT}\n"
            "    continue;\n"
            "  }\n"
            "  self.visible = true;\n"
            f"  {YIELD_STATEMENT}\n"
            "}\n"
        )

    def test_continue_in_suspending_loop_yields(self, emitter):
        branch = node('_if', value('True'), statements=[[node('continue_repeat')]])
        statement = node('repeat_basic', num(3), statements=[[branch, node('wait_second', num(1))]])
        result = render(emitter, statement)
        assert f"    {YIELD_STATEMENT}\n    continue;\n" in result
        assert result.count(YIELD_STATEMENT) == 1

    def test_empty_loop_still_yields(self, emitter):
        assert render(emitter, node('repeat_inf')) == f"while (true) {{\n  {YIELD_STATEMENT}\n}}\n"

    def test_suspending_body_does_not_yield(self, emitter):
        statement = node('repeat_inf', statements=[[node('wait_second', num(1))]])
        result = render(emitter, statement)
        assert "await Entry.wait(1);" in result
        assert YIELD_STATEMENT not in result

    def test_nested_suspension_counts(self, emitter):
        inner = node('_if', value('True'), statements=[[node('wait_second', num(1))]])
        assert YIELD_STATEMENT not in render(emitter, node('repeat_inf', statements=[[inner]]))

    def test_function_call_counts_as_suspension(self, emitter):
        statement = node('repeat_inf', statements=[[node('func_abc', func_id='abc')]])
        assert YIELD_STATEMENT not in render(emitter, statement)

    def test_nested_loops_use_distinct_counters(self, emitter):
        inner = node('repeat_basic', num(3), statements=[[node('show')]])
        outer = node('repeat_basic', num(2), statements=[[inner]])
        result = render(emitter, outer)

        assert "for (let _i0 = 0, _n0 = 2; _i0 < _n0; _i0++) {" in result
        assert "  for (let _i1 = 0, _n1 = 3; _i1 < _n1; _i1++) {" in result
        assert result.count(YIELD_STATEMENT) == 2

    def test_sibling_loops_reuse_counter(self, emitter):
        loops = [node('repeat_basic', num(2)), node('repeat_basic', num(3))]
        result = emitter.emit_block(loops, 0, CodegenContext())
        assert result.count("let _i0 = 0") == 2
        assert "_i1" not in result and "_n1" not in result

    def test_repeat_until(self, emitter):
        statement = node('repeat_while_true', value('boolean_basic_operator', num(1), 'LESS', num(2)), 'until')
        assert render(emitter, statement).startswith("while (!(1 < 2)) {\n")

    def test_repeat_while(self, emitter):
        statement = node('repeat_while_true', value('boolean_basic_operator', num(1), 'LESS', num(2)), 'while')
        assert render(emitter, statement).startswith("while (1 < 2) {\n")

    def test_wait_until(self, emitter):
        assert render(emitter, node('wait_until_true', value('is_clicked'))) == (
            "while (!Entry.mouse.pressed) {\n"
            f"  {YIELD_STATEMENT}\n"
            "}\n"
        )

    def test_break_and_continue(self, emitter):
        assert render(emitter, node('stop_repeat')) == "break;\n"
        assert render(emitter, node('continue_repeat')) == "continue;\n"

    @pytest.mark.parametrize("mode, expected", [
        ('all', "Entry.stop();\nreturn;\n"),
        ('thisOnly', "self.stopScripts();\nreturn;\n"),
        ('otherThread', "self.stopOtherScripts();\n"),
        ('thisThread', "return;\n"),
    ])
    def test_stop_object(self, emitter, mode, expected):
        assert render(emitter, node('stop_object', mode)) == expected


class TestRegistry:
    """Test cases for handler registration."""

    def test_register_custom_handler(self, emitter):
        emitter.register('beep', lambda n, indent, context: emitter.line(indent, "Entry.beep();"))
        assert render(emitter, node('beep'), indent=1) == "  Entry.beep();\n"

    def test_handles(self, emitter):
        assert emitter.handles(node('move_direction'))
        assert emitter.handles(node('func_x', func_id='x'))
        assert not emitter.handles(node('number'))


class TestContainsSuspension:
    """Test cases for suspension detection."""

    def test_plain_nodes(self):
        assert not contains_suspension([node('show'), node('move_x', num(1))])

    def test_suspending_expression(self):
        """A value-returning function call in an argument also suspends."""
        call = value('func_abc', func_id='abc')
        assert contains_suspension([node('move_x', call)])


@given(st.text(alphabet='abcdefghijklmnopqrstuvwxyz_', min_size=1, max_size=20))
def test_unsupported_block_is_one_line_property(block_type):
    """Property test: any unknown block renders as exactly one comment line."""
    emitter = StatementEmitter()
    statement = Node(block_type)
    if emitter.handles(statement):
        return
    result = emitter.emit(statement, 1, CodegenContext())
    assert result.count("\n") == 1
    assert result.strip().startswith("//")
