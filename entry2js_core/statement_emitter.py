"""
Statement Emitter for rendering action blocks as JavaScript statements.

Handlers live in a registry keyed by block type. Most of them are built with
``_safe``: every expression argument is rendered first, and if any of them
fails the whole statement collapses into a single explanatory comment line.
"""

from typing import Callable, Dict, List, Optional, Tuple, Union

from .expression_emitter import ExpressionEmitter, Precedence, quote
from .identifiers import function_identifier, has_stable_id, local_identifier, loop_counter, loop_limit
from .models import CodegenContext, ExpressionFailure, Node

StatementHandler = Callable[[Node, int, CodegenContext], str]
Renderer = Callable[[Node, List[str], int, CodegenContext], str]
Slot = Union[int, Tuple[int, int]]

YIELD_STATEMENT = "await Entry.yield();"

# Blocks that hand control back to the runtime scheduler on their own.
SUSPENDING_TYPES = frozenset({
    'wait_second',
    'wait_until_true',
    'locate_xy_time',
    'move_xy_time',
    'locate_object_time',
    'rotate_by_time',
    'direction_relative_duration',
    'dialog_time',
    'sound_something_wait_with_block',
    'sound_something_second_wait_with_block',
    'sound_from_to_and_wait',
    'ask_and_wait',
    'message_cast_wait',
})


def contains_suspension(nodes: List[Node]) -> bool:
    """Return True if any node in ``nodes`` (at any depth) suspends execution."""
    for node in nodes:
        for child in node.walk():
            if child.type in SUSPENDING_TYPES or child.func_id:
                return True
    return False


class StatementEmitter:
    """Renders statement nodes into indented JavaScript lines."""

    def __init__(self, expressions: Optional[ExpressionEmitter] = None, indent_size: int = 2):
        self.expressions = expressions or ExpressionEmitter()
        self.indent_unit = " " * indent_size
        self._handlers: Dict[str, StatementHandler] = {}
        self._register_defaults()

    def register(self, block_type: str, handler: StatementHandler):
        """Register (or replace) the handler for ``block_type``."""
        self._handlers[block_type] = handler

    def handles(self, node: Node) -> bool:
        return node.type in self._handlers or bool(node.func_id)

    def emit(self, node: Node, indent: int, context: CodegenContext) -> str:
        """Render one statement node."""
        handler = self._handlers.get(node.type)
        if handler is None:
            if node.func_id:
                handler = self._emit_function_call
            else:
                handler = self._emit_unsupported
        return handler(node, indent, context)

    def emit_block(self, nodes: List[Node], indent: int, context: CodegenContext) -> str:
        """Render a statement sequence."""
        return "".join(self.emit(node, indent, context) for node in nodes)

    def line(self, indent: int, text: str) -> str:
        return f"{self.indent_unit * indent}{text}\n"

    # -- wrappers ---------------------------------------------------------

    def _safe(self, render: Renderer, *slots: Slot) -> StatementHandler:
        """Wrap ``render`` so it only runs when every needed expression resolves."""
        def handler(node: Node, indent: int, context: CodegenContext) -> str:
            values = self.expressions.emit_all(node, slots, context)
            if isinstance(values, ExpressionFailure):
                return self._skip(node, indent, values)
            return render(node, values, indent, context)
        return handler

    def _simple(self, template: str, *slots: Slot) -> StatementHandler:
        """Single-line statement; ``template`` is formatted with the rendered slots."""
        return self._safe(
            lambda node, values, indent, context: self.line(indent, template.format(*values)),
            *slots
        )

    def _keyed(self, template: str, key_index: int, *slots: Slot) -> StatementHandler:
        """Single-line statement whose ``{key}`` is a quoted dropdown value."""
        def render(node, values, indent, context):
            key = node.literal(key_index)
            if key is None:
                return self._skip(node, indent, ExpressionFailure(node.type, "missing argument"))
            return self.line(indent, template.format(*values, key=quote(key)))
        return self._safe(render, *slots)

    def _skip(self, node: Node, indent: int, failure: ExpressionFailure) -> str:
        return self.line(indent, f"// skipped '{node.type}': {failure.describe()}")

    def _emit_unsupported(self, node: Node, indent: int, context: CodegenContext) -> str:
        return self.line(indent, f"// TODO: unsupported block '{node.type}'")

    def _register_defaults(self):
        handlers = {
            # motion
            'move_direction': self._simple("self.move({0});", 0),
            'move_x': self._simple("self.x += {0};", 0),
            'move_y': self._simple("self.y += {0};", 0),
            'locate_x': self._simple("self.x = {0};", 0),
            'locate_y': self._simple("self.y = {0};", 0),
            'locate_xy': self._simple("self.setXY({0}, {1});", 0, 1),
            'locate_xy_time': self._simple("await self.glideTo({1}, {2}, {0});", 0, 1, 2),
            'move_xy_time': self._simple("await self.glideBy({1}, {2}, {0});", 0, 1, 2),
            'locate': self._keyed("self.moveTo({key});", 0),
            'locate_object_time': self._keyed("await self.glideToObject({key}, {0});", 1, 0),
            'rotate_relative': self._simple("self.rotation += {0};", 0),
            'direction_relative': self._simple("self.direction += {0};", 0),
            'rotate_absolute': self._simple("self.rotation = {0};", 0),
            'direction_absolute': self._simple("self.direction = {0};", 0),
            'rotate_by_time': self._simple("await self.rotateBy({1}, {0});", 0, 1),
            'direction_relative_duration': self._simple("await self.turnBy({1}, {0});", 0, 1),
            'see_angle_object': self._keyed("self.lookAt({key});", 0),
            'bounce_wall': self._simple("self.bounceWall();"),
            # looks
            'show': self._simple("self.visible = true;"),
            'hide': self._simple("self.visible = false;"),
            'dialog': self._safe(self._render_dialog, 0),
            'dialog_time': self._safe(self._render_dialog_time, 0, 1),
            'remove_dialog': self._simple("self.clearDialog();"),
            'change_to_some_shape': self._simple("self.setPicture({0});", 0),
            'change_to_next_shape': self._safe(self._render_next_shape),
            'add_effect_amount': self._keyed("self.changeEffect({key}, {0});", 0, 1),
            'change_effect_amount': self._keyed("self.setEffect({key}, {0});", 0, 1),
            'erase_all_effects': self._simple("self.clearEffects();"),
            'change_scale_size': self._simple("self.size += {0};", 0),
            'set_scale_size': self._simple("self.size = {0};", 0),
            'change_object_index': self._keyed("self.setLayer({key});", 0),
            # sound
            'sound_something_with_block': self._simple("self.playSound({0});", 0),
            'sound_something_second_with_block': self._simple("self.playSound({0}, {1});", 0, 1),
            'sound_something_wait_with_block': self._simple("await self.playSoundAndWait({0});", 0),
            'sound_something_second_wait_with_block': self._simple(
                "await self.playSoundAndWait({0}, {1});", 0, 1),
            'sound_from_to_and_wait': self._simple(
                "await self.playSoundRangeAndWait({0}, {1}, {2});", 0, 1, 2),
            'sound_volume_change': self._simple("Entry.sound.volume += {0};", 0),
            'sound_volume_set': self._simple("Entry.sound.volume = {0};", 0),
            'sound_silent_all': self._simple("Entry.sound.stopAll();"),
            # flow
            'wait_second': self._simple("await Entry.wait({0});", 0),
            'wait_until_true': self._safe(self._render_wait_until, (0, Precedence.UNARY)),
            '_if': self._safe(self._render_if, 0),
            'if_else': self._safe(self._render_if, 0),
            'repeat_basic': self._safe(self._render_repeat_basic, 0),
            'repeat_inf': self._safe(self._render_repeat_inf),
            'repeat_while_true': self._emit_repeat_while,
            'stop_repeat': self._simple("break;"),
            'continue_repeat': self._emit_continue,
            'stop_object': self._emit_stop_object,
            'restart_project': self._simple("Entry.restart();"),
            'create_clone': self._safe(self._render_create_clone),
            'delete_clone': self._safe(
                lambda node, values, indent, context:
                    self.line(indent, "self.deleteClone();") + self.line(indent, "return;")),
            'remove_all_clones': self._simple("self.removeAllClones();"),
            # messages and scenes
            'message_cast': self._keyed("Entry.broadcast({key});", 0),
            'message_cast_wait': self._keyed("await Entry.broadcastAndWait({key});", 0),
            'start_scene': self._keyed("Entry.startScene({key});", 0),
            'start_neighbor_scene': self._keyed("Entry.startNeighborScene({key});", 0),
            # variables and lists
            'set_variable': self._keyed("Entry.variables.set({key}, {0});", 0, 1),
            'change_variable': self._keyed("Entry.variables.change({key}, {0});", 0, 1),
            'show_variable': self._keyed("Entry.variables.show({key});", 0),
            'hide_variable': self._keyed("Entry.variables.hide({key});", 0),
            'add_value_to_list': self._keyed("Entry.list({key}).push({0});", 1, 0),
            'remove_value_from_list': self._keyed("Entry.list({key}).removeAt({0});", 1, 0),
            'insert_value_to_list': self._keyed("Entry.list({key}).insertAt({1}, {0});", 1, 0, 2),
            'change_value_list_index': self._keyed("Entry.list({key}).set({0}, {1});", 0, 1, 2),
            'ask_and_wait': self._simple("await Entry.ask({0});", 0),
            'set_func_variable': self._safe(self._render_set_local, 1),
        }
        for block_type, handler in handlers.items():
            self.register(block_type, handler)

    # -- looks ------------------------------------------------------------

    def _render_dialog(self, node: Node, values: List[str], indent: int, context: CodegenContext) -> str:
        method = 'think' if node.literal(1) == 'think' else 'say'
        return self.line(indent, f"self.{method}({values[0]});")

    def _render_dialog_time(self, node: Node, values: List[str], indent: int, context: CodegenContext) -> str:
        method = 'think' if node.literal(2) == 'think' else 'say'
        return self.line(indent, f"await self.{method}({values[0]}, {values[1]});")

    def _render_next_shape(self, node: Node, values: List[str], indent: int, context: CodegenContext) -> str:
        method = 'prevPicture' if node.literal(0) == 'prev' else 'nextPicture'
        return self.line(indent, f"self.{method}();")

    # -- flow -------------------------------------------------------------

    def _block(self, header: str, body: List[Node], indent: int, context: CodegenContext,
               footer: str = "}", loop: bool = False) -> str:
        text = self.line(indent, header)
        text += self.emit_block(body, indent + 1, context)
        if loop and not contains_suspension(body):
            text += self.line(indent + 1, YIELD_STATEMENT)
        if footer:
            text += self.line(indent, footer)
        return text

    def _render_if(self, node: Node, values: List[str], indent: int, context: CodegenContext) -> str:
        text = self._block(f"if ({values[0]}) {{", node.branch(0), indent, context, footer="")
        if node.type == 'if_else':
            text += self._block("} else {", node.branch(1), indent, context, footer="")
        return text + self.line(indent, "}")

    def _render_repeat_basic(self, node: Node, values: List[str], indent: int, context: CodegenContext) -> str:
        counter = loop_counter(context.loop_level)
        limit = loop_limit(context.loop_level)
        header = f"for (let {counter} = 0, {limit} = {values[0]}; {counter} < {limit}; {counter}++) {{"
        return self._block(header, node.branch(0), indent, context.enter_loop(), loop=True)

    def _render_repeat_inf(self, node: Node, values: List[str], indent: int, context: CodegenContext) -> str:
        return self._block("while (true) {", node.branch(0), indent, context.enter_loop(), loop=True)

    def _emit_repeat_while(self, node: Node, indent: int, context: CodegenContext) -> str:
        negate = node.literal(1, 'until') != 'while'

        def render(node, values, indent, context):
            condition = f"!{values[0]}" if negate else values[0]
            return self._block(f"while ({condition}) {{", node.branch(0), indent, context.enter_loop(), loop=True)

        precedence = Precedence.UNARY if negate else Precedence.NONE
        return self._safe(render, (0, precedence))(node, indent, context)

    def _render_wait_until(self, node: Node, values: List[str], indent: int, context: CodegenContext) -> str:
        return (self.line(indent, f"while (!{values[0]}) {{")
                + self.line(indent + 1, YIELD_STATEMENT)
                + self.line(indent, "}"))

    def _emit_continue(self, node: Node, indent: int, context: CodegenContext) -> str:
        # skips the yield at the end of the body, so yield here instead
        if context.loop_level > 0:
            return self.line(indent, YIELD_STATEMENT) + self.line(indent, "continue;")
        return self.line(indent, "continue;")

    def _emit_stop_object(self, node: Node, indent: int, context: CodegenContext) -> str:
        mode = node.literal(0, 'thisThread')
        if mode == 'all':
            return self.line(indent, "Entry.stop();") + self.line(indent, "return;")
        if mode in ('thisOnly', 'self'):
            return self.line(indent, "self.stopScripts();") + self.line(indent, "return;")
        if mode == 'otherThread':
            return self.line(indent, "self.stopOtherScripts();")
        return self.line(indent, "return;")

    def _render_create_clone(self, node: Node, values: List[str], indent: int, context: CodegenContext) -> str:
        target = node.literal(0, 'self')
        if target == 'self' or target == context.object_id:
            return self.line(indent, "self.clone();")
        return self.line(indent, f"Entry.getObject({quote(target)}).clone();")

    # -- functions --------------------------------------------------------

    def _render_set_local(self, node: Node, values: List[str], indent: int, context: CodegenContext) -> str:
        variable_id = node.literal(0)
        if not has_stable_id(variable_id):
            return self._skip(node, indent, ExpressionFailure(node.type, "missing argument"))
        return self.line(indent, f"{local_identifier(variable_id)} = {values[0]};")

    def _emit_function_call(self, node: Node, indent: int, context: CodegenContext) -> str:
        def render(node, values, indent, context):
            callee = function_identifier(node.func_id)
            args = ", ".join(["self"] + values)
            return self.line(indent, f"await Entry.func.{callee}({args});")
        return self._safe(render, *range(len(node.arguments)))(node, indent, context)
