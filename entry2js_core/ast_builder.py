"""
AST Builder for converting raw Entry script JSON into a typed Program.

A script is a JSON array of block stacks. Stacks headed by a start block become
event handlers, stacks headed by a function definition become function
definitions, and everything else is dropped.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from .identifiers import (
    func_id_from_type, has_stable_id, local_identifier, param_id_from_type, param_identifier
)
from .models import (
    Argument, EventHandler, Expression, FunctionDefinition, Literal, Node, Program
)

logger = logging.getLogger(__name__)

START_PREFIXES = ('when_', 'message_cast_')
START_TYPES = frozenset({'mouse_clicked', 'mouse_click_cancled'})
FUNCTION_DEFINITION_TYPES = frozenset({'function_create', 'function_create_value'})
VALUE_FUNCTION_TYPE = 'function_create_value'
PARAM_FIELD_TYPES = frozenset({'function_field_string', 'function_field_boolean'})
FIELD_PREFIX = 'function_field_'
LOCAL_VARIABLE_TYPES = frozenset({'get_func_variable', 'set_func_variable'})


def is_start_block(block_type: str) -> bool:
    """Return True for block types that begin an event-triggered stack."""
    return block_type.startswith(START_PREFIXES) or block_type in START_TYPES


def is_block(value: Any) -> bool:
    """Return True if ``value`` looks like a raw block (a dict with a string type)."""
    return isinstance(value, dict) and isinstance(value.get('type'), str)


def parse_script(raw_script: Any) -> Optional[List[Any]]:
    """Decode a script string into its list of block stacks.

    Returns None when the input is empty, not valid JSON, or not a list.
    """
    if isinstance(raw_script, list):
        return raw_script
    if not isinstance(raw_script, str) or not raw_script.strip():
        return None
    try:
        data = json.loads(raw_script)
    except ValueError as e:
        logger.warning(f"Script is not valid JSON: {e}")
        return None
    if not isinstance(data, list):
        logger.warning(f"Script root is {type(data).__name__}, expected a list of block stacks")
        return None
    return data


class ASTBuilder:
    """Builds Program objects from raw Entry scripts."""
    
    def __init__(self, start_predicate: Callable[[str], bool] = is_start_block):
        self.start_predicate = start_predicate
    
    def build(self, raw_script: Any, object_id: Optional[str] = None,
              function_id: Optional[str] = None) -> Program:
        """Build a Program from a script. Never raises on malformed input."""
        program = Program()
        stacks = parse_script(raw_script)
        if stacks is None:
            return program
        
        for stack in stacks:
            if not isinstance(stack, list) or not stack or not is_block(stack[0]):
                continue
            head = stack[0]
            head_type = head['type']
            
            if self.start_predicate(head_type):
                program.body.append(self._build_handler(stack, object_id))
            elif head_type in FUNCTION_DEFINITION_TYPES:
                program.body.append(self._build_function(head, object_id, function_id))
            else:
                logger.debug(f"Dropping top-level stack headed by '{head_type}'")
        
        return program
    
    def _build_handler(self, stack: List[Any], object_id: Optional[str]) -> EventHandler:
        head = stack[0]
        return EventHandler(
            event_name=head['type'],
            arguments=self._convert_params(head.get('params'), object_id),
            handler_body=self._convert_stack(stack[1:], object_id)
        )
    
    def _build_function(self, head: Dict[str, Any], object_id: Optional[str],
                        function_id: Optional[str]) -> FunctionDefinition:
        definition = self.convert_block(head, object_id)
        body = definition.branch(0)
        return FunctionDefinition(
            id=function_id or head.get('funcId') or head.get('id') or '',
            is_value_returning=head['type'] == VALUE_FUNCTION_TYPE,
            params=self._extract_params(definition),
            body=body,
            local_variables=collect_local_variables(body)
        )
    
    def _extract_params(self, definition: Node) -> List[str]:
        """Walk the linked list of field wrappers hanging off the definition."""
        params = []
        field = _first_field(definition.arguments)
        seen = set()
        while field is not None and id(field) not in seen:
            seen.add(id(field))
            if field.type in PARAM_FIELD_TYPES:
                for arg in field.arguments:
                    if isinstance(arg, Expression) and arg.node.param_id:
                        params.append(param_identifier(arg.node.param_id))
                        break
            field = _first_field(field.arguments)
        return params
    
    def convert_block(self, block: Dict[str, Any], object_id: Optional[str]) -> Node:
        """Recursively convert a raw block into a Node."""
        block_type = block['type']
        statements = []
        raw_statements = block.get('statements')
        if isinstance(raw_statements, list):
            for branch in raw_statements:
                statements.append(self._convert_stack(branch, object_id))
        
        func_id = block.get('funcId') if isinstance(block.get('funcId'), str) else None
        
        return Node(
            type=block_type,
            arguments=self._convert_params(block.get('params'), object_id),
            statements=statements,
            func_id=func_id or func_id_from_type(block_type),
            param_id=param_id_from_type(block_type),
            object_id=object_id,
            block_id=block.get('id') if isinstance(block.get('id'), str) else None
        )
    
    def _convert_params(self, params: Any, object_id: Optional[str]) -> List[Argument]:
        if not isinstance(params, list):
            return []
        arguments: List[Argument] = []
        for param in params:
            if param is None:
                continue
            if isinstance(param, dict):
                if is_block(param):
                    arguments.append(Expression(self.convert_block(param, object_id)))
                continue
            arguments.append(Literal(param))
        return arguments
    
    def _convert_stack(self, stack: Any, object_id: Optional[str]) -> List[Node]:
        if not isinstance(stack, list):
            return []
        return [self.convert_block(block, object_id) for block in stack if is_block(block)]


def _first_field(arguments: List[Argument]) -> Optional[Node]:
    for arg in arguments:
        if isinstance(arg, Expression) and arg.node.type.startswith(FIELD_PREFIX):
            return arg.node
    return None


def collect_local_variables(body: List[Node]) -> List[str]:
    """Collect identifiers of function-local variables referenced in ``body``."""
    names: List[str] = []
    for node in body:
        for child in node.walk():
            if child.type in LOCAL_VARIABLE_TYPES:
                variable_id = child.literal(0)
                if not has_stable_id(variable_id):
                    continue
                name = local_identifier(variable_id)
                if name not in names:
                    names.append(name)
    return names
