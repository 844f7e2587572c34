"""
Identifier synthesis for generated JavaScript.

Names are derived from source block/variable ids. A clean id maps to
``<prefix>_<id>``; an id that needs sanitizing also gets a short digest of the
original so that ``a-b`` and ``a_b`` never collide. Missing or unusable ids get
a random suffix, the only non-deterministic naming in the transpiler.
"""

import hashlib
import re
import uuid
from typing import Any, Optional

_VALID_ID = re.compile(r'^[A-Za-z0-9_]+$')
_INVALID_CHARS = re.compile(r'[^A-Za-z0-9_]')
_FUNC_TYPE = re.compile(r'^func_(.+)$')
_PARAM_TYPE = re.compile(r'^(?:string|boolean)Param_(.+)$')

FUNCTION_PREFIX = "f"
PARAM_PREFIX = "p"
LOCAL_PREFIX = "v"


def _digest(text: str) -> str:
    return hashlib.sha1(text.encode('utf-8')).hexdigest()[:6]


def random_identifier(prefix: str) -> str:
    """Return a unique name for a construct that has no stable id."""
    return f"{prefix}_anon_{uuid.uuid4().hex[:8]}"


def has_stable_id(source_id: Any) -> bool:
    """Return True if ``source_id`` maps to a deterministic identifier."""
    return isinstance(source_id, str) and bool(_INVALID_CHARS.sub('', source_id))


def make_identifier(prefix: str, source_id: Any) -> str:
    """Build a JavaScript identifier for ``source_id``."""
    if not has_stable_id(source_id):
        return random_identifier(prefix)
    if _VALID_ID.match(source_id):
        return f"{prefix}_{source_id}"
    cleaned = _INVALID_CHARS.sub('_', source_id)
    return f"{prefix}_{cleaned}_{_digest(source_id)}"


def function_identifier(func_id: Any) -> str:
    return make_identifier(FUNCTION_PREFIX, func_id)


def param_identifier(param_id: Any) -> str:
    return make_identifier(PARAM_PREFIX, param_id)


def local_identifier(variable_id: Any) -> str:
    return make_identifier(LOCAL_PREFIX, variable_id)


def loop_counter(loop_level: int) -> str:
    return f"_i{loop_level}"


def loop_limit(loop_level: int) -> str:
    """Name holding a counted loop's bound, evaluated once on entry."""
    return f"_n{loop_level}"


def func_id_from_type(block_type: str) -> Optional[str]:
    """Extract the callee id encoded in a ``func_<id>`` type tag."""
    match = _FUNC_TYPE.match(block_type or '')
    return match.group(1) if match else None


def param_id_from_type(block_type: str) -> Optional[str]:
    """Extract the hash from a ``stringParam_<hash>``/``booleanParam_<hash>`` tag."""
    match = _PARAM_TYPE.match(block_type or '')
    return match.group(1) if match else None
