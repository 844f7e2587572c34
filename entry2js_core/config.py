"""
Configuration for the transpiler.
"""

import os
from dataclasses import dataclass
from typing import Optional


@dataclass
class TranspilerConfig:
    """Transpiler configuration settings."""
    unit_timeout: Optional[float] = 30.0  # seconds per unit; None waits forever
    output_dir_name: str = "script"
    script_field: str = "scriptFile"
    error_log_suffix: str = ".error.log"
    start_method: Optional[str] = None  # multiprocessing start method; None uses the platform default
    indent_size: int = 2

    def __post_init__(self):
        """Validate configuration after initialization."""
        if self.unit_timeout is not None and not self.unit_timeout > 0:
            raise ValueError("unit_timeout must be positive or None")
        if not self.output_dir_name or os.path.isabs(self.output_dir_name):
            raise ValueError("output_dir_name must be a non-empty relative path")
        if self.indent_size < 1:
            raise ValueError("indent_size must be at least 1")
        if self.start_method not in (None, 'fork', 'spawn', 'forkserver'):
            raise ValueError(f"Unknown start method: {self.start_method}")

    @classmethod
    def from_env(cls, environ=None) -> 'TranspilerConfig':
        """Build a configuration from ``ENTRY2JS_*`` environment variables."""
        environ = os.environ if environ is None else environ
        config = {}

        timeout = environ.get('ENTRY2JS_UNIT_TIMEOUT')
        if timeout is not None:
            config['unit_timeout'] = None if timeout.strip().lower() in ('', '0', 'none') else float(timeout)
        if environ.get('ENTRY2JS_OUTPUT_DIR'):
            config['output_dir_name'] = environ['ENTRY2JS_OUTPUT_DIR']
        if environ.get('ENTRY2JS_START_METHOD'):
            config['start_method'] = environ['ENTRY2JS_START_METHOD']
        if environ.get('ENTRY2JS_INDENT_SIZE'):
            config['indent_size'] = int(environ['ENTRY2JS_INDENT_SIZE'])

        return cls(**config)
