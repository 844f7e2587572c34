"""
Transpiler-specific exceptions.
"""

from typing import Optional, Any, Dict


class TranspilerError(Exception):
    """Base exception for all transpiler errors."""
    
    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.details = details or {}


class ManifestError(TranspilerError):
    """Raised when the project manifest cannot be read or written."""
    
    def __init__(self, message: str, manifest_path: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.manifest_path = manifest_path


class ManifestNotFoundError(ManifestError):
    """Raised when the project manifest does not exist."""
    pass


class OutputDirectoryError(TranspilerError):
    """Raised when the generated-script directory cannot be created."""
    
    def __init__(self, message: str, directory: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message, details)
        self.directory = directory


class UnitTimeoutError(TranspilerError):
    """Raised (and recorded) when a unit exceeds its time budget."""
    
    def __init__(self, object_id: str, timeout: float):
        super().__init__(
            f"Unit {object_id} did not finish within {timeout:g}s and was terminated",
            {'object_id': object_id, 'timeout': timeout}
        )
        self.object_id = object_id
        self.timeout = timeout
