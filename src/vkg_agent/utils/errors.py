"""
Custom error classes for the VKG query pipeline
"""

from typing import List, Optional


class VKGError(Exception):
    """Base exception for pipeline errors"""
    pass


class GenerationError(VKGError):
    """Model produced an unparseable or empty plan/SQL"""
    pass


class ValidationError(VKGError):
    """SQL references a table/column absent from the resolved mappings"""

    def __init__(self, errors: List[str], warnings: Optional[List[str]] = None):
        self.errors = list(errors)
        self.warnings = list(warnings or [])
        super().__init__("; ".join(self.errors))


class ExecutionError(VKGError):
    """Federation engine rejected or errored on the SQL"""
    pass


class QueryTimeoutError(ExecutionError):
    """Poll budget exceeded while waiting for query results"""
    pass


class CatalogError(VKGError):
    """Catalog registration or introspection problem"""
    pass


class ConfigurationError(VKGError):
    """Missing or invalid service configuration"""
    pass


class DriftWarning(UserWarning):
    """Non-fatal mismatch between recorded mappings and the live schema"""
    pass
