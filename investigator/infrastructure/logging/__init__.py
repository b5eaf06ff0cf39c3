"""
Investigator Logging Infrastructure

- coordinator: investigation-scoped context held in a ContextVar
- config: structlog configuration with JSON output and trace correlation
- unified: layer-tagged UnifiedLogger with operation timing helpers
"""

from .coordinator import RequestContext, request_context, set_phase
from .config import InvestigatorLogger, configure_logging, get_logger
from .unified import UnifiedLogger, clear_logger_cache, get_unified_logger

__all__ = [
    'RequestContext',
    'request_context',
    'set_phase',
    'InvestigatorLogger',
    'configure_logging',
    'get_logger',
    'UnifiedLogger',
    'get_unified_logger',
    'clear_logger_cache',
]
