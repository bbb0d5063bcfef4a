"""Utils package for the campaign runner."""
from .logging_utils import (
    setup_logging,
    setup_audit_log,
)

__all__ = [
    'setup_logging',
    'setup_audit_log',
]
