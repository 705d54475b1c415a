"""
tas-quickstart: install, start, smoke-test and stop a TEE Attestation Service.

The attestation service itself is an external program; this package only
supervises it through a pid file and drives its HTTP API.
"""

from .process_manager import ProcessManager, Registry
from .process_types import (
    LifecycleTiming,
    ManagedProcess,
    ProcessStatus,
    StartError,
    StopError,
    StopOutcome,
)

# Package metadata
__version__ = "0.1.0"

# Public API
__all__ = [
    "ProcessManager",
    "Registry",
    "LifecycleTiming",
    "ManagedProcess",
    "ProcessStatus",
    "StartError",
    "StopError",
    "StopOutcome",
]
