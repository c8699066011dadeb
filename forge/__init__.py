"""
Forge: workflow orchestration core

Tracks the phase of a long-running, multi-phase automation pipeline, keeps a
dependency- and priority-aware task queue, and runs bounded healing attempts
behind a circuit breaker. Everything is persisted as plain files in a
workspace directory (``.forge/``).
"""

__version__ = "0.1.0"

from forge.core.exceptions import ForgeError

__all__ = ["ForgeError", "__version__"]
