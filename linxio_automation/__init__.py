"""
Linxio automation rule engine.

Rules react to project-management domain events (task created, status
changed, ...) by evaluating a condition tree against the trigger payload and
dispatching one action handler. Every invocation leaves an execution record
behind as the audit trail.
"""

__version__ = "0.1.0"
