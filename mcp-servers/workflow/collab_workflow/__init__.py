"""Workflow hooks for AI coding-agent sessions.

Hook-driven, no daemon: every host lifecycle hook is a short-lived process
that records telemetry into an append-only queue and, before each tool call,
asks the admission policy whether the ticket workflow allows it.
"""

__version__ = "0.1.0"
