"""openai-reconcile - declarative reconciliation for the OpenAI platform.

This package maps a declared resource graph (projects, files, assistants,
rate limits, invites, ...) onto the OpenAI REST API, computing and executing
the minimal set of remote calls needed to converge remote state.
"""

from reconciler.version import __version__

__all__ = ["__version__"]
