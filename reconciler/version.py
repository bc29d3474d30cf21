"""Version information for openai-reconcile."""

__version__ = "0.1.0"
