"""canvasflow - a concurrent, streaming execution engine for node-based LLM workflows."""

__version__ = "0.1.0"
