"""ai-dev-team: a persisted, recoverable workflow engine for AI development agents."""

__version__ = "0.1.0"
