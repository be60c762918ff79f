"""agentfactory: retry-bounded plan/implement/verify orchestration for coding agents."""

__version__ = "0.3.0"
