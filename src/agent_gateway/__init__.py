"""Agent-Gateway: a tool-calling agent runtime with persistent memory."""

__version__ = "0.1.0"
