"""Memory Bridge: conversation capture and decision recall for agent runtimes.

Buffers conversation turns per channel, hands them to a remote decision
extraction service once enough context has accumulated, and injects
relevant past decisions into the agent's prompt when a user asks for them.
"""

__version__ = "0.1.0"
