"""Incident investigation engine.

Consumes investigation jobs from a durable queue and drives each one through
a fixed phase pipeline of tool-using language-model agents.
"""

__version__ = "0.1.0"
