"""Synchronized state machines over WebSockets: state machines, data structures, server and client."""

__version__ = "0.1.0"