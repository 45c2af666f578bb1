"""
Streaming Demo.

Buffered responses versus HTTP streaming and server-sent events, including a
relay of a streaming LLM completion.
"""

__version__ = "0.1.0"
