"""
innerparts: real-time writing companion engine.

Decides whether and which inner-part persona should respond to a writing
pause, streams the response, and layers in safety grounding and the
probability-gated suggestion engines.
"""

__version__ = "0.1.0"
