"""
DialAI - voice calling agent.

Holds spoken, turn-based sales calls: captures the caller's speech,
generates replies with Gemini, speaks them with ElevenLabs and keeps a
transcript of every call.
"""

__version__ = "1.0.0"
