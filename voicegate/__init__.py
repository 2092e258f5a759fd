"""voicegate: ElevenLabs text-to-speech and voice conversion gateway."""

__version__ = "0.1.0"
