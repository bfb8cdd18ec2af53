"""Xeno Agent - continuous voice conversation front end.

The core is the voice session controller in ``xeno_agent.voice``: it
listens for speech, finalizes utterances, routes them through recognition,
dialogue and synthesis collaborators, and keeps a conversation going
across turns until the session times out or the user says goodbye.
"""

__version__ = "0.3.0"
