"""
Durable reaction logging hook.

The engine hands every recorded reaction to a ReactionLog. Logging is best
effort: the coordinator catches and logs failures so they never affect
reaction processing.
"""
import json
import os
import threading
from typing import Protocol

from ..data.schemas import Reaction


class ReactionLog(Protocol):
    def append(self, session_id: str, reaction: Reaction) -> None:
        ...


class NullReactionLog:
    """Discards everything. Used when no log path is configured."""

    def append(self, session_id: str, reaction: Reaction) -> None:
        return None


class JsonlReactionLog:
    """Appends one JSON line per reaction to a file."""

    def __init__(self, path: str):
        self.path = path
        self._lock = threading.Lock()
        directory = os.path.dirname(os.path.abspath(path))
        os.makedirs(directory, exist_ok=True)

    def append(self, session_id: str, reaction: Reaction) -> None:
        line = json.dumps({'sessionId': session_id, **reaction.to_dict()})
        with self._lock:
            with open(self.path, 'a', encoding='utf-8') as f:
                f.write(line + "\n")


def create_reaction_log(path: str) -> ReactionLog:
    if not path:
        return NullReactionLog()
    return JsonlReactionLog(path)
