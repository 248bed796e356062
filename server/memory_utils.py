import threading
from typing import Dict, List, Optional

from flask import Blueprint, jsonify, request

from errors import InvalidRequestError


DEFAULT_SESSION_ID = "default"


class SessionStore:
    """In-process chat history keyed by session id.

    Reads return copies; ``append`` does lookup-and-store under one lock so
    concurrent requests on the same session never lose turns. Nothing is
    persisted and nothing is evicted.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sessions: Dict[str, List[Dict[str, str]]] = {}

    def get(self, session_id: str) -> List[Dict[str, str]]:
        with self._lock:
            return [dict(turn) for turn in self._sessions.get(session_id, [])]

    def append(self, session_id: str, *turns: Dict[str, str]) -> List[Dict[str, str]]:
        with self._lock:
            history = self._sessions.setdefault(session_id, [])
            history.extend({"role": t["role"], "content": t["content"]} for t in turns)
            return [dict(turn) for turn in history]

    def clear(self, session_id: str) -> bool:
        with self._lock:
            return self._sessions.pop(session_id, None) is not None

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)


def resolve_session_id(value: Optional[object]) -> str:
    if value is None or value == "":
        return DEFAULT_SESSION_ID
    if not isinstance(value, str):
        raise InvalidRequestError("'sessionId' must be a string")
    return value


def create_memory_blueprint(store: SessionStore) -> Blueprint:
    bp = Blueprint("memory", __name__)

    @bp.get("/memory")
    def get_memory():
        session_id = resolve_session_id(request.args.get("sessionId"))
        return jsonify({"sessionId": session_id, "history": store.get(session_id)})

    @bp.delete("/memory")
    def delete_memory():
        session_id = resolve_session_id(request.args.get("sessionId"))
        return jsonify({"sessionId": session_id, "cleared": store.clear(session_id)})

    return bp
