from typing import Dict, Any, Optional


# One baseline slot per session, process memory only.
_sessions: Dict[str, Dict[str, Any]] = {}


def initial_state():
    return {
        "baseline": None
    }


def update_state(state: dict, field: str, value):
    if field in state:
        state[field] = value


def get_session_state(session_id: str) -> Dict[str, Any]:
    """Session slot for writing; created on first use."""
    if session_id not in _sessions:
        _sessions[session_id] = initial_state()
    return _sessions[session_id]


def get_baseline(session_id: str) -> Optional[Any]:
    """Read-only lookup; never creates a slot."""
    session = _sessions.get(session_id)
    if session is None:
        return None
    return session["baseline"]


def clear_session(session_id: str):
    _sessions.pop(session_id, None)
