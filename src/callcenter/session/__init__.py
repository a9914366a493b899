"""
Live operator session: channel polling, session state machine, wrap-up.
"""

__all__ = [
    "models",
    "poller",
    "state_machine",
    "wrapup",
    "registry",
]
