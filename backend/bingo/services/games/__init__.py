"""Game domain services: boards, patterns, draws, payouts and timers.

This package contains pure(ish) game logic that is driven by the socket
handlers and HTTP routes, keeping transport concerns separated from core
game mechanics. ``engine.GameStateMachine`` is the only place game state
changes.
"""
