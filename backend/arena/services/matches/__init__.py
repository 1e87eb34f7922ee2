"""Match domain services: registry, round resolution and ranking.

Imported by the Socket.IO event router and the HTTP blueprints, keeping
transport concerns separated from the match lifecycle.
"""
