"""Roundhouse: shared round engine for timed betting mini-games.

Every game runs the same loop: a phase timer, a wager-then-resolve money flow
and a probability-weighted outcome. The engine owns that loop once; a game is
just a ``GameDefinition`` in the catalog.
"""
