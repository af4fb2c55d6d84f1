"""Game-lite engine: tap scoring, redemptions, exit cleanup and kiosk fan-out.

Everything here is transport-agnostic; the blueprints under ``tapgame.api``
and the Socket.IO handlers reach it through ``runtime.get_gamelite()``.
"""
