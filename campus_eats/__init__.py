"""
                Campus Eats

Backend for a campus food-ordering marketplace: order lifecycle with
QR pickup verification, outlet load throttling, and a token-based
reward economy (ratings, spin wheel, badges, leaderboard).

Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
