"""
CueRank - Pool League Results and Ratings

Records two-discipline (8-ball / 9-ball) league matches, reconciles the
scorecards both players submit, and keeps a per-league skill rating for
every player.

Main components:
- rating: Race-to charts, rating engine, confidence scaling, parameter sets
- services: Submission ledger, verification, finalization and reversal
- availability: Play-window lock
- db: ORM models and session factories
- web: FastAPI JSON API with operator authentication
"""

__version__ = "1.0.0"
