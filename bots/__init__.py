"""
bots - Bot Decision Policy

Stateless decision rules for AI participants. Each personality maps to one
strategy in a closed table (scavenger, ceo, low, high, default); the policy
turns a personality plus market state into a bid or order intent.

All policies are pure: randomness comes from the caller's generator.
"""

__version__ = "1.0.0"
