"""Classboard: classroom points ledger and live leaderboards."""
