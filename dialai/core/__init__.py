"""Scheduling, voice coordination, generation and call orchestration."""
