"""Reachability, state and wake orchestration."""
