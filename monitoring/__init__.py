"""Alerting hooks for the entitlement engine."""
