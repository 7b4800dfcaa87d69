"""Kennel booking core: capacity holds, payment reconciliation and pricing."""
