"""Persistence: append-only audit log and snapshot state store."""
