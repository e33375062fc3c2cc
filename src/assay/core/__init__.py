"""Audit engine core: registry, execution, scoring, remediation and scheduling."""
