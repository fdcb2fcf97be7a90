"""Bulk import and client reconciliation for livestock field-visit records."""
