"""Run directory, event log and redaction."""
