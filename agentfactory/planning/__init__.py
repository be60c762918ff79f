"""Plan model, persistence, extraction, scheduling and negotiation."""
