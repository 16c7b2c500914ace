"""HTTP API for the Rendezvous engine."""
