"""Rendezvous: match-and-conversation engine for a dating platform."""

__version__ = "0.1.0"
