"""Ticket lifecycle and timer tracking service."""
