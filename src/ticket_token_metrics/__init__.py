"""Ticket-level token usage attribution and weekly delivery metrics."""
