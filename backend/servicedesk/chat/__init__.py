"""Ticket chat: access policy, message log, sessions, rooms and delivery."""
