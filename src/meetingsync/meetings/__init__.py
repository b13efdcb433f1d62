"""Meetings and rooms -- persistence, the read-only meeting directory, and the create/update/delete flows."""
