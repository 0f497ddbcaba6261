"""Reminder delivery channels (email, Matrix push, console)."""
