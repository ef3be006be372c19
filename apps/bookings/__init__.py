"""Bookings app package.

This app holds the booking and pricing engine: the pure pricing,
duration and state machine rules under ``domain``, the command handlers
that are the only writers of a booking's status, and the slot
reservation guard that admits new bookings against driveway capacity.
"""
