"""Driveways app package.

Listings that drivers can book: the driveway itself, its capacity and
hourly rate, and owner-defined availability windows that override the
rate for part of a day.
"""
