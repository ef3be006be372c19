"""Notifications app package.

Fan-out boundary of the booking engine: subscribes to booking domain
events after commit and turns them into in-app notifications and
emails for the driver and the driveway owner.
"""
