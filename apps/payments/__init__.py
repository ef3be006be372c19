"""Payments app package.

Client for the external payment gateway (payment intents, verification,
refunds) and the endpoints that feed gateway results into the booking
state machine.
"""
