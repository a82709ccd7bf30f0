"""REST endpoint modules for the fleet backend.

Each function takes a :class:`~fleetlive._transport.Transport` and
returns validated models. They are internal; use
:class:`fleetlive.client.FleetClient` instead.
"""
