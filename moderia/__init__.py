"""Moderia marketplace data layer.

Marketplace actions (services, bookings, reviews) exposed to an agent tool
layer and stored on a set of encrypted-data nodes: writes fan out to every
usable node, reads go to one.
"""

__version__ = "0.1.0"
