"""
Panorama stale-host decommissioner.

Finds hosts that stopped answering pings, locates every address object that
points at them across all device groups (and Shared), then strips those
objects out of address groups, Security rules and NAT rules before deleting
the objects themselves. Changes land in the candidate configuration only.
"""

__version__ = "0.1.0"
