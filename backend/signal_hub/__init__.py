"""
Emergency Signal Hub

Real-time coordination between an emergency vehicle, its dashboards and the
traffic signals along its route.
"""

__version__ = "1.0.0"
