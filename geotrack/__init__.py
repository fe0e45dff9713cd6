"""
GeoTrack Relay

Background location agent: acquires position fixes, throttles them by app
mode and forwards them to a collector over HTTP.
"""

__version__ = "1.0.0"
