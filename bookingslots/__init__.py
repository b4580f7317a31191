"""
bookingslots - availability and booking core for a massage therapy practice.
"""

__version__ = "0.1.0"
