"""
Trip reminder and lifecycle notification service.

Scans travel posts once a day, locks trips that start within the reminder
window, mails every participant an itinerary, and marks finished trips
inactive.
"""

APP_VERSION = "0.1.0"
