"""
utils package
-------------

Shared helpers of the guard roster service: configuration constants, period
and time-of-day conversions, up-front input validation and the application
logger.
"""
