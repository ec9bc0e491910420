"""
Mail Unsubscriber - resolve and execute unsubscribe mechanisms for stored emails.
"""

__version__ = '0.1.0'
