"""
Utility functions shared across the application.
"""
