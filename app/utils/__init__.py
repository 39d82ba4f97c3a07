"""
Utility helpers: JSON, phone numbers, timestamps
"""
