"""
Data models for review operations
"""
