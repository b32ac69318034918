"""
Review pipeline services
"""
