"""
Review oracle providers and prompt construction
"""
