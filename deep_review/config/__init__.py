"""
Configuration for the DeepReview pull request reviewer
"""
