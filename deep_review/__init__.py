"""
DeepReview: chunked LLM review of pull request diffs with a merge-block decision
"""
