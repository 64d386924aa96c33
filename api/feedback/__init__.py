"""
Feedback records, the enrichment workflow and its HTTP endpoints.
"""
