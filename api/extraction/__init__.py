"""
Attribute extraction from free-text feedback via a generative model.
"""
