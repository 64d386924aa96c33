"""
Step-ordered workflow execution with checkpointed results.
"""
