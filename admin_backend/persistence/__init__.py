"""
Persistence port and its relational/document adapters.
"""
