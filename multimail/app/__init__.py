"""
Multimail demo service (FastAPI).
"""
