"""
NCLEX computerized adaptive testing engine.
"""
