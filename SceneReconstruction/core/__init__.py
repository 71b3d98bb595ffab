"""
Core data structures and collaborator interfaces.
"""
