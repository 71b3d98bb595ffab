"""
Geometry and graph algorithms used by the reconstruction front end.
"""
