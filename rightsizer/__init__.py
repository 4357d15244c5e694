"""
Rightsizer -- right-size vSphere VM CPU / memory from vROps recommendations.
"""

__version__ = "0.1.0"
