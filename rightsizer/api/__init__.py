"""
Rightsizer API -- FastAPI server and response adapters.
"""
