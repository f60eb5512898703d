"""auth/ -- Authentication and authorization package for MediLog.

Layer rule: auth/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, client/, or profiles/.
api/ imports from auth/, not the other way around.
"""
