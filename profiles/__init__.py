"""profiles/ -- Person profiles and vital readings, scoped to the owning account.

Layer rule: profiles/ imports only stdlib, third-party libraries and core/.
It does NOT import from api/, auth/, or client/.
"""
