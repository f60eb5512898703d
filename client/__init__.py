"""client/ -- Device-side session: secure storage, API client, launch bootstrap.

Layer rule: client/ imports only stdlib, third-party libraries and core/.
It talks to the server over HTTP only and never imports api/, auth/ or
profiles/.
"""
