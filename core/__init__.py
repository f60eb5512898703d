"""core/ -- Kernel package: configuration shared by the server and the device CLI.

Layer rule: core/ imports only stdlib + third-party libraries.
Every other package may import from core/, never the other way around.
"""
