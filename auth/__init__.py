"""auth/ -- Credential and identity subsystem for gymops.

Layer rule: auth/ imports only stdlib + third-party libraries.
It does NOT import from api/ or core/. Configuration values reach it as
constructor arguments; api/ imports from auth/, not the other way around.
"""
