"""auth/ -- Credentials, tokens, and authorization for SpeciesGuard.

Layer rule: auth/ imports only stdlib + third-party libraries (and fastapi in
dependencies.py). It does NOT import from api/ or core/.
api/ imports from auth/, not the other way around.
"""
