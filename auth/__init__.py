"""auth/ -- Credentials, sessions, and the request-level access guard.

Layer rule: auth/ imports only core/ + stdlib + third-party libraries.
It does NOT import from api/ or teams/.
api/ imports from auth/, not the other way around.
"""
