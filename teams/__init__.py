"""teams/ -- Team tree persistence and hierarchy-based access decisions.

Layer rule: teams/ imports only core/ + stdlib + third-party libraries.
It does NOT import from api/ or auth/. Access decisions take a team id, not a
session, so auth/ and teams/ stay independent; api/ wires them together.
"""
