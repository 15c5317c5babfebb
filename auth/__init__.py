"""auth/ -- Authentication and session-token core for budgetkeeper.

Layer rule: auth/ imports only stdlib + third-party libraries + core/.
It does NOT import from api/ or cache/. The cache backend is handed to
SessionStore by whoever assembles the app (api/main.py, tests).
api/ imports from auth/, not the other way around.
"""
