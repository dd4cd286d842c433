"""auth/ -- Accounts, credentials and the authentication stages.

Layer rule: auth/ may import from core/ and, for the stage envelopes in
dependencies.py, from api/responses.py. It never imports services/, rbac/
or cache/. services/ and api/ import from auth/, not the other way around.
"""
