"""auth/ -- Credential hashing, JWT issuance and request authentication for RoleGate.

Layer rule: auth/tokens.py imports only core/ and third-party libraries, so
rbac/ may use it for password hashing. auth/service.py and
auth/dependencies.py sit above rbac/. api/ imports from auth/, never the
other way around.
"""
