"""rbac/ -- Users, roles, permissions and the rules that connect them.

Layer rule: rbac/ imports from core/ and auth/tokens.py only. It does NOT
import from api/, auth/service.py or auth/dependencies.py.
"""
