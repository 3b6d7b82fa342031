"""
tenant_manager — Tenant CRUD service.

Every data operation runs under per-request credentials resolved by
token_manager and goes through data_access.
"""
