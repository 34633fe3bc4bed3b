"""
Permission management feature module.

Implements Role-Based Access Control (RBAC): the permission store, the role
registry, the authorization evaluator and the route guard.
"""
