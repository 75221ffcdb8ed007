"""Authentication and authorization.

Tokens are issued by the identity provider; this package only verifies
Bearer JWTs and resolves them to a CurrentIdentity (user id + role).
Role checks happen here, at the guard layer, before services run.
"""
