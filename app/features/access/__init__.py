"""
Access resolution feature module.

Resolves effective (permission, attribute) sets from immutable snapshots of
users, groups, roles and grants, and uses them to gate API routes and prune
the navigation menu.
"""
