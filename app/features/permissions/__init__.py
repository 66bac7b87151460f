"""
Access data storage.

Tables for permissions, attributes, roles, hierarchical groups, memberships,
user/role/group grants and the API resource map read by the access snapshot
loader.
"""
