"""
Permission Matrix, Subview Visibility, Access Guard and Permission Packs.

Permissions are organization-scoped: every membership carries a
module -> action matrix plus per-module view configuration.
"""
