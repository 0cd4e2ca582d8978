"""Core Business Logic Module

This module provides the directory mapping and authorization logic,
independent of HTTP frameworks (Flask).

Architecture:
    - Pure Python (no Flask dependencies in core logic)
    - Testable without HTTP mocking
    - Configuration validated once, then shared read-only

Module Structure:
    - exceptions.py  : DirectoryError, ConfigurationError
    - mapping.py     : Mapping table parsing (MappingRule, RelationBasePath)
    - ldap_mapper.py : Entity ↔ directory attribute translation
    - model.py       : Organization entity
    - permissions.py : Tier-based role pattern matching

Public APIs:
    Mapping (iamdir.core.ldap_mapper):
        - AttributeMapper.from_config()
        - AttributeMapper.to_attributes()
        - AttributeMapper.from_attributes()
        - group_attributes()

    RBAC (iamdir.core.permissions):
        - RoleMatcher.is_authorized()
        - RoleMatcher.rights()
        - collect_roles()
"""
