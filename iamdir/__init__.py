"""Identity directory service package.

To use the Flask app:
    from iamdir.flask_app import create_app

To use the mapper or the role matcher standalone:
    from iamdir.core.ldap_mapper import AttributeMapper
    from iamdir.core.permissions import RoleMatcher
"""
