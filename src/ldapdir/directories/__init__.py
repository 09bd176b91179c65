"""Implementations of user directories for each type of LDAP server."""
