"""LDAP client contract, backends, and trust discovery."""
