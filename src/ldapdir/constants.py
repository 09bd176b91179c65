"""Constants for ldapdir."""

__all__ = [
    "ACCOUNT_DISABLED_FLAG",
    "AD_RECURSIVE_MATCHING_RULE",
    "CONFIG_PATH",
    "FOREST_TRANSITIVE_FLAG",
    "GMSA_OBJECT_CATEGORY",
    "LDAP_PORT",
    "LDAP_TIMEOUT",
    "LDAPS_PORT",
    "NETBIOS_CACHE_SIZE",
    "PERSON_OBJECT_CATEGORY",
]

ACCOUNT_DISABLED_FLAG = 0x2
"""``ACCOUNTDISABLE`` bit of the Active Directory ``userAccountControl``."""

AD_RECURSIVE_MATCHING_RULE = "1.2.840.113556.1.4.1941"
"""OID of the Active Directory ``LDAP_MATCHING_RULE_IN_CHAIN`` rule.

Used in an extensible match filter, this makes the domain controller resolve
transitive group membership in a single search.
"""

CONFIG_PATH = "/etc/ldapdir/ldapdir.yaml"
"""Default configuration path."""

FOREST_TRANSITIVE_FLAG = 0x8
"""``TRUST_ATTRIBUTE_FOREST_TRANSITIVE`` bit of ``trustAttributes``."""

GMSA_OBJECT_CATEGORY = "CN=ms-DS-Group-Managed-Service-Account"
"""Leading RDN of the ``objectCategory`` of group managed service accounts."""

LDAP_PORT = 389
"""Default port for plain LDAP."""

LDAPS_PORT = 636
"""Default port for LDAP over TLS."""

LDAP_TIMEOUT = 10.0
"""Timeout (in seconds) for each LDAP connect, bind, and search."""

NETBIOS_CACHE_SIZE = 256
"""Maximum number of discovered NETBIOS name mappings to cache."""

PERSON_OBJECT_CATEGORY = "CN=Person"
"""Leading RDN of the ``objectCategory`` of Active Directory users."""
