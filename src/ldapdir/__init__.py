"""User directory abstraction over LDAP and Active Directory."""

from importlib.metadata import PackageNotFoundError, version

__all__ = ["__version__"]

try:
    __version__ = version("ldapdir")
except PackageNotFoundError:
    # Package not installed
    __version__ = "0.0.0"
