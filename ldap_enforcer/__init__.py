"""
LDAP Enforcer - Keep an LDAP directory's accounts, service accounts and groups in line with declarative YAML.

This package reconciles the entries below three managed containers with the
desired state described in configuration files, once or continuously.
"""

__version__ = "1.0.0"
__author__ = "LDAP Enforcer Team"
