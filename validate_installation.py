#!/usr/bin/env python3
"""
Validation script for LDAP Enforcer.

This script validates that all dependencies are installed correctly
and that the reconciliation engine works against an in-memory directory.
"""

import sys
import importlib


def check_dependency(package_name, import_name=None):
    """Check if a package/module can be imported."""
    if import_name is None:
        import_name = package_name

    try:
        importlib.import_module(import_name)
        return True, f"✓ {package_name} available"
    except ImportError as e:
        return False, f"✗ {package_name} missing: {e}"


def validate_dependencies():
    """Validate all required dependencies."""
    print("=== Dependency Validation ===")

    dependencies = [
        ("ldap3", "ldap3"),
        ("PyYAML", "yaml"),
    ]

    test_dependencies = [
        ("pytest", "pytest"),
        ("pytest-mock", "pytest_mock"),
    ]

    all_ok = True
    for pkg_name, import_name in dependencies:
        ok, message = check_dependency(pkg_name, import_name)
        print(f"  {message}")
        if not ok:
            all_ok = False

    print("\n  Test dependencies:")
    for pkg_name, import_name in test_dependencies:
        ok, message = check_dependency(pkg_name, import_name)
        print(f"  {message}")

    return all_ok


def validate_core_modules():
    """Validate core application modules."""
    print("\n=== Core Module Validation ===")

    modules = [
        "ldap_enforcer.model",
        "ldap_enforcer.attributes",
        "ldap_enforcer.membership",
        "ldap_enforcer.graph",
        "ldap_enforcer.differ",
        "ldap_enforcer.gateway",
        "ldap_enforcer.recording",
        "ldap_enforcer.ldap_client",
        "ldap_enforcer.config",
        "ldap_enforcer.retry",
        "ldap_enforcer.logging_setup",
        "ldap_enforcer.reconciler",
        "ldap_enforcer.verify",
        "ldap_enforcer.loop",
        "ldap_enforcer.main",
    ]

    all_ok = True
    for module in modules:
        ok, message = check_dependency(module, module)
        print(f"  {message}")
        if not ok:
            all_ok = False

    return all_ok


def validate_functionality():
    """Validate key functionality."""
    print("\n=== Functionality Validation ===")

    try:
        from ldap_enforcer.config import Config, ConnectionSettings
        from ldap_enforcer.model import Account, Group, Locations
        from ldap_enforcer.reconciler import Reconciler
        from ldap_enforcer.recording import RecordingGateway
        from ldap_enforcer.verify import verify

        config = Config(
            connection=ConnectionSettings(uri='ldap://localhost', bind_dn='cn=admin,dc=example,dc=com',
                                          password='unused'),
            locations=Locations('ou=people,dc=example,dc=com', 'ou=services,dc=example,dc=com',
                                'ou=groups,dc=example,dc=com'),
            accounts={'alice': Account('alice', 'Alice Example')},
            groups={'admins': Group('admins', 'Administrators', accounts=('alice',))},
        )
        gateway = RecordingGateway()
        gateway.add_entry('dc=example,dc=com', {'objectClass': ['top', 'domain']})

        reconciler = Reconciler(lambda _: gateway)
        reconciler.reconcile(config)
        print(f"  ✓ Reconciliation pass ({len(gateway.operations)} operations)")

        gateway.clear_operations()
        reconciler.reconcile(config)
        if gateway.operations:
            print("  ✗ Second pass was not idempotent")
            return False
        print("  ✓ Idempotent second pass")

        with gateway:
            report = verify(gateway, config)
        if not report.in_sync:
            print("  ✗ Verification reported differences")
            return False
        print("  ✓ Verification")

        from ldap_enforcer.retry import retry_call
        retry_call(lambda: "test", max_attempts=1, delay=0, exceptions=())
        print("  ✓ Retry mechanism")

        return True

    except Exception as e:
        print(f"  ✗ Functionality test failed: {e}")
        return False


def validate_cli():
    """Validate command-line interface."""
    print("\n=== CLI Validation ===")

    try:
        import subprocess

        result = subprocess.run([sys.executable, "-m", "ldap_enforcer.main", "--help"],
                                capture_output=True, text=True)
        if result.returncode == 0:
            print("  ✓ Help command working")
        else:
            print("  ✗ Help command failed")
            return False

        result = subprocess.run([sys.executable, "-m", "ldap_enforcer.main", "version"],
                                capture_output=True, text=True)
        if result.returncode == 0 and result.stdout.startswith("ldapenforcer"):
            print(f"  ✓ Version command working ({result.stdout.strip()})")
        else:
            print("  ✗ Version command failed")
            return False

        return True

    except Exception as e:
        print(f"  ✗ CLI validation failed: {e}")
        return False


def main():
    """Run all validations."""
    print("LDAP Enforcer - Installation Validation")
    print("=" * 50)

    all_validations = [
        validate_dependencies(),
        validate_core_modules(),
        validate_functionality(),
        validate_cli(),
    ]

    print("\n=== Summary ===")
    if all(all_validations):
        print("✓ All validations passed!")
        print("✓ LDAP Enforcer is ready for use")
        print("\nNext steps:")
        print("  1. Describe your accounts and groups in ldapenforcer.yaml")
        print("  2. Check it with: ldapenforcer config-show")
        print("  3. Preview changes with: ldapenforcer sync --dry-run")
        print("  4. Run: ldapenforcer sync")
        return 0
    else:
        print("✗ Some validations failed!")
        print("Please resolve the issues above before using the application.")
        return 1


if __name__ == "__main__":
    sys.exit(main())
