"""
Command line entry point for LDAP Enforcer.

Commands:
    sync         Reconcile the directory, once or continuously
    verify       Report differences between the directory and the configuration
    config-show  Print the effective configuration
    version      Print the version

Exit codes: 0 success, 1 pass failed or verification found differences,
2 configuration error, 3 directory connection error, 4 unexpected error.
"""

import sys
import signal
import logging
import argparse
import threading
from typing import Any, Dict, List, Optional, Tuple

import yaml

from ldap_enforcer import __version__
from ldap_enforcer.config import Config, ConfigLoader, ConfigurationError
from ldap_enforcer.gateway import DirectoryError, TransportError
from ldap_enforcer.ldap_client import LDAPGateway
from ldap_enforcer.logging_setup import audit_logger, setup_logging
from ldap_enforcer.loop import ReconciliationLoop
from ldap_enforcer.model import EntityKind
from ldap_enforcer.reconciler import PassResult, ReconcileError, Reconciler
from ldap_enforcer.recording import RecordingGateway
from ldap_enforcer.verify import verify

logger = logging.getLogger(__name__)

EXIT_SUCCESS = 0
EXIT_FAILURE = 1
EXIT_CONFIG_ERROR = 2
EXIT_CONNECTION_ERROR = 3
EXIT_UNEXPECTED_ERROR = 4

# Command line flag -> dotted configuration key
FLAG_OVERRIDES = {
    'uri': 'ldap.uri',
    'bind_dn': 'ldap.bind_dn',
    'password_file': 'ldap.password_file',
    'password_command': 'ldap.password_command',
    'password_command_via_shell': 'ldap.password_command_via_shell',
    'ca_cert_file': 'ldap.ca_cert_file',
    'people_ou': 'locations.people',
    'svcacct_ou': 'locations.service_accounts',
    'group_ou': 'locations.groups',
    'log_level': 'logging.level',
    'ldap_log_level': 'logging.ldap_level',
    'config_poll_interval': 'polling.config_interval',
    'drift_interval': 'polling.drift_interval',
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='ldapenforcer',
        description='Enforce LDAP accounts, service accounts and groups from YAML configuration'
    )
    parser.add_argument('--config', '-c', help='Path to configuration file '
                                               '(default: $LDAPENFORCER_CONFIG or ldapenforcer.yaml)')
    parser.add_argument('--uri', help='LDAP server URI')
    parser.add_argument('--bind-dn', help='DN to bind as')
    parser.add_argument('--password-file', help='File containing the bind password')
    parser.add_argument('--password-command', help='Command that prints the bind password')
    parser.add_argument('--password-command-via-shell', action='store_true', default=None,
                        help='Run the password command with sh -c')
    parser.add_argument('--ca-cert-file', help='CA certificate file for TLS verification')
    parser.add_argument('--people-ou', help='Managed container for accounts')
    parser.add_argument('--svcacct-ou', help='Managed container for service accounts')
    parser.add_argument('--group-ou', help='Managed container for groups')
    parser.add_argument('--log-level', help='Main log level (DEBUG, INFO, WARNING, ERROR)')
    parser.add_argument('--ldap-log-level', help='Log level for the ldap3 library')
    parser.add_argument('--config-poll-interval', type=float,
                        help='Seconds between configuration change checks, 0 to run once')
    parser.add_argument('--drift-interval', type=float,
                        help='Seconds between unconditional reconciliations')

    subparsers = parser.add_subparsers(dest='command', metavar='COMMAND')
    subparsers.required = True

    sync_parser = subparsers.add_parser('sync', help='Reconcile the directory with the configuration')
    sync_parser.add_argument('--dry-run', action='store_true',
                             help='Print the changes a pass would make without writing them')
    sync_parser.add_argument('--once', action='store_true',
                             help='Run a single pass even if polling is configured')
    sync_parser.set_defaults(handler=run_sync)

    verify_parser = subparsers.add_parser('verify', help='Compare the directory with the configuration')
    target = verify_parser.add_mutually_exclusive_group()
    target.add_argument('--account', help='Only verify this account')
    target.add_argument('--service-account', help='Only verify this service account')
    target.add_argument('--group', help='Only verify this group')
    verify_parser.set_defaults(handler=run_verify)

    show_parser = subparsers.add_parser('config-show', help='Print the effective configuration')
    show_parser.add_argument('--show-secrets', action='store_true', help='Do not mask the bind password')
    show_parser.set_defaults(handler=run_config_show)

    version_parser = subparsers.add_parser('version', help='Print the version')
    version_parser.set_defaults(handler=run_version)

    return parser


def overrides_from_args(args: argparse.Namespace) -> Dict[str, Any]:
    """Dotted configuration overrides for every flag that was given."""
    overrides = {}
    for attribute, config_key in FLAG_OVERRIDES.items():
        value = getattr(args, attribute, None)
        if value is not None:
            overrides[config_key] = value
    return overrides


def live_gateway_factory(config: Config) -> LDAPGateway:
    return LDAPGateway.from_config(config)


def dry_run_gateway_factory(config: Config) -> RecordingGateway:
    """A recording gateway seeded from the live managed containers."""
    return RecordingGateway(
        backing=LDAPGateway.from_config(config),
        snapshot_bases=[container for _, container in config.locations.containers()]
    )


def install_signal_handlers(stop_event: threading.Event):
    """Set the stop event on SIGINT and SIGTERM."""
    def handle_signal(signum, frame):
        logger.info(f"Received signal {signal.Signals(signum).name}, shutting down")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)


def load_configuration(args: argparse.Namespace) -> Tuple[ConfigLoader, Config]:
    loader = ConfigLoader(args.config, overrides_from_args(args))
    config = loader.load()
    setup_logging(config.logging)
    audit_logger.log_configuration_access(loader.config_path)
    return loader, config


def print_changes(result: PassResult):
    if not result.changes:
        print("No changes needed")
        return
    print(f"{len(result.changes)} change(s) would be made:")
    for change in result.changes:
        print(change.describe())


def run_sync(args: argparse.Namespace) -> int:
    loader, config = load_configuration(args)

    if args.dry_run:
        logger.info("Dry run: no changes will be written to the directory")
        result = Reconciler(dry_run_gateway_factory, dry_run=True).reconcile(config)
        print_changes(result)
        for warning in result.warnings:
            print(f"Warning: {warning}")
        return EXIT_SUCCESS

    reconciler = Reconciler(live_gateway_factory)
    if args.once or not config.polling.config_interval:
        reconciler.reconcile(config)
        return EXIT_SUCCESS

    stop_event = threading.Event()
    install_signal_handlers(stop_event)
    loop = ReconciliationLoop(config, reconciler, loader, stop_event=stop_event)
    loop.run()
    return EXIT_SUCCESS


def verification_target(args: argparse.Namespace) -> Optional[tuple]:
    if args.account:
        return EntityKind.ACCOUNT, args.account
    if args.service_account:
        return EntityKind.SERVICE_ACCOUNT, args.service_account
    if args.group:
        return EntityKind.GROUP, args.group
    return None


def run_verify(args: argparse.Namespace) -> int:
    _, config = load_configuration(args)
    only = verification_target(args)
    if only is not None:
        kind, key = only
        entities = {
            EntityKind.ACCOUNT: config.accounts,
            EntityKind.SERVICE_ACCOUNT: config.service_accounts,
            EntityKind.GROUP: config.groups,
        }[kind]
        if key not in entities:
            raise ConfigurationError(f"{kind.value} {key} not found in configuration")

    print("Verifying LDAP connection...")
    with live_gateway_factory(config) as gateway:
        print("LDAP connection successful")
        report = verify(gateway, config, only)

    for line in report.lines():
        print(line)
    for warning in report.warnings:
        print(f"Warning: {warning}")

    if report.in_sync:
        print("\nVerification complete: directory matches configuration")
        return EXIT_SUCCESS
    print(f"\nVerification complete: {len(report.problems())} difference(s) found")
    return EXIT_FAILURE


def run_config_show(args: argparse.Namespace) -> int:
    loader = ConfigLoader(args.config, overrides_from_args(args))
    config = loader.load()
    print(f"# Loaded from: {', '.join(config.source_files)}")
    print(yaml.safe_dump(config.as_dict(mask_secrets=not args.show_secrets),
                         default_flow_style=False, sort_keys=False), end='')
    return EXIT_SUCCESS


def run_version(args: argparse.Namespace) -> int:
    print(f"ldapenforcer {__version__}")
    return EXIT_SUCCESS


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        return args.handler(args)
    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        print(f"Configuration error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except TransportError as e:
        logger.error(f"LDAP connection error: {e}")
        print(f"LDAP connection error: {e}", file=sys.stderr)
        return EXIT_CONNECTION_ERROR
    except (ReconcileError, DirectoryError) as e:
        logger.error(f"Reconciliation failed: {e}")
        print(f"Reconciliation failed: {e}", file=sys.stderr)
        return EXIT_FAILURE
    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return EXIT_UNEXPECTED_ERROR


if __name__ == "__main__":
    sys.exit(main())
