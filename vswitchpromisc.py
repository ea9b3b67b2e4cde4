#!/usr/bin/env python3
# vswitchpromisc.py - vSwitch Promiscuous Mode Tool
# Version 1.0 - October 2026
# Sets allowPromiscuous on every standard vSwitch of every connected host

"""
vSwitch Promiscuous Mode Tool

Logs into a vCenter (or ESXi host) and walks every datacenter, host and
standard vSwitch:
1. Hosts that are not connected are skipped
2. Switches already accepting promiscuous mode are left alone
3. Remaining switches are set to accept promiscuous mode

Usage:
    python3 vswitchpromisc.py vcsa-01a.site-a.vcf.lab
    python3 vswitchpromisc.py vcsa-01a.site-a.vcf.lab --dry-run
    python3 vswitchpromisc.py vcsa-01a.site-a.vcf.lab -u administrator@vsphere.local
"""

import sys
import argparse
import logging
from dataclasses import dataclass

import vswfunctions as vsf
from vswfunctions import (
    CredentialProvider,
    ListingError,
    PromptCredentials,
    VCConnectionError,
    VSphereClient,
    VSwitchToolError,
)

logger = logging.getLogger(__name__)

#==============================================================================
# SCRIPT CONFIGURATION
#==============================================================================

SCRIPT_NAME = 'vswitch-promisc'
SCRIPT_VERSION = '1.0'
SCRIPT_DESCRIPTION = 'Standard vSwitch Promiscuous Mode Tool'

# Per-switch outcomes
CHANGED = 'changed'
UNCHANGED = 'unchanged'
FAILED = 'failed'

#==============================================================================
# RESULT ACCUMULATOR
#==============================================================================

@dataclass
class RunResult:
    """Counters accumulated over one traversal"""
    dry_run: bool = False
    hosts_processed: int = 0
    hosts_skipped: int = 0
    switches_found: int = 0
    switches_changed: int = 0
    switches_unchanged: int = 0
    switches_failed: int = 0
    errors: int = 0

    def record(self, outcome: str) -> None:
        if outcome == CHANGED:
            self.switches_changed += 1
        elif outcome == UNCHANGED:
            self.switches_unchanged += 1
        else:
            self.switches_failed += 1

#==============================================================================
# SWITCH POLICY
#==============================================================================

def check_promiscuous(client, switch, dry_run: bool = False) -> str:
    """
    Bring one switch to allowPromiscuous=True

    :param client: ManagementClient
    :param switch: Switch to check
    :param dry_run: If True, report but don't change
    :return: CHANGED, UNCHANGED or FAILED
    """
    try:
        current = client.get_promiscuous_mode(switch)
    except Exception as e:
        vsf.write_output(f'WARNING: {switch.label}: unable to read security policy - {e}')
        return FAILED

    if current:
        vsf.write_output(f'{switch.label}: promiscuous mode already accepted, no change needed')
        return UNCHANGED

    if dry_run:
        vsf.write_output(f'{switch.label}: would change allowPromiscuous False -> True')
        return CHANGED

    try:
        client.set_promiscuous_mode(switch, True)
    except Exception as e:
        vsf.write_output(f'WARNING: {switch.label}: {e}')
        return FAILED

    vsf.write_output(f'{switch.label}: changed allowPromiscuous False -> True')
    return CHANGED


def apply_promiscuous(client, switch, dry_run: bool = False) -> bool:
    """True when the switch was changed (or would be under dry-run)"""
    return check_promiscuous(client, switch, dry_run) == CHANGED

#==============================================================================
# TRAVERSAL
#==============================================================================

def process_host(client, si, host, result: RunResult) -> None:
    if not host.connected:
        vsf.write_output(f'{host.name}: skipping, host is {host.connection_state}')
        result.hosts_skipped += 1
        return

    try:
        switches = client.list_standard_switches(si, host)
    except ListingError as e:
        vsf.write_output(f'WARNING: {e}')
        result.errors += 1
        return

    result.switches_found += len(switches)
    vsf.write_output(f'{host.name}: {len(switches)} standard switch(es)')

    for switch in switches:
        result.record(check_promiscuous(client, switch, result.dry_run))


def run(client, server: str, credentials: CredentialProvider,
        dry_run: bool = False) -> RunResult:
    """
    Walk the inventory and accept promiscuous mode on every standard vSwitch

    :param client: ManagementClient (VSphereClient in production)
    :param server: vCenter/ESXi address
    :param credentials: CredentialProvider for the login
    :param dry_run: If True, report intended changes only
    :return: RunResult
    :raises VCConnectionError: if the login fails (nothing is traversed)
    """
    username = credentials.get_username()
    password = credentials.get_password()

    si = client.authenticate(server, username, password)

    try:
        vsf.write_output(f'Connected to {server} as {username}')
        result = RunResult(dry_run=dry_run)
        for dc in client.list_datacenters(si):
            vsf.write_output(f'Datacenter: {dc.name}')
            try:
                hosts = client.list_hosts(si, dc)
            except ListingError as e:
                vsf.write_output(f'WARNING: {e}')
                result.errors += 1
                continue

            result.hosts_processed += len(hosts)
            for host in hosts:
                process_host(client, si, host, result)
        return result
    finally:
        try:
            client.logout(si)
            logger.debug(f'Disconnected from {server}')
        except Exception as e:
            vsf.write_output(f'WARNING: {e}')

#==============================================================================
# REPORTING
#==============================================================================

def print_summary(result: RunResult) -> None:
    changed_label = 'Switches that would change' if result.dry_run else 'Switches changed'

    vsf.write_output('')
    vsf.write_output('=' * 60)
    vsf.write_output('Summary' + (' (DRY RUN)' if result.dry_run else ''))
    vsf.write_output('=' * 60)
    vsf.write_output(f'  Hosts processed: {result.hosts_processed}')
    vsf.write_output(f'  Hosts skipped (not connected): {result.hosts_skipped}')
    vsf.write_output(f'  Switches found: {result.switches_found}')
    vsf.write_output(f'  {changed_label}: {result.switches_changed}')
    vsf.write_output(f'  Switches unchanged: {result.switches_unchanged}')
    vsf.write_output(f'  Switch update failures: {result.switches_failed}')
    vsf.write_output(f'  Errors: {result.errors}')

#==============================================================================
# MAIN FUNCTION
#==============================================================================

def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog=SCRIPT_NAME,
        description=SCRIPT_DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  vswitch-promisc vcsa-01a.site-a.vcf.lab             Apply to all hosts
  vswitch-promisc vcsa-01a.site-a.vcf.lab --dry-run   Show what would be done
  vswitch-promisc --config lab.ini                    Server taken from config

Configuration ([VSPHERE] section of config.ini):
  server, username, port, verify_ssl, creds_file, dry_run, logfile, timeout
"""
    )

    parser.add_argument('server', nargs='?',
                        help='vCenter or ESXi address')
    parser.add_argument('--username', '-u',
                        help='Login user (prompted if absent)')
    parser.add_argument('--password', '-p',
                        help='Login password (creds file or prompt if absent)')
    parser.add_argument('--dry-run', '-n', action=argparse.BooleanOptionalAction,
                        default=None,
                        help='Show what would be done without making changes '
                             '(--no-dry-run overrides dry_run in the config)')
    parser.add_argument('--port', type=int, default=None,
                        help=f'HTTPS port (default {vsf.vcport})')
    parser.add_argument('--config', '-c', default=None,
                        help=f'INI configuration file (default ./{vsf.configname})')
    parser.add_argument('--logfile', default=None,
                        help=f'Log file (default {vsf.logfile})')
    parser.add_argument('--debug', '-d', action='store_true',
                        help='Enable debug logging')
    parser.add_argument('--version', '-v', action='version',
                        version=f'{SCRIPT_NAME} v{SCRIPT_VERSION}')

    args = parser.parse_args(argv)
    return parser, args


def main(argv=None) -> int:
    """Main entry point, returns the process exit code"""
    parser, args = parse_args(argv)

    if args.debug:
        logging.basicConfig(
            level=logging.DEBUG, force=True,
            format='[%(asctime)s] %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    vsf.init(args.config, logfile=args.logfile)
    section = vsf.config_section

    server = args.server or vsf.get_config_value(section, 'server')
    if not server:
        parser.error('a server address is required (argument or [VSPHERE] server)')

    dry_run = args.dry_run
    if dry_run is None:
        dry_run = vsf.get_config_bool(section, 'dry_run')
    port = args.port or vsf.get_config_int(section, 'port', vsf.vcport)
    verify_ssl = vsf.get_config_bool(section, 'verify_ssl')

    credentials = PromptCredentials(
        username=args.username or vsf.get_config_value(section, 'username'),
        password=args.password,
        creds_file=vsf.get_config_value(section, 'creds_file', vsf.creds),
        server=server
    )

    vsf.write_output('=' * 60)
    vsf.write_output(f'  {SCRIPT_DESCRIPTION}')
    vsf.write_output(f'  Version {SCRIPT_VERSION}')
    vsf.write_output('=' * 60)
    if dry_run:
        vsf.write_output('DRY RUN MODE - No changes will be made')

    try:
        client = VSphereClient(port=port, verify_ssl=verify_ssl)
        result = run(client, server, credentials, dry_run=dry_run)
    except VCConnectionError as e:
        vsf.write_output(f'ERROR: {e}')
        return 1
    except KeyboardInterrupt:
        vsf.write_output('Interrupted by user')
        return 130
    except VSwitchToolError as e:
        vsf.write_output(f'FATAL ERROR: {e}')
        return 1
    except Exception as e:
        vsf.write_output(f'FATAL ERROR: {e}')
        if args.debug:
            logger.exception('Unhandled error')
        return 1

    print_summary(result)
    return 0


def cli():
    sys.exit(main())


if __name__ == '__main__':
    cli()
