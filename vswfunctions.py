# vswfunctions.py - vSwitch Promiscuous Mode Core Functions Library
# Version 1.0 - October 2026
# Configuration, output, credentials and vSphere inventory access shared by
# the vSwitch promiscuous mode tool

import os
import socket
import datetime
import getpass
import logging
import urllib3
from dataclasses import dataclass, field
from typing import Any, List
from configparser import ConfigParser
from pyVim import connect
from pyVmomi import vim

# Default logging level is WARNING (other levels are DEBUG, INFO, ERROR and CRITICAL)
logging.basicConfig(
    level=logging.WARNING,
    format='[%(asctime)s] %(levelname)s - %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)

#==============================================================================
# STATIC VARIABLES
#==============================================================================

home = os.path.expanduser('~')
configname = 'config.ini'
configini = os.path.join(os.getcwd(), configname)
creds = f'{home}/creds.txt'
config_section = 'VSPHERE'

# Log file name
logfile = 'vswitch-promisc.log'
logfiles = [logfile]

vcport = 443

# Host connection state that allows reconfiguration
HOST_CONNECTED = 'connected'

# Config parser
config = ConfigParser()

# Console output flag
console_output = True

#==============================================================================
# EXCEPTIONS
#==============================================================================

class VSwitchToolError(Exception):
    """Base exception for the vSwitch promiscuous mode tool"""
    pass


class VCConnectionError(VSwitchToolError, ConnectionError):
    """Authentication or connection to the vSphere server failed"""
    pass


class ListingError(VSwitchToolError):
    """Listing datacenters, hosts or switches failed"""
    pass


class MutationError(VSwitchToolError):
    """Updating a switch security policy failed"""
    pass


class DisconnectError(VSwitchToolError):
    """Logging out of the vSphere server failed"""
    pass

#==============================================================================
# INITIALIZATION
#==============================================================================

def init(config_file: str = None, **kwargs) -> bool:
    """
    Initialize the vswfunctions module

    :param config_file: Path to the INI file (defaults to ./config.ini)
    :param kwargs:
        logfile - override the configured log file
        console - enable/disable console output
    :return: True if a config file was read
    """
    global logfiles, console_output

    config_file = config_file or configini
    loaded = False
    if os.path.isfile(config_file):
        config.read(config_file)
        loaded = True
        logger.debug(f'Read configuration from {config_file}')
    else:
        logger.debug(f'No configuration file at {config_file}')

    lfile = kwargs.get('logfile') or get_config_value(config_section, 'logfile', logfile)
    logfiles = [lfile] if lfile else []

    if 'console' in kwargs:
        console_output = bool(kwargs['console'])

    timeout = get_config_value(config_section, 'timeout')
    if timeout:
        try:
            socket.setdefaulttimeout(float(timeout))
        except ValueError:
            logger.warning(f'Ignoring invalid timeout value: {timeout}')

    return loaded

#==============================================================================
# CONFIG HELPER FUNCTIONS
#==============================================================================

def get_config_value(section: str, option: str, fallback: str = '') -> str:
    """
    Get a config option value, returning fallback if commented out.

    If the value itself starts with '#' or ';', it's treated as if
    the option doesn't exist (returns fallback).

    :param section: Config section name
    :param option: Config option name
    :param fallback: Default value if option doesn't exist or is commented
    :return: Config value or fallback
    """
    if not config.has_option(section, option):
        return fallback

    value = config.get(section, option).strip()

    if not value or value.startswith('#') or value.startswith(';'):
        return fallback

    return value


def get_config_bool(section: str, option: str, fallback: bool = False) -> bool:
    """Get a config option as a boolean (true/yes/on/1)"""
    value = get_config_value(section, option)
    if not value:
        return fallback
    return value.lower() in ('true', 'yes', 'on', '1')


def get_config_int(section: str, option: str, fallback: int = 0) -> int:
    """Get a config option as an integer"""
    value = get_config_value(section, option)
    if not value:
        return fallback
    try:
        return int(value)
    except ValueError:
        logger.warning(f'Ignoring invalid integer for {section}/{option}: {value}')
        return fallback

#==============================================================================
# OUTPUT AND LOGGING
#==============================================================================

def write_output(msg, **kwargs):
    """
    Write output to log files and optionally to console

    :param msg: Message to write
    :param kwargs:
        logfile - specific logfile path
        console - override console output setting (True/False)
    """
    timestamp = datetime.datetime.now().strftime('%Y-%m-%d %H:%M:%S')
    formatted_msg = f'[{timestamp}] {msg}'

    lfile = kwargs.get('logfile', None)
    print_to_console = kwargs.get('console', console_output)

    for lf in ([lfile] if lfile else logfiles):
        try:
            log_dir = os.path.dirname(lf)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            with open(lf, 'a') as f:
                f.write(formatted_msg + '\n')
        except OSError as e:
            logger.debug(f'Error writing to {lf}: {e}')

    if print_to_console:
        print(formatted_msg)

#==============================================================================
# CREDENTIALS
#==============================================================================

def read_password_file(path: str) -> str:
    """
    Read a password from a creds file

    :param path: Path to the creds file
    :return: Password string, or empty string if not found
    """
    if path and os.path.isfile(path):
        with open(path, 'r') as f:
            return f.read().strip()
    return ''


class CredentialProvider:
    """Supplies the username and password used to log in"""

    def get_username(self) -> str:
        raise NotImplementedError

    def get_password(self) -> str:
        raise NotImplementedError


class StaticCredentials(CredentialProvider):
    """Credentials known up front"""

    def __init__(self, username: str, password: str):
        self.username = username
        self.password = password

    def get_username(self) -> str:
        return self.username

    def get_password(self) -> str:
        return self.password


class PromptCredentials(CredentialProvider):
    """
    Credentials taken from the command line, a creds file, or an interactive prompt

    A value passed in is used as-is. A missing password is read from
    creds_file when that file exists, otherwise prompted without echo.
    A missing username is prompted. Resolved values are cached.
    """

    def __init__(self, username: str = None, password: str = None,
                 creds_file: str = None, server: str = ''):
        self.username = username
        self.password = password
        self.creds_file = creds_file
        self.server = server

    def get_username(self) -> str:
        if not self.username:
            target = f' for {self.server}' if self.server else ''
            self.username = input(f'Username{target}: ').strip()
        return self.username

    def get_password(self) -> str:
        if not self.password:
            self.password = read_password_file(self.creds_file)
            if self.password:
                logger.debug(f'Password read from {self.creds_file}')
        if not self.password:
            self.password = getpass.getpass(f'Password for {self.get_username()}: ')
        return self.password

#==============================================================================
# INVENTORY MODEL
#==============================================================================

@dataclass
class Datacenter:
    """A vSphere datacenter"""
    name: str
    ref: Any = field(default=None, repr=False)


@dataclass
class Host:
    """An ESXi host and its connection state"""
    name: str
    connection_state: str = HOST_CONNECTED
    ref: Any = field(default=None, repr=False)

    @property
    def connected(self) -> bool:
        return self.connection_state == HOST_CONNECTED


@dataclass
class Switch:
    """A standard vSwitch on a host"""
    name: str
    host: Host
    allow_promiscuous: bool = False
    ref: Any = field(default=None, repr=False)

    @property
    def label(self) -> str:
        return f'{self.host.name}/{self.name}'

#==============================================================================
# VSPHERE OPERATIONS
#==============================================================================

def get_all_objs(si, root, vimtype) -> list:
    """
    Return the objects of type vimtype below root, in server order

    :param si: ServiceInstance
    :param root: Container to search (rootFolder, hostFolder, ...)
    :param vimtype: VIM object type name (list)
    :return: list of managed objects
    """
    content = si.RetrieveContent()
    container = content.viewManager.CreateContainerView(root, vimtype, True)
    try:
        return list(container.view)
    finally:
        container.Destroy()


class VSphereClient:
    """
    Thin pyVmomi client for the inventory and vSwitch policy operations

    All pyVmomi faults are translated into the module exceptions so callers
    never deal with vmodl faults directly.
    """

    def __init__(self, port: int = vcport, verify_ssl: bool = False):
        self.port = port
        self.verify_ssl = verify_ssl
        if not verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def authenticate(self, server: str, username: str, password: str):
        """
        Connect to a vCenter or ESXi host

        :param server: vCenter/ESXi hostname
        :param username: Username
        :param password: Password
        :return: ServiceInstance
        :raises VCConnectionError: if the login fails
        """
        try:
            si = connect.SmartConnect(
                host=server,
                user=username,
                pwd=password,
                port=self.port,
                disableSslCertValidation=not self.verify_ssl
            )
        except Exception as e:
            logger.debug(f'SmartConnect to {server} failed: {e!r}')
            raise VCConnectionError(f'Failed to connect to {server}: {_fault_msg(e)}') from e
        if si is None:
            raise VCConnectionError(f'Failed to connect to {server}')
        return si

    def logout(self, si) -> None:
        """Disconnect the session"""
        try:
            connect.Disconnect(si)
        except Exception as e:
            raise DisconnectError(f'Logout failed: {_fault_msg(e)}') from e

    def list_datacenters(self, si) -> List[Datacenter]:
        try:
            content = si.RetrieveContent()
            dcs = get_all_objs(si, content.rootFolder, [vim.Datacenter])
            return [Datacenter(name=dc.name, ref=dc) for dc in dcs]
        except Exception as e:
            raise ListingError(f'Unable to list datacenters: {_fault_msg(e)}') from e

    def list_hosts(self, si, datacenter: Datacenter) -> List[Host]:
        try:
            hosts = get_all_objs(si, datacenter.ref.hostFolder, [vim.HostSystem])
            return [Host(name=h.name,
                         connection_state=str(h.runtime.connectionState),
                         ref=h)
                    for h in hosts]
        except Exception as e:
            raise ListingError(
                f'Unable to list hosts in {datacenter.name}: {_fault_msg(e)}') from e

    def list_standard_switches(self, si, host: Host) -> List[Switch]:
        try:
            network_system = host.ref.configManager.networkSystem
            vswitches = network_system.networkInfo.vswitch or []
            return [Switch(name=vs.name, host=host,
                           allow_promiscuous=_read_promiscuous(vs),
                           ref=vs)
                    for vs in vswitches]
        except Exception as e:
            raise ListingError(
                f'Unable to list standard switches on {host.name}: {_fault_msg(e)}') from e

    def get_promiscuous_mode(self, switch: Switch) -> bool:
        if switch.ref is not None:
            switch.allow_promiscuous = _read_promiscuous(switch.ref)
        return switch.allow_promiscuous

    def set_promiscuous_mode(self, switch: Switch, value: bool) -> None:
        """
        Push a vSwitch spec with allowPromiscuous set to value

        The cached switch spec is only replaced once the host accepts the
        update, so a rejected update leaves the local view matching the host.

        :raises MutationError: if the host rejects the update
        """
        try:
            spec = _promiscuous_spec(switch.ref.spec, value)
            network_system = switch.host.ref.configManager.networkSystem
            network_system.UpdateVirtualSwitch(vswitchName=switch.name, spec=spec)
        except Exception as e:
            logger.debug(f'UpdateVirtualSwitch on {switch.label} failed: {e!r}')
            raise MutationError(f'Unable to update {switch.label}: {_fault_msg(e)}') from e
        switch.ref.spec = spec
        switch.allow_promiscuous = value


def _promiscuous_spec(current, value: bool):
    """
    Build a new vSwitch spec from current with allowPromiscuous set to value

    :param current: vim.host.VirtualSwitch.Specification in use on the host
    :param value: allowPromiscuous value to push
    :return: new vim.host.VirtualSwitch.Specification
    """
    policy = current.policy
    security = policy.security if policy is not None else None

    new_security = vim.host.NetworkPolicy.SecurityPolicy(
        allowPromiscuous=value,
        macChanges=security.macChanges if security is not None else None,
        forgedTransmits=security.forgedTransmits if security is not None else None
    )
    new_policy = vim.host.NetworkPolicy(security=new_security)
    if policy is not None:
        new_policy.nicTeaming = policy.nicTeaming
        new_policy.offloadPolicy = policy.offloadPolicy
        new_policy.shapingPolicy = policy.shapingPolicy

    return vim.host.VirtualSwitch.Specification(
        numPorts=current.numPorts,
        bridge=current.bridge,
        mtu=current.mtu,
        policy=new_policy
    )


def _read_promiscuous(vswitch) -> bool:
    # An unset security policy inherits reject
    policy = getattr(vswitch.spec, 'policy', None)
    security = getattr(policy, 'security', None) if policy is not None else None
    if security is None:
        return False
    return bool(security.allowPromiscuous)


def _fault_msg(e: Exception) -> str:
    """Prefer the vmodl fault message over the repr"""
    msg = getattr(e, 'msg', None)
    return msg if isinstance(msg, str) and msg else str(e)
