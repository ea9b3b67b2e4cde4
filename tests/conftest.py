#!/usr/bin/env python3
# conftest.py - vSwitch Promiscuous Mode Tool Pytest Configuration and Fixtures
# Version 1.0 - October 2026
# Shared fixtures for all test modules

import pytest
import os
import sys
import tempfile
from unittest.mock import MagicMock
from configparser import ConfigParser
from pyVmomi import vim

# Add parent directory to path for imports
parent_dir = os.path.dirname(os.path.dirname(os.path.abspath(__file__)))
sys.path.insert(0, parent_dir)

import vswfunctions as vsf
from vswfunctions import (
    Datacenter,
    DisconnectError,
    Host,
    ListingError,
    MutationError,
    StaticCredentials,
    Switch,
    VCConnectionError,
)

#==============================================================================
# FAKE MANAGEMENT CLIENT
#==============================================================================

class FakeClient:
    """
    In-memory ManagementClient

    inventory maps datacenter name -> list of (Host, [switch specs]) where a
    switch spec is (name, allow_promiscuous). Failure knobs:
        bad_login       - authenticate raises VCConnectionError
        bad_datacenters - names whose host listing raises ListingError
        bad_hosts       - names whose switch listing raises ListingError
        bad_switches    - labels whose set raises MutationError
        bad_logout      - logout raises DisconnectError
        explode_on_host - list_standard_switches raises RuntimeError for this host
    """

    def __init__(self, inventory=None):
        self.inventory = inventory or {}
        self.bad_login = False
        self.bad_datacenters = set()
        self.bad_hosts = set()
        self.bad_switches = set()
        self.bad_logout = False
        self.explode_on_host = None
        self.session = object()
        self.calls = []
        self.logouts = 0
        self.switches = {}

        for dc_name, hosts in self.inventory.items():
            for host, specs in hosts:
                self.switches[host.name] = [
                    Switch(name=name, host=host, allow_promiscuous=value)
                    for name, value in specs
                ]

    def authenticate(self, server, username, password):
        self.calls.append(('authenticate', server, username))
        if self.bad_login:
            raise VCConnectionError(f'Failed to connect to {server}: InvalidLogin')
        return self.session

    def list_datacenters(self, si):
        self.calls.append(('list_datacenters',))
        return [Datacenter(name=name) for name in self.inventory]

    def list_hosts(self, si, datacenter):
        self.calls.append(('list_hosts', datacenter.name))
        if datacenter.name in self.bad_datacenters:
            raise ListingError(f'Unable to list hosts in {datacenter.name}')
        return [host for host, _ in self.inventory[datacenter.name]]

    def list_standard_switches(self, si, host):
        self.calls.append(('list_standard_switches', host.name))
        if host.name == self.explode_on_host:
            raise RuntimeError('unexpected fault')
        if host.name in self.bad_hosts:
            raise ListingError(f'Unable to list standard switches on {host.name}')
        return list(self.switches[host.name])

    def get_promiscuous_mode(self, switch):
        return switch.allow_promiscuous

    def set_promiscuous_mode(self, switch, value):
        self.calls.append(('set_promiscuous_mode', switch.label, value))
        if switch.label in self.bad_switches:
            raise MutationError(f'Unable to update {switch.label}')
        switch.allow_promiscuous = value

    def logout(self, si):
        self.logouts += 1
        self.calls.append(('logout',))
        if self.bad_logout:
            raise DisconnectError('Logout failed: session already gone')

    def set_calls(self):
        return [c for c in self.calls if c[0] == 'set_promiscuous_mode']

#==============================================================================
# FIXTURES - Output
#==============================================================================

@pytest.fixture(autouse=True)
def quiet_output(monkeypatch):
    """Keep write_output off disk and capture its messages"""
    messages = []
    monkeypatch.setattr(vsf, 'logfiles', [])
    monkeypatch.setattr(vsf, 'console_output', False)
    original = vsf.write_output

    def capture(msg, **kwargs):
        messages.append(str(msg))
        original(msg, **kwargs)

    monkeypatch.setattr(vsf, 'write_output', capture)
    return messages


@pytest.fixture(autouse=True)
def clean_config(monkeypatch):
    """Give every test an empty module-level ConfigParser"""
    monkeypatch.setattr(vsf, 'config', ConfigParser())

#==============================================================================
# FIXTURES - Inventory
#==============================================================================

@pytest.fixture
def credentials():
    return StaticCredentials('administrator@vsphere.local', 'MOCK_PW_CHECK_VALUE')


@pytest.fixture
def two_host_client():
    """One datacenter, two connected hosts, one rejecting switch each"""
    return FakeClient({
        'Datacenter-A': [
            (Host('esx-01a.site-a.vcf.lab'), [('vSwitch0', False)]),
            (Host('esx-02a.site-a.vcf.lab'), [('vSwitch0', False)]),
        ]
    })


@pytest.fixture
def fake_client_factory():
    return FakeClient

#==============================================================================
# FIXTURES - pyVmomi objects
#==============================================================================

@pytest.fixture
def mock_vswitch():
    """A real vim.host.VirtualSwitch rejecting promiscuous mode"""
    security = vim.host.NetworkPolicy.SecurityPolicy(
        allowPromiscuous=False, macChanges=False, forgedTransmits=True)
    spec = vim.host.VirtualSwitch.Specification(
        numPorts=128, mtu=1500, policy=vim.host.NetworkPolicy(security=security))
    return vim.host.VirtualSwitch(name='vSwitch0', key='key-vim.host.VirtualSwitch-vSwitch0',
                                  numPorts=128, mtu=1500, spec=spec)


@pytest.fixture
def mock_host_system(mock_vswitch):
    """A vim.HostSystem-shaped mock with one standard vSwitch"""
    host_system = MagicMock()
    host_system.name = 'esx-01a.site-a.vcf.lab'
    host_system.runtime.connectionState = 'connected'
    host_system.configManager.networkSystem.networkInfo.vswitch = [mock_vswitch]
    return host_system


@pytest.fixture
def mock_si(mock_host_system):
    """A ServiceInstance mock whose container views return one datacenter/host"""
    si = MagicMock()
    datacenter = MagicMock()
    datacenter.name = 'Datacenter-A'

    views = {}

    def create_view(root, vimtype, recursive):
        view = MagicMock()
        if root is si.RetrieveContent.return_value.rootFolder:
            view.view = [datacenter]
        else:
            view.view = [mock_host_system]
        views.setdefault('created', []).append(view)
        return view

    si.RetrieveContent.return_value.viewManager.CreateContainerView.side_effect = create_view
    si.views = views
    si.datacenter = datacenter
    return si

#==============================================================================
# FIXTURES - File System
#==============================================================================

@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files"""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield tmpdir


@pytest.fixture
def temp_config_ini(temp_dir):
    """Create a temporary config.ini file"""
    config_path = os.path.join(temp_dir, 'config.ini')

    config = ConfigParser()
    config.add_section('VSPHERE')
    config.set('VSPHERE', 'server', 'vcsa-01a.site-a.vcf.lab')
    config.set('VSPHERE', 'username', 'administrator@vsphere.local')
    config.set('VSPHERE', 'port', '8443')
    config.set('VSPHERE', 'dry_run', 'true')
    config.set('VSPHERE', 'verify_ssl', '#true')
    config.set('VSPHERE', 'logfile', os.path.join(temp_dir, 'logs', 'promisc.log'))

    with open(config_path, 'w') as f:
        config.write(f)

    return config_path

#==============================================================================
# MARKERS
#==============================================================================

def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests that need a live vCenter"
    )
