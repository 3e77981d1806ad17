"""Shared fixtures: a VMConfig rooted in tmp_path and a fake driver."""
import json
import logging
import subprocess
from unittest.mock import MagicMock

import pytest

from kvminstall import config
from kvminstall.driver import VirshDriver

MAC = '52:54:00:aa:bb:cc'


def completed(returncode=0, stdout=''):
    return subprocess.CompletedProcess(args=[], returncode=returncode,
                                       stdout=stdout)


@pytest.fixture
def pubkey(tmp_path):
    key = tmp_path / 'id_rsa.pub'
    key.write_text('ssh-rsa AAAAB3Nza user@host\n')
    return key


@pytest.fixture
def leasedir(tmp_path):
    path = tmp_path / 'dnsmasq'
    path.mkdir()
    return path


@pytest.fixture
def imagedir(tmp_path):
    path = tmp_path / 'images'
    path.mkdir()
    (path / 'CentOS-7-x86_64-GenericCloud.qcow2').write_bytes(b'base image')
    return path


@pytest.fixture
def make_config(imagedir, pubkey, leasedir):
    def _make(name='foo', **overrides):
        settings = {'imagedir': str(imagedir), 'pubkey': str(pubkey),
                    'leasedir': str(leasedir), 'lease_timeout': 0,
                    'lease_interval': 0, 'user': 'tester'}
        settings.update(overrides)
        return config.resolve(name, settings)
    return _make


@pytest.fixture
def vmconfig(make_config):
    return make_config()


@pytest.fixture
def write_lease(leasedir):
    def _write(ip='192.168.122.50', mac=MAC, bridge='virbr0'):
        (leasedir / f'{bridge}.status').write_text(json.dumps([
            {'ip-address': ip, 'mac-address': mac, 'hostname': 'foo',
             'expiry-time': 1700000000}]))
    return _write


@pytest.fixture
def driver():
    fake = MagicMock(spec=VirshDriver)
    fake.domain_exists.return_value = False
    fake.pool_exists.return_value = False
    fake.install.return_value = completed()
    fake.destroy.return_value = completed(stdout='Domain foo destroyed')
    fake.undefine.return_value = completed(stdout='Domain foo has been undefined')
    fake.pool_destroy.return_value = completed(stdout='Pool foo destroyed')
    fake.pool_create.return_value = completed()
    fake.attach_disk.return_value = completed(stdout='Disk attached successfully')
    fake.eject.return_value = completed()
    fake.cdrom_target.return_value = 'sda'
    fake.mac_address.return_value = MAC
    fake.forget_host.return_value = completed()
    fake.list_domains.return_value = completed(stdout=' Id   Name   State\n')

    def create_image(path, size, fmt='qcow2', backing=None, backing_fmt='qcow2'):
        with open(path, 'wb') as writer:
            writer.write(b'new ' + size.encode())
        return completed()

    fake.create_image.side_effect = create_image
    fake.resize.return_value = completed()
    return fake


@pytest.fixture(autouse=True)
def reset_logging():
    """Drop stdout handlers added by the cli so they don't outlive capsys."""
    yield
    logger = logging.getLogger('kvminstall')
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
