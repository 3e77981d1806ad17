'''Finding the address libvirt's dnsmasq handed out to a new vm.'''
import os
import json
import time
import logging
from kvminstall.exceptions import LeaseTimeoutException

LOGGER = logging.getLogger(__name__)


def status_file(leasedir, bridge):
    return os.path.join(leasedir, f'{bridge}.status')


def find_lease(path, mac):
    '''
    Return the ip address leased to mac according to the dnsmasq status
    file at path, or None.
    '''
    try:
        with open(path, 'r') as reader:
            leases = json.load(reader)
    except FileNotFoundError:
        return None
    except ValueError:
        # dnsmasq rewrites the file in place; try again next round
        LOGGER.debug('unable to parse %s, retrying', path)
        return None
    mac = mac.lower()
    for lease in leases:
        if lease.get('mac-address', '').lower() == mac:
            return lease.get('ip-address')
    return None


def wait_for_ip(config, mac, sleep=time.sleep, clock=time.monotonic):
    '''
    Poll the lease table until mac shows up or config.lease_timeout
    seconds have gone by.
    '''
    path = status_file(config.leasedir, config.bridge)
    deadline = clock() + config.lease_timeout
    LOGGER.info('%s : waiting for a dhcp lease for %s in %s', config.name,
                mac, path)
    while True:
        address = find_lease(path, mac)
        if address:
            LOGGER.info('%s : got ip address %s', config.name, address)
            return address
        if clock() >= deadline:
            raise LeaseTimeoutException(
                f'{config.name} : no dhcp lease for {mac} after '
                f'{config.lease_timeout}s.')
        sleep(config.lease_interval)
