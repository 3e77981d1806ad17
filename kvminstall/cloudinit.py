'''
cloud-init nocloud data: the user-data/meta-data documents and the
"cidata" seed iso that carries them into the guest.
'''
import os
import logging
from io import BytesIO
import pycdlib
import yaml
from kvminstall.images import FAMILIES

LOGGER = logging.getLogger(__name__)
USERDATA = 'user-data'
METADATA = 'meta-data'
# iso9660 name, joliet/rock ridge name
ISO_NAMES = {USERDATA: '/USERDATA.;1', METADATA: '/METADATA.;1'}


def build_userdata(config, distro, pubkey):
    '''
    Return the user-data settings as a dict.
    '''
    sudogroup, netrestart, cloudinit_remove = FAMILIES[distro.family]
    return {
        'preserve_hostname': False,
        'hostname': config.name,
        'fqdn': config.fqdn,
        'users': [
            'default',
            {'name': distro.login_user,
             'groups': [sudogroup],
             'shell': '/bin/bash',
             'sudo': 'ALL=(ALL) NOPASSWD:ALL',
             'ssh_authorized_keys': [pubkey]},
        ],
        'output': {'all': '>> /var/log/cloud-init.log'},
        'ssh_genkeytypes': ['ed25519', 'rsa'],
        'ssh_authorized_keys': [pubkey],
        'timezone': config.timezone,
        'runcmd': [netrestart, cloudinit_remove],
    }


def render_userdata(config, distro, pubkey):
    return '#cloud-config\n' + yaml.safe_dump(
        build_userdata(config, distro, pubkey),
        default_flow_style=False, sort_keys=False)


def render_metadata(config):
    return yaml.safe_dump({'instance-id': config.name,
                           'local-hostname': config.name},
                          default_flow_style=False, sort_keys=False)


def write_documents(workdir, userdata, metadata):
    '''
    Write user-data and meta-data into workdir, return {name: path}.
    '''
    paths = {}
    for name, content in ((USERDATA, userdata), (METADATA, metadata)):
        paths[name] = os.path.join(workdir, name)
        with open(paths[name], 'w') as writer:
            writer.write(content)
    return paths


def create_iso(isopath, documents):
    '''
    create a nocloud seed iso out of {name: path} documents.
    '''
    iso = pycdlib.PyCdlib()
    # Set label to "cidata"
    iso.new(interchange_level=3,
            joliet=3,
            rock_ridge='1.09',
            sys_ident='LINUX',
            vol_ident='cidata'
           )
    for name, path in sorted(documents.items()):
        with open(path, 'rb') as reader:
            content = reader.read()
        iso.add_fp(BytesIO(content), len(content), ISO_NAMES[name],
                   rr_name=name, joliet_path=f'/{name}')
    try:
        iso.write(isopath)
    except IOError:
        LOGGER.critical('failed to create nocloud iso at %s', isopath)
        raise
    finally:
        iso.close()
    LOGGER.info('created nocloud iso at %s', isopath)
    return isopath
