'''
Base cloud images: which one belongs to which distro, and fetching it into
the local image cache.
'''
import os
import logging
import tempfile
from collections import namedtuple
import requests
from kvminstall.exceptions import ImageException, UnknownDistroException

LOGGER = logging.getLogger(__name__)
CHUNK_SIZE = 1024 * 1024

Distro = namedtuple('Distro', ['key', 'image', 'os_variant', 'url',
                               'login_user', 'family'])

DISTROS = {
    'centos7': Distro('centos7', 'CentOS-7-x86_64-GenericCloud.qcow2',
                      'centos7.0', 'https://cloud.centos.org/centos/7/images',
                      'centos', 'rhel'),
    'centos8': Distro('centos8', 'CentOS-Stream-GenericCloud-8-latest.x86_64.qcow2',
                      'centos-stream8',
                      'https://cloud.centos.org/centos/8-stream/x86_64/images',
                      'centos', 'rhel'),
    'centos9': Distro('centos9', 'CentOS-Stream-GenericCloud-9-latest.x86_64.qcow2',
                      'centos-stream9',
                      'https://cloud.centos.org/centos/9-stream/x86_64/images',
                      'cloud-user', 'rhel'),
    'fedora40': Distro('fedora40', 'Fedora-Cloud-Base-Generic.x86_64-40-1.14.qcow2',
                       'fedora40',
                       'https://download.fedoraproject.org/pub/fedora/linux/'
                       'releases/40/Cloud/x86_64/images',
                       'fedora', 'rhel'),
    'debian10': Distro('debian10', 'debian-10-generic-amd64.qcow2', 'debian10',
                       'https://cloud.debian.org/images/cloud/buster/latest',
                       'debian', 'debian'),
    'debian11': Distro('debian11', 'debian-11-generic-amd64.qcow2', 'debian11',
                       'https://cloud.debian.org/images/cloud/bullseye/latest',
                       'debian', 'debian'),
    'debian12': Distro('debian12', 'debian-12-generic-amd64.qcow2', 'debian12',
                       'https://cloud.debian.org/images/cloud/bookworm/latest',
                       'debian', 'debian'),
    'ubuntu2004': Distro('ubuntu2004', 'focal-server-cloudimg-amd64.img',
                         'ubuntu20.04',
                         'https://cloud-images.ubuntu.com/focal/current',
                         'ubuntu', 'debian'),
    'ubuntu2204': Distro('ubuntu2204', 'jammy-server-cloudimg-amd64.img',
                         'ubuntu22.04',
                         'https://cloud-images.ubuntu.com/jammy/current',
                         'ubuntu', 'debian'),
    'ubuntu2404': Distro('ubuntu2404', 'noble-server-cloudimg-amd64.img',
                         'ubuntu24.04',
                         'https://cloud-images.ubuntu.com/noble/current',
                         'ubuntu', 'debian'),
    'opensuse15': Distro('opensuse15', 'openSUSE-Leap-15.6.x86_64-NoCloud.qcow2',
                         'opensuse15.6',
                         'https://download.opensuse.org/repositories/Cloud:/'
                         'Images:/Leap_15.6/images',
                         'opensuse', 'suse'),
}

# sudo group, network restart, cloud-init removal per distro family
FAMILIES = {
    'rhel': ('wheel', 'systemctl restart NetworkManager',
             'yum -y remove cloud-init'),
    'debian': ('sudo', 'systemctl restart networking',
               'apt-get -y purge cloud-init'),
    'suse': ('wheel', 'systemctl restart wicked',
             'zypper -n remove cloud-init'),
}


def lookup(key):
    '''
    Return the Distro for key.
    '''
    try:
        return DISTROS[key]
    except KeyError:
        raise UnknownDistroException(
            f"Unsupported distribution '{key}'. Supported: "
            f"{', '.join(sorted(DISTROS))}") from None


def custom(path, login_user):
    '''
    Describe a user supplied image. libvirt guesses the os variant.
    '''
    if not os.path.isfile(path):
        raise ImageException(f'Custom image {path} does not exist.')
    return Distro('custom', os.path.basename(path), 'auto',
                  None, login_user, 'rhel')


# image file extension -> qemu-img format
FORMATS = {
    '.qcow2': 'qcow2',
    '.qcow': 'qcow',
    '.raw': 'raw',
    '.vmdk': 'vmdk',
    '.vdi': 'vdi',
    '.vhdx': 'vhdx',
}


def image_format(path):
    '''
    Guess the qemu-img format of an image from its extension.
    '''
    ext = os.path.splitext(path)[1].lower()
    try:
        return FORMATS[ext]
    except KeyError:
        raise ImageException(
            f"Can't tell the format of {path} from its extension, pass it "
            f"explicitly (-F qcow2, -F raw, ...).") from None


def image_path(distro, imagedir):
    return os.path.join(imagedir, distro.image)


def fetch(distro, imagedir, session=None):
    '''
    Make sure the base image for distro is in imagedir and return its path.
    Images already present are reused as they are; nothing is verified.
    '''
    path = image_path(distro, imagedir)
    if os.path.isfile(path):
        LOGGER.info('%s : cloud image found at %s', distro.key, path)
        return path

    os.makedirs(imagedir, exist_ok=True)
    url = f'{distro.url}/{distro.image}'
    LOGGER.info('%s : cloud image not found, downloading %s', distro.key, url)
    session = session or requests.Session()
    fd, tmppath = tempfile.mkstemp(dir=imagedir, prefix=f'.{distro.image}.')
    try:
        with os.fdopen(fd, 'wb') as writer, \
                session.get(url, stream=True, timeout=60) as response:
            response.raise_for_status()
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                writer.write(chunk)
        os.replace(tmppath, path)
    except (requests.RequestException, IOError) as err:
        LOGGER.critical('%s : failure downloading %s. %s', distro.key, url, err)
        if os.path.exists(tmppath):
            os.remove(tmppath)
        raise ImageException(f'Unable to download {url}: {err}') from err
    LOGGER.info('%s : downloaded cloud image to %s', distro.key, path)
    return path
