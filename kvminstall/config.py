'''
Default settings, the optional ~/.kivrc overlay and the per-invocation
VMConfig record built from them.
'''
import os
import getpass
import logging
from dataclasses import dataclass, fields
import yaml
from kvminstall.exceptions import ConfigException

LOGGER = logging.getLogger(__name__)
DEFAULT_CONFIGFILE = os.path.expanduser('~/.kivrc')

DEFAULTS = {
    'cpus': 1,
    'memory': 1024,
    'disk_size': 10,
    'bridge': 'virbr0',
    'imagedir': '~/virt/images',
    'pubkey': '~/.ssh/id_rsa.pub',
    'distro': 'centos7',
    'timezone': 'US/Eastern',
    'feature': 'host',
    'graphics': 'spice',
    'dnsdomain': 'example.local',
    'mac': None,
    'autostart': False,
    'assume_yes': False,
    'verbose': False,
    'image': None,
    'user': None,
    'lease_timeout': 300,
    'lease_interval': 1,
    'leasedir': '/var/lib/libvirt/dnsmasq',
}

PATH_FIELDS = ('imagedir', 'pubkey', 'image')


@dataclass(frozen=True)
class VMConfig:
    '''
    Everything one invocation needs to know about one vm.
    '''
    name: str
    cpus: int
    memory: int
    disk_size: int
    bridge: str
    imagedir: str
    pubkey: str
    distro: str
    timezone: str
    feature: str
    graphics: str
    dnsdomain: str
    mac: str
    autostart: bool
    assume_yes: bool
    verbose: bool
    image: str
    user: str
    lease_timeout: int
    lease_interval: float
    leasedir: str

    @property
    def workdir(self):
        return os.path.join(self.imagedir, self.name)

    @property
    def disk(self):
        return os.path.join(self.workdir, f'{self.name}.qcow2')

    @property
    def logfile(self):
        return os.path.join(self.workdir, f'{self.name}.log')

    @property
    def fqdn(self):
        return f'{self.name}.{self.dnsdomain}'

    @property
    def needs_resize(self):
        return self.disk_size > DEFAULTS['disk_size']


def load_file(path=None):
    '''
    Read the yaml config file and return its settings as a dict.
    A missing ~/.kivrc is fine, a missing explicitly named file is not.
    '''
    explicit = path is not None
    path = os.path.expanduser(path) if explicit else DEFAULT_CONFIGFILE
    if not os.path.isfile(path):
        if explicit:
            raise ConfigException(f'Config file {path} does not exist.')
        return {}
    try:
        with open(path, 'r') as reader:
            settings = yaml.safe_load(reader) or {}
    except (IOError, yaml.YAMLError) as err:
        LOGGER.critical('Exception reading/parsing configuration file %s. %s',
                        path, err)
        raise ConfigException(f'Unable to read config file {path}: {err}')

    if not isinstance(settings, dict):
        raise ConfigException(f'{path} must contain a yaml mapping.')
    unknown = sorted(set(settings) - set(DEFAULTS))
    if unknown:
        raise ConfigException(f"Unknown setting(s) in {path}: "
                              f"{', '.join(unknown)}")
    LOGGER.debug('Loaded settings %s from %s', sorted(settings), path)
    return settings


def resolve(name, overrides=None, filesettings=None):
    '''
    Build a VMConfig for `name`: defaults, then file settings, then the
    command line overrides that were actually given (non-None).
    '''
    settings = dict(DEFAULTS)
    settings.update(filesettings or {})
    settings.update({key: value for key, value in (overrides or {}).items()
                     if value is not None})
    unknown = set(settings) - {field.name for field in fields(VMConfig)}
    if unknown:
        raise ConfigException(f"Unknown setting(s): {', '.join(sorted(unknown))}")

    for key in PATH_FIELDS:
        if settings[key]:
            settings[key] = os.path.abspath(os.path.expanduser(settings[key]))
    if not settings['user']:
        settings['user'] = getpass.getuser()
    if settings['mac']:
        settings['mac'] = settings['mac'].lower()
    return VMConfig(name=name, **settings)
