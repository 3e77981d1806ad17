'''
The hypervisor driver: every call out to virsh, virt-install, qemu-img,
virt-resize and ssh-keygen goes through VirshDriver.
'''
import re
import logging
import subprocess
from kvminstall.exceptions import CommandException, NoMacAddressException

LOGGER = logging.getLogger(__name__)
MAC_PATTERN = re.compile(r"<mac address=['\"]([0-9a-fA-F:]{17})['\"]")


class VirshDriver:
    '''
    Thin wrapper around the libvirt command line tools. Methods named
    after a query return booleans/strings, the rest return the
    CompletedProcess or raise CommandException when check is set.
    '''
    def __init__(self, connect=None):
        self.connect = connect

    def _virsh(self, *args):
        cmd = ['virsh']
        if self.connect:
            cmd.extend(['--connect', self.connect])
        return cmd + list(args)

    @staticmethod
    def run(cmd, check=True):
        LOGGER.debug('running %s', ' '.join(cmd))
        try:
            proc = subprocess.run(cmd, stdout=subprocess.PIPE,
                                  stderr=subprocess.STDOUT,
                                  universal_newlines=True)
        except OSError as err:
            if check:
                raise CommandException(cmd, 127, str(err)) from err
            LOGGER.debug('%s could not be run. %s', cmd[0], err)
            return subprocess.CompletedProcess(cmd, 127, str(err))
        if proc.stdout:
            LOGGER.debug('%s output: %s', cmd[0], proc.stdout.rstrip('\n'))
        if check and proc.returncode != 0:
            raise CommandException(cmd, proc.returncode, proc.stdout or '')
        return proc

    # Queries
    def domain_exists(self, name):
        return self.run(self._virsh('dominfo', name), check=False).returncode == 0

    def pool_exists(self, name):
        return self.run(self._virsh('pool-info', name), check=False).returncode == 0

    def list_domains(self):
        return self.run(self._virsh('list', '--all'), check=False)

    def mac_address(self, name):
        xml = self.run(self._virsh('dumpxml', name)).stdout
        match = MAC_PATTERN.search(xml)
        if not match:
            raise NoMacAddressException(f"{name} : no mac address found in "
                                        f"the domain's xml.")
        return match.group(1).lower()

    def cdrom_target(self, name):
        '''
        Return the target device of the domain's first cdrom, or None.
        '''
        output = self.run(self._virsh('domblklist', name, '--details')).stdout
        for line in output.splitlines():
            columns = line.split()
            if len(columns) >= 3 and columns[1] == 'cdrom':
                return columns[2]
        return None

    # Domain lifecycle
    def install(self, config, distro, disk, iso):
        network = f'bridge={config.bridge},model=virtio'
        if config.mac:
            network += f',mac={config.mac}'
        cmd = ['virt-install', '--import',
               '--name', config.name,
               '--memory', str(config.memory),
               '--vcpus', str(config.cpus),
               '--cpu', config.feature,
               '--disk', f'{disk},format=qcow2,bus=virtio',
               '--disk', f'{iso},device=cdrom',
               '--network', network,
               '--os-variant', distro.os_variant,
               '--graphics', config.graphics,
               '--noautoconsole']
        if config.autostart:
            cmd.append('--autostart')
        if self.connect:
            cmd.extend(['--connect', self.connect])
        return self.run(cmd, check=False)

    def destroy(self, name):
        return self.run(self._virsh('destroy', name), check=False)

    def undefine(self, name):
        return self.run(self._virsh('undefine', name), check=False)

    def eject(self, name, target):
        return self.run(self._virsh('change-media', name, target, '--eject',
                                    '--config'), check=False)

    def attach_disk(self, name, source, target, fmt):
        return self.run(self._virsh('attach-disk', name, '--source', source,
                                    '--target', target, '--subdriver', fmt,
                                    '--cache', 'none', '--persistent'),
                        check=False)

    # Storage pools
    def pool_create(self, name, target):
        return self.run(self._virsh('pool-create-as', '--name', name,
                                    '--type', 'dir', '--target', target))

    def pool_destroy(self, name):
        return self.run(self._virsh('pool-destroy', name), check=False)

    # Disk images
    def create_image(self, path, size, fmt='qcow2', backing=None,
                     backing_fmt='qcow2'):
        cmd = ['qemu-img', 'create', '-f', fmt]
        # qemu-img refuses preallocation on top of a backing file
        if backing:
            cmd.extend(['-b', backing, '-F', backing_fmt])
        else:
            cmd.extend(['-o', 'preallocation=metadata'])
        cmd.extend([path, size])
        return self.run(cmd)

    def resize(self, source, dest, partition='/dev/sda1'):
        return self.run(['virt-resize', '--quiet', '--expand', partition,
                         source, dest])

    # Host side
    def forget_host(self, address):
        return self.run(['ssh-keygen', '-R', address], check=False)
