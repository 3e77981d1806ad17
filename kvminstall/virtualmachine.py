'''
This module provides a 'virtual machine' class that lets you provision,
remove and add disks to libvirt/kvm virtual machines booted off cloud
images and a nocloud seed iso.
'''
import os
import shutil
import logging
from collections import namedtuple
from contextlib import contextmanager
from kvminstall import cloudinit, images, network
from kvminstall.driver import VirshDriver
from kvminstall.exceptions import (CommandException, DiskExistsException,
                                   ImageException, InstallException,
                                   KivException, MissingKeyException,
                                   ResizeException)

LOGGER = logging.getLogger(__name__)
PACKAGE_LOGGER = 'kvminstall'
LOGFORMAT = '%(asctime)s - %(funcName)s - %(levelname)s - %(message)s'

StepResult = namedtuple('StepResult', ['step', 'ok', 'detail'])


class VirtualMachine:
    '''
    One vm, as described by a VMConfig. All hypervisor work is delegated to
    the driver so a fake one can stand in for libvirt.
    '''
    def __init__(self, config, driver=None, session=None):
        self.config = config
        self.name = config.name
        self.driver = driver or VirshDriver()
        self.session = session
        self.iso = os.path.join(config.workdir, f'{self.name}-cidata.iso')
        self.distro = None
        self.prepared = None
        self.ipaddr = None

    def __repr__(self):
        return f'VirtualMachine({self.name!r})'

    @contextmanager
    def logfile(self):
        '''
        Copy everything logged (tool output included) into <name>.log.
        '''
        handler = logging.FileHandler(self.config.logfile)
        handler.setLevel(logging.DEBUG)
        handler.setFormatter(logging.Formatter(LOGFORMAT))
        logger = logging.getLogger(PACKAGE_LOGGER)
        level = logger.level
        logger.setLevel(logging.DEBUG)
        logger.addHandler(handler)
        try:
            yield handler
        finally:
            logger.removeHandler(handler)
            logger.setLevel(level)
            handler.close()

    def exists(self):
        return self.driver.domain_exists(self.name)

    def read_pubkey(self):
        try:
            with open(self.config.pubkey, 'r') as reader:
                key = reader.read().strip()
        except IOError as err:
            raise MissingKeyException(
                f'{self.name} : unable to read ssh public key '
                f'{self.config.pubkey}. Generate one with ssh-keygen or '
                f'point -k at an existing key. {err}') from err
        if not key:
            raise MissingKeyException(f'{self.name} : ssh public key '
                                      f'{self.config.pubkey} is empty.')
        return key

    def prepare_image(self):
        '''
        Return the path of the base image, downloading it if needed.
        '''
        if self.config.image:
            self.distro = images.custom(self.config.image, self.config.user)
            LOGGER.info('%s : using custom image %s', self.name,
                        self.config.image)
            return self.config.image
        self.distro = images.lookup(self.config.distro)
        return images.fetch(self.distro, self.config.imagedir,
                            session=self.session)

    def prepare(self):
        '''
        Check the ssh key and get the base image ready, touching nothing that
        belongs to an existing vm. Returns (pubkey, baseimage).
        '''
        if self.prepared is None:
            self.prepared = (self.read_pubkey(), self.prepare_image())
        return self.prepared

    def create(self):
        '''
        Provision the virtual machine and return its ip address.
        '''
        pubkey, baseimage = self.prepare()

        if os.path.isdir(self.config.workdir):
            LOGGER.info('%s : removing old working directory %s', self.name,
                        self.config.workdir)
            shutil.rmtree(self.config.workdir)
        os.makedirs(self.config.workdir)

        with self.logfile():
            documents = cloudinit.write_documents(
                self.config.workdir,
                cloudinit.render_userdata(self.config, self.distro, pubkey),
                cloudinit.render_metadata(self.config))
            self.create_disk(baseimage)
            cloudinit.create_iso(self.iso, documents)
            self.create_pool()
            self.create_vm()
            self.eject_iso(list(documents.values()))

            mac = self.config.mac or self.driver.mac_address(self.name)
            self.ipaddr = network.wait_for_ip(self.config, mac)
            self.forget_host()
        return self.ipaddr

    def create_disk(self, baseimage):
        '''
        copy the base image into place and grow it if asked to.
        '''
        shutil.copyfile(baseimage, self.config.disk)
        LOGGER.info('%s : copied %s to %s', self.name, baseimage,
                    self.config.disk)
        if self.config.needs_resize:
            self.resize_disk()

    def resize_disk(self):
        '''
        Grow the disk into <disk>.new and swap it in only once virt-resize
        has succeeded. On failure the unresized disk is left in place.
        '''
        newdisk = f'{self.config.disk}.new'
        size = f'{self.config.disk_size}G'
        LOGGER.info('%s : resizing the disk to %s', self.name, size)
        try:
            self.driver.create_image(newdisk, size)
            self.driver.resize(self.config.disk, newdisk)
        except CommandException as err:
            LOGGER.critical('%s : failure resizing disk. command output: %s',
                            self.name, err.output)
            if os.path.exists(newdisk):
                os.remove(newdisk)
            raise ResizeException(f'{self.name} : unable to resize '
                                  f'{self.config.disk} to {size}.') from err
        os.replace(newdisk, self.config.disk)
        LOGGER.info('%s : disk resized to %s', self.name, size)

    def create_pool(self):
        self.driver.pool_create(self.name, self.config.workdir)
        LOGGER.info('%s : created storage pool %s', self.name, self.name)

    def create_vm(self):
        '''
        create libvirt/kvm domain using virt-install
        '''
        proc = self.driver.install(self.config, self.distro, self.config.disk,
                                   self.iso)
        if proc.returncode != 0:
            LOGGER.critical('%s : failure installing the domain. command '
                            'output: %s', self.name, proc.stdout)
            raise InstallException(f'{self.name} : virt-install exited with '
                                   f'{proc.returncode}.')
        LOGGER.info('%s : virtual machine defined and started.', self.name)

    def eject_iso(self, documents):
        '''
        Take the seed iso out of the cdrom and delete the cloud-init files.
        '''
        try:
            target = self.driver.cdrom_target(self.name)
        except CommandException as err:
            LOGGER.warning('%s : unable to list block devices. %s', self.name,
                           err)
            target = None
        if target:
            proc = self.driver.eject(self.name, target)
            if proc.returncode != 0:
                LOGGER.warning('%s : failure ejecting %s from %s', self.name,
                               self.iso, target)
        else:
            LOGGER.warning('%s : no cdrom found to eject', self.name)
        for path in documents + [self.iso]:
            if os.path.exists(path):
                os.remove(path)
        LOGGER.info('%s : cleaned up cloud-init files.', self.name)

    def forget_host(self):
        proc = self.driver.forget_host(self.ipaddr)
        if proc.returncode != 0:
            LOGGER.debug('%s : no known_hosts entry removed for %s',
                         self.name, self.ipaddr)
        else:
            LOGGER.info('%s : removed %s from known_hosts', self.name,
                        self.ipaddr)

    def delete(self):
        '''
        Deprovision the vm. Every step is attempted, and the outcome of each
        is returned as a list of StepResult.
        '''
        results = []
        if self.driver.domain_exists(self.name):
            for step, action in (('destroy', self.driver.destroy),
                                 ('undefine', self.driver.undefine)):
                proc = action(self.name)
                results.append(StepResult(step, proc.returncode == 0,
                                          (proc.stdout or '').strip()))
        else:
            results.append(StepResult('domain', True, 'does not exist'))

        if os.path.isdir(self.config.workdir):
            try:
                shutil.rmtree(self.config.workdir)
                results.append(StepResult('workdir', True,
                                          f'removed {self.config.workdir}'))
            except OSError as err:
                results.append(StepResult('workdir', False, str(err)))

        if self.driver.pool_exists(self.name):
            proc = self.driver.pool_destroy(self.name)
            results.append(StepResult('pool-destroy', proc.returncode == 0,
                                      (proc.stdout or '').strip()))
        else:
            results.append(StepResult('pool', True, 'does not exist'))

        for result in results:
            if result.ok:
                LOGGER.info('%s : %s: %s', self.name, result.step,
                            result.detail or 'done')
            else:
                LOGGER.warning('%s : %s failed: %s', self.name, result.step,
                               result.detail)
        return results

    def resolve_source(self, source):
        '''
        Find a backing image named on the command line: absolute paths as
        given, relative ones in the vm directory first, then the current one.
        '''
        candidates = [source]
        if not os.path.isabs(source):
            candidates = [os.path.join(self.config.workdir, source),
                          os.path.abspath(source)]
        for candidate in candidates:
            if os.path.isfile(candidate):
                return candidate
        raise ImageException(f"{self.name} : source image '{source}' not found "
                             f"(looked in {', '.join(candidates)}).")

    def attach_disk(self, target, size, fmt='qcow2', source=None,
                    source_fmt=None):
        '''
        Create a new disk image and hot-attach it persistently. Returns the
        exit code of virsh attach-disk.
        '''
        if not target:
            raise KivException('You must specify a target device, e.g. -t vdb')
        if not size:
            raise KivException('You must specify a disk size in GB, e.g. -d 10')

        path = os.path.join(self.config.workdir,
                            f'{self.name}-{target}-{size}G.{fmt}')
        if os.path.exists(path):
            raise DiskExistsException(f'{self.name} : {path} already exists. '
                                      f'Is it already attached?')
        if source:
            source = self.resolve_source(source)
            source_fmt = source_fmt or images.image_format(source)

        os.makedirs(self.config.workdir, exist_ok=True)
        with self.logfile():
            self.driver.create_image(path, f'{size}G', fmt, backing=source,
                                     backing_fmt=source_fmt)
            LOGGER.info('%s : created disk image %s', self.name, path)
            proc = self.driver.attach_disk(self.name, path, target, fmt)
            if proc.returncode != 0:
                LOGGER.critical('%s : failure attaching %s. command output: %s',
                                self.name, path, proc.stdout)
            else:
                LOGGER.info('%s : attached %s as %s', self.name, path, target)
        return proc.returncode
