'''
Glue between the cli and VirtualMachine: logging setup and one function per
subcommand, each returning the exit code.
'''
import sys
import logging
import click
from kvminstall.driver import VirshDriver
from kvminstall.virtualmachine import LOGFORMAT, PACKAGE_LOGGER, VirtualMachine

LOGGER = logging.getLogger(__name__)
STDOUTHANDLER = logging.StreamHandler(sys.stdout)
STDOUTHANDLER.setFormatter(logging.Formatter(LOGFORMAT))


def setup_logging(verbose=False):
    '''
    Log to stdout from the package logger. Safe to call more than once.
    '''
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.setLevel(logging.DEBUG)
    STDOUTHANDLER.setLevel(logging.DEBUG if verbose else logging.INFO)
    if STDOUTHANDLER not in logger.handlers:
        logger.addHandler(STDOUTHANDLER)
    return STDOUTHANDLER


def create(config, driver=None, confirm=click.confirm):
    '''
    Create a virtual machine, offering to replace an existing one.
    '''
    vm = VirtualMachine(config, driver=driver)
    # key and image problems must surface before an existing vm is removed
    vm.prepare()
    if vm.exists():
        LOGGER.warning('%s : domain already exists.', config.name)
        if not config.assume_yes and not confirm(
                f'Do you want to overwrite {config.name}?', default=False):
            LOGGER.info('%s : not overwriting existing domain.', config.name)
            return 1
        vm.delete()

    ipaddr = vm.create()
    click.echo(f'DONE. SSH to {config.name} using '
               f"'ssh {vm.distro.login_user}@{ipaddr}'")
    return 0


def remove(config, driver=None):
    '''
    Remove a virtual machine. Failures are reported, never fatal.
    '''
    results = VirtualMachine(config, driver=driver).delete()
    failed = [result.step for result in results if not result.ok]
    if failed:
        LOGGER.warning('%s : removed with failures in: %s', config.name,
                       ', '.join(failed))
    else:
        LOGGER.info('%s : removed.', config.name)
    return 0


def attach_disk(config, target, size, fmt='qcow2', source=None,
                source_fmt=None, driver=None):
    return VirtualMachine(config, driver=driver).attach_disk(
        target, size, fmt=fmt, source=source, source_fmt=source_fmt)


def list_vms(driver=None):
    proc = (driver or VirshDriver()).list_domains()
    click.echo(proc.stdout, nl=False)
    return proc.returncode
