'''The cli module '''
import sys
import logging
import click
from kvminstall import config as kivconfig
from kvminstall import orchestrate
from kvminstall.exceptions import KivException, UnknownDistroException
from kvminstall.images import DISTROS

LOGGER = logging.getLogger(__name__)
CONTEXT_SETTINGS = {'help_option_names': ['-h', '--help']}


def _resolve(ctx, name, **overrides):
    filesettings = kivconfig.load_file(ctx.obj['configfile'])
    return kivconfig.resolve(name, overrides, filesettings)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.option('--config', 'configfile', envvar='KIV_CONFIG',
              help="Path to the config file. [default: ~/.kivrc]")
@click.pass_context
def kvm(ctx, configfile):
    '''
    Create, remove and attach disks to libvirt/kvm virtual machines built
    from cloud images and cloud-init.
    '''
    ctx.obj = {'configfile': configfile}


@kvm.command(name='help')
@click.argument('subcommand', required=False)
@click.pass_context
def help_(ctx, subcommand):
    '''
    Show help for the tool or one of its subcommands.
    '''
    parent = ctx.parent
    if subcommand is None:
        click.echo(parent.get_help())
        return 0
    command = kvm.get_command(parent, subcommand)
    if command is None:
        raise click.UsageError(f"No such command '{subcommand}'.", ctx=parent)
    with click.Context(command, info_name=subcommand, parent=parent) as subctx:
        click.echo(command.get_help(subctx))
    return 0


@kvm.command(name='list')
def list_():
    '''
    List all virtual machines.
    '''
    return orchestrate.list_vms()


@kvm.command()
@click.option('-a', 'autostart', is_flag=True, help="Start the vm on host boot.")
@click.option('-b', 'bridge', help="Bridge to attach to. [default: virbr0]")
@click.option('-c', 'cpus', type=int, help="Number of vcpus. [default: 1]")
@click.option('-d', 'disk_size', type=int, help="Disk size in GB. [default: 10]")
@click.option('-D', 'dnsdomain', help="DNS domain. [default: example.local]")
@click.option('-f', 'feature', help="CPU model/feature. [default: host]")
@click.option('-g', 'graphics', help="Graphics type. [default: spice]")
@click.option('-i', 'image', help="Custom image, skips distro lookup.")
@click.option('-k', 'pubkey', help="SSH public key. [default: ~/.ssh/id_rsa.pub]")
@click.option('-l', 'imagedir', help="Image directory. [default: ~/virt/images]")
@click.option('-m', 'memory', type=int, help="Memory in MB. [default: 1024]")
@click.option('-M', 'mac', help="MAC address of the network interface.")
@click.option('-t', 'distro', help="Linux distribution. [default: centos7]")
@click.option('-T', 'timezone', help="Timezone. [default: US/Eastern]")
@click.option('-u', 'user', help="Login user for a custom image. [default: $USER]")
@click.option('-v', 'verbose', is_flag=True, help="Verbose output.")
@click.option('-y', 'assume_yes', is_flag=True, help="Assume yes to prompts.")
@click.argument('name')
@click.pass_context
def create(ctx, name, verbose, autostart, assume_yes, **overrides):
    '''
    Create a new virtual machine.

    \b
    Distributions:
      {distros}
    '''
    vmconfig = _resolve(ctx, name, autostart=autostart or None,
                        assume_yes=assume_yes or None, verbose=verbose or None,
                        **overrides)
    orchestrate.setup_logging(vmconfig.verbose)
    try:
        return orchestrate.create(vmconfig)
    except UnknownDistroException:
        click.echo(ctx.get_help())
        raise


create.help = create.help.replace('{distros}', ', '.join(sorted(DISTROS)))


@kvm.command()
@click.option('-l', 'imagedir', help="Image directory. [default: ~/virt/images]")
@click.argument('name')
@click.pass_context
def remove(ctx, name, imagedir):
    '''
    Stop and remove a virtual machine, its storage pool and its files.
    '''
    return orchestrate.remove(_resolve(ctx, name, imagedir=imagedir))


@kvm.command(name='attach-disk')
@click.option('-d', 'size', type=int, help="Disk size in GB.")
@click.option('-f', 'fmt', default='qcow2', show_default=True, help="Disk format.")
@click.option('-s', 'source', help="Image to use as the new disk's backing file.")
@click.option('-F', 'source_fmt',
              help="Format of the -s image. [default: from its extension]")
@click.option('-t', 'target', help="Target device, e.g. vdb.")
@click.option('-l', 'imagedir', help="Image directory. [default: ~/virt/images]")
@click.argument('name')
@click.pass_context
def attach_disk(ctx, name, size, fmt, source, source_fmt, target, imagedir):
    '''
    Create a new disk and attach it to a running virtual machine.
    '''
    vmconfig = _resolve(ctx, name, imagedir=imagedir)
    return orchestrate.attach_disk(vmconfig, target, size, fmt=fmt,
                                   source=source, source_fmt=source_fmt)


def main(argv=None):
    '''
    Console script entry point. Maps errors onto exit codes.
    '''
    orchestrate.setup_logging()
    try:
        status = kvm.main(args=argv, prog_name='kvm-install-vm',
                          standalone_mode=False)
    except click.UsageError as err:
        if err.ctx is not None:
            click.echo(err.ctx.get_help(), err=True)
        click.echo(f'Error: {err.format_message()}', err=True)
        sys.exit(1)
    except click.Abort:
        click.echo('Aborted!', err=True)
        sys.exit(1)
    except KivException as err:
        LOGGER.critical('%s', err)
        sys.exit(err.exit_code)
    sys.exit(status or 0)
