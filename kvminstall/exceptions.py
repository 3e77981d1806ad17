'''Exceptions raised while provisioning virtual machines.'''


class KivException(Exception):
    '''
    Base class for all errors. exit_code is what the cli exits with.
    '''
    exit_code = 1


class ConfigException(KivException):
    pass


class UnknownDistroException(KivException):
    exit_code = 2


class ImageException(KivException):
    exit_code = 2


class ResizeException(KivException):
    exit_code = 2


class MissingKeyException(KivException):
    exit_code = 3


class InstallException(KivException):
    exit_code = 3


class NoMacAddressException(KivException):
    exit_code = 3


class LeaseTimeoutException(KivException):
    exit_code = 3


class DiskExistsException(KivException):
    pass


class CommandException(KivException):
    '''
    An external command exited non-zero.
    '''
    exit_code = 3

    def __init__(self, cmd, returncode, output=''):
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        super().__init__(f"'{' '.join(cmd)}' exited with {returncode}: "
                         f"{output.strip()}")
