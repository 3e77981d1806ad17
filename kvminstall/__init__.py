'''Create, remove and attach disks to cloud-init driven libvirt/kvm vms.'''
__version__ = '0.3'
