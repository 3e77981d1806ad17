from setuptools import setup
setup(name='kvminstall',
      version='0.3',
      description=("Create, remove and attach disks to libvirt/kvm virtual "
                   "machines built from vanilla cloud images, provisioned "
                   "with cloud-init."),
      license='MIT',
      packages=['kvminstall'],
      python_requires='>=3.7',
      install_requires=['pycdlib', 'click', 'pyyaml', 'requests'],
      extras_require={'tests': ['pytest']},
      zip_safe=False,
      entry_points='''
        [console_scripts]
        kvm-install-vm=kvminstall.cli:main
      ''',
     )
