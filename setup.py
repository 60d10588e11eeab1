from setuptools import setup, find_packages

with open('requirements.txt') as f:
    requirements = f.readlines()

with open('test-requirements.txt') as f:
    test_requirements = f.readlines()

setup(name='remote-build-service',
      description='Remote build service for Cordova projects',
      version='1.0.0',
      classifiers=[
          "Programming Language :: Python",
          "Programming Language :: Python :: 3",
          "Topic :: Software Development :: Build Tools"
      ],
      keywords='remote build service cordova ios',
      author='FIXME',
      author_email='FIXME',
      license='MIT',
      packages=find_packages(exclude=['tests', 'tests.*']),
      include_package_data=True,
      zip_safe=False,
      python_requires='>=3.8',
      install_requires=requirements,
      extras_require={'test': test_requirements},
      entry_points={
          'console_scripts': ['remote_build_service_manager = remote_build_service.manage:cli',
                              'remote_build_service_worker = remote_build_service.worker:main']
      },
      )
