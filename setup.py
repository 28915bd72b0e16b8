#!/usr/bin/env python
from setuptools import setup, find_packages

setup(name  = 'dynamolease',
    version = '1.0.0',
    description = 'Leased distributed locks built on top of DynamoDB',
    long_description='Leased distributed locks with heartbeats and session monitors built on top of DynamoDB',
    classifiers = [
        'Development Status :: 4 - Beta',
        'Intended Audience :: Developers',
        'License :: OSI Approved :: BSD License',
        'Operating System :: POSIX :: Linux',
        'Operating System :: Unix',
        'Programming Language :: Python',
        'Programming Language :: Python :: 3',
        'Topic :: System :: Networking',
        'Topic :: Utilities'
    ],
    keywords = 'python dynamodb lock lease',
    license = 'BSD',
    packages = find_packages(),
    platforms = ['Linux', 'Mac OS X', 'Win'],
    include_package_data = True,
    zip_safe = True,
    python_requires = '>=3.7',
    install_requires = [ 'boto3 >= 1.26.0', 'botocore >= 1.29.0' ],
    extras_require = {
        'quality'   : [ 'coverage >= 3.5.3', 'pytest >= 7.0.0', 'mock >= 4.0.0', 'pycodestyle >= 2.5.0' ],
        'documents' : [ 'Sphinx >= 1.2.2' ],
    },
)
