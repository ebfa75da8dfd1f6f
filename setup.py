from setuptools import setup, find_packages

VERSION = '0.1.0'

setup(
    name="teamboard",
    version=VERSION,
    packages=find_packages(exclude=['teamboard.tests']),
    install_requires=[
        'Django>=4.2',
        'pymongo>=4',
        'channels>=4',
        'channels-redis>=4.1',
        'djangorestframework>=3',
        'daphne>=4.1.0',
        'pytz',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-django',
        ],
    },
    include_package_data=True,
    python_requires=">=3.10",
)
