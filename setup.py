#
from setuptools import setup, find_namespace_packages

def get_version():
    """
    Get version number from the offspring_risk package.

    The easiest way would be to just ``import offspring_risk``, but note that
    this may fail if the dependencies have not been installed yet. Instead,
    the version number lives in a simple version_info module, imported here
    by temporarily adding the package directory to the pythonpath.
    """
    import os
    import sys

    sys.path.append(os.path.abspath(os.path.join('src', 'offspring_risk')))
    from version_info import VERSION as version
    sys.path.pop()

    return version

def get_readme():
    """
    Load README.md text for use as description.
    """
    with open('README.md') as f:
        return f.read()

setup(
    # Module name (lowercase)
    name='offspring_risk',

    # Version
    version=get_version(),

    description='Offspring distribution fitting and superspreading risk estimation.',

    long_description=get_readme(),

    long_description_content_type='text/markdown',

    license='MIT license',

    python_requires='>=3.9',

    # Packages to include
    package_dir={'': 'src'},
    packages=find_namespace_packages(where='src', include=('offspring_risk', 'offspring_risk.*')),

    # List of dependencies
    install_requires=[
        'numpy',
        'pandas',
        'scipy',
    ],
    extras_require={
        'dev': [
            # Flake8 for code style checking
            'flake8>=3',
            'pytest',
            'pytest-cov',
        ],
    },
    entry_points={
        'console_scripts': [
            'offspring-risk=offspring_risk.runner:main',
        ],
    },
)
