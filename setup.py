from setuptools import setup

__version__ = "1.0.0"
__author__ = "AgbCloud CLI Contributors"
__license__ = "Apache v2"
__copyright__ = "Copyright (c) 2025 AgbCloud CLI Contributors"

setup( name = 'agbcloud',
       version = __version__,
       description = 'Command line client for agb.cloud',
       url = 'https://agb.cloud',
       author = __author__,
       license = __license__,
       packages = [ 'agbcloud' ],
       zip_safe = True,
       python_requires = '>=3.9',
       install_requires = [ 'requests', 'pyyaml', 'tabulate', 'rich' ],
       extras_require = {
           'test': [ 'pytest' ],
       },
       long_description = 'Command line client for agb.cloud: browser based OAuth login and session management.',
       entry_points = {
           'console_scripts': [
               'agbcloud=agbcloud.__main__:main',
           ],
       },
)
