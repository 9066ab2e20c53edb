"""crate-dl command line interface."""

from importlib.metadata import version as get_package_version

__version__ = get_package_version("crate-dl")
