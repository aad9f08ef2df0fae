"""apirules: compatibility rules for API description diffs."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("apirules")
except PackageNotFoundError:
    __version__ = "0.0.0-dev"
