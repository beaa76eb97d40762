"""galleryai: resource caching and analysis scheduling for an AI photo gallery."""

from galleryai.version import __version__

__all__ = ["__version__"]
