"""Services package for apkforge."""

from .toolchain import ApktoolToolchain, CommandRunner
from .template_cache import TemplateCache
from .mutation import Mutator
from .icons import IconInjector
from .packaging import Packager
from .signing import Signer
from .publishing import Publisher
from .notifications import ProgressReporter

__all__ = [
    "ApktoolToolchain",
    "CommandRunner",
    "TemplateCache",
    "Mutator",
    "IconInjector",
    "Packager",
    "Signer",
    "Publisher",
    "ProgressReporter",
]
