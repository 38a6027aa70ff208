"""filegen scaffolder -- template trees and the files generated from them.

Project templates are immutable trees of directories and files, written to
disk by the :class:`Materializer` with a backup and an atomic rename for
every file.  Single source files (components, API routes, schemas, CI
pipelines) are rendered from Jinja2 templates.

Quick usage::

    from filegen.scaffolder import Materializer, TemplateCatalog

    catalog = TemplateCatalog()
    await Materializer().materialize(catalog.get("portfolio"), "/tmp/site")
"""

from filegen.scaffolder.tree import DirectoryNode, FileNode, from_directory, from_mapping
from filegen.scaffolder.materializer import MaterializeResult, Materializer, write_file_atomic
from filegen.scaffolder.templates import TemplateRenderer
from filegen.scaffolder.catalog import TemplateCatalog, TemplateInfo
from filegen.scaffolder.ci import CIGenerator
from filegen.scaffolder.generators import SourceGenerator

__all__ = [
    "CIGenerator",
    "DirectoryNode",
    "FileNode",
    "MaterializeResult",
    "Materializer",
    "SourceGenerator",
    "TemplateCatalog",
    "TemplateInfo",
    "TemplateRenderer",
    "from_directory",
    "from_mapping",
    "write_file_atomic",
]
