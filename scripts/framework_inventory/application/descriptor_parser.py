from __future__ import annotations
import logging
import xml.etree.ElementTree as ET

from framework_inventory.domain.errors import DescriptorParseError
from framework_inventory.domain.interfaces import IDescriptorParser

log = logging.getLogger(__name__)

DESCRIPTOR_EXTENSION = ".csproj"
MSBUILD_NAMESPACE = "http://schemas.microsoft.com/developer/msbuild/2003"

# SDK-style projects carry no namespace
MODERN_ROOT = "Project"
MODERN_PATH = "PropertyGroup/TargetFramework"

LEGACY_ROOT = f"{{{MSBUILD_NAMESPACE}}}Project"
LEGACY_PATH = f"{{{MSBUILD_NAMESPACE}}}PropertyGroup/{{{MSBUILD_NAMESPACE}}}TargetFrameworkVersion"


class MsBuildDescriptorParser(IDescriptorParser):
    """
    Reads the target framework out of an MSBuild project file.

    Two schema variants are tried in order:
      1. SDK-style     /Project/PropertyGroup/TargetFramework
      2. legacy        /ns:Project/ns:PropertyGroup/ns:TargetFrameworkVersion
                       with ns = the 2003 MSBuild namespace

    The first element found in document order wins; values are never
    merged across property groups.
    """

    def __init__(self, extension: str = DESCRIPTOR_EXTENSION) -> None:
        self._extension = extension.lower()

    def matches(self, relative_path: str) -> bool:
        return relative_path.lower().endswith(self._extension)

    def parse(self, content: bytes) -> str | None:
        try:
            root = ET.fromstring(content)
        except ET.ParseError as exc:
            raise DescriptorParseError(f"Descriptor is not well-formed XML: {exc}") from exc

        value = self._select(root, MODERN_ROOT, MODERN_PATH)
        if value is None:
            value = self._select(root, LEGACY_ROOT, LEGACY_PATH)
        return value

    @staticmethod
    def _select(root: ET.Element, root_tag: str, path: str) -> str | None:
        if root.tag != root_tag:
            return None
        for element in root.iterfind(path):
            value = "".join(element.itertext()).strip()
            if value:
                return value
            log.debug("Ignoring empty <%s> element", element.tag)
        return None
