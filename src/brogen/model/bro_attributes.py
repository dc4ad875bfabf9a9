from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Optional

Version = tuple[int, int, int]

# Attribute spellings known to carry nothing the binding model needs.
DEFAULT_IGNORED_ATTRIBUTES = (
    r"^__DARWIN_ALIAS(_C)?\b",
    r"^CF_IMPLICIT_BRIDGING_ENABLED$",
    r"^DISPATCH_",
    r"^(CF|NS)_RETURNS_(NOT_)?RETAINED",
    r"^(CF|NS)_INLINE$",
    r"^(CF|NS)_FORMAT_(FUNCTION|ARGUMENT)",
    r"^NS_RETURNS_INNER_POINTER$",
    r"^NS_REQUIRES_(NIL_TERMINATION|SUPER|PROPERTY_DEFINITIONS)$",
    r"^(NS|OBJC)_ROOT_CLASS$",
    r"^NS_DESIGNATED_INITIALIZER$",
    r"^NS_REPLACES_RECEIVER$",
    r"^NS_REFINED_FOR_SWIFT$",
    r"^NS_SWIFT_",
    r"^NS_EXTENSION_UNAVAILABLE",
    r"^DEPRECATED_MSG_ATTRIBUTE",
    r"^UI_APPEARANCE_SELECTOR$",
    r"_EXTERN(_CLASS|_WEAK)?$",
    r"_(CLASS_)?EXPORT$",
    r"^__objc_exception__$",
    r"^__header_always_inline$",
    r"^__ai$",
    r"^availability$",
    r"^objc_",
    r"^ns_",
    r"^cf_",
    r"^swift_",
    r"^enum_extensibility",
    r"^flag_enum$",
    r"^visibility",
    r"^deprecated",
    r"^always_inline$",
    r"^warn_unused_result$",
    r"^nonnull",
    r"^sentinel",
    r"^format",
    r"^const$",
    r"^pure$",
    r"^noreturn$",
    r"^NS_OPTIONS",
)

_AVAILABILITY_RE = re.compile(r"^availability\((.*)\)", re.DOTALL)
_ARG_RE = re.compile(r'(?:[^,"]|"(?:\\.|[^"\\])*")+')


@dataclass
class Attribute:
    source: str


@dataclass
class IgnoredAttribute(Attribute):
    pass


@dataclass
class UnsupportedAttribute(Attribute):
    pass


@dataclass
class UnavailableAttribute(Attribute):
    pass


@dataclass
class AvailableAttribute(Attribute):
    platform: str = ""
    version: Optional[Version] = None
    dep_version: Optional[Version] = None
    obsoleted: Optional[Version] = None
    unavailable: bool = False
    message: Optional[str] = None

    @property
    def has_version(self) -> bool:
        return self.version is not None or self.unavailable


def parse_version(text: str) -> Optional[Version]:
    """Parses `10.3`, `10_3` or `10.3.1`. `NA` parses to an always-unavailable marker."""
    text = text.strip().strip('"')
    if text == "NA":
        return (-1, 0, 0)
    parts = re.split(r"[._]", text)
    if not parts or len(parts) > 3:
        return None
    try:
        numbers = [int(part) for part in parts]
    except ValueError:
        return None
    while len(numbers) < 3:
        numbers.append(0)
    return (numbers[0], numbers[1], numbers[2])


def format_version(version: Optional[Version]) -> Optional[str]:
    if version is None:
        return None
    major, minor, patch = version
    if patch:
        return f"{major}.{minor}.{patch}"
    return f"{major}.{minor}"


def _split_args(text: str) -> list[str]:
    return [arg.strip() for arg in _ARG_RE.findall(text) if arg.strip()]


def _parse_availability(source: str) -> AvailableAttribute:
    attribute = AvailableAttribute(source=source)
    match = _AVAILABILITY_RE.match(source)
    args = _split_args(match.group(1)) if match else []
    if not args:
        return attribute
    attribute.platform = args[0]
    for arg in args[1:]:
        if arg == "unavailable":
            attribute.unavailable = True
        elif arg.startswith("introduced="):
            version = parse_version(arg[len("introduced="):])
            if version is not None and version[0] == -1:
                attribute.unavailable = True
            attribute.version = version
        elif arg.startswith("deprecated="):
            attribute.dep_version = parse_version(arg[len("deprecated="):])
        elif arg.startswith("obsoleted="):
            attribute.obsoleted = parse_version(arg[len("obsoleted="):])
        elif arg.startswith("message="):
            attribute.message = arg[len("message="):].strip('"')
    return attribute


def parse_attribute(source: str, ignored: Iterable[str] = DEFAULT_IGNORED_ATTRIBUTES) -> Attribute:
    source = source.strip()
    if source.startswith("availability("):
        return _parse_availability(source)
    if source.startswith("unavailable"):
        return UnavailableAttribute(source=source)
    for pattern in ignored:
        if re.search(pattern, source):
            return IgnoredAttribute(source=source)
    return UnsupportedAttribute(source=source)


def _platform_attribute(attributes: list[Attribute], platform: str, dep: bool = False) -> Optional[AvailableAttribute]:
    for attribute in attributes:
        if not isinstance(attribute, AvailableAttribute) or attribute.platform != platform:
            continue
        if dep and attribute.dep_version is not None:
            return attribute
        if not dep and attribute.has_version:
            return attribute
    return None


def is_available(attributes: list[Attribute], platform: str, platform_version: Optional[Version]) -> bool:
    if any(isinstance(attribute, UnavailableAttribute) for attribute in attributes):
        return False
    attribute = _platform_attribute(attributes, platform)
    if attribute is None:
        return True
    if attribute.unavailable:
        return False
    if platform_version is None or attribute.version is None:
        return True
    return attribute.version <= platform_version


def since(attributes: list[Attribute], platform: str) -> Optional[Version]:
    attribute = _platform_attribute(attributes, platform)
    if attribute is None or attribute.unavailable:
        return None
    return attribute.version


def deprecated(attributes: list[Attribute], platform: str) -> Optional[Version]:
    attribute = _platform_attribute(attributes, platform, dep=True)
    return attribute.dep_version if attribute is not None else None


def is_outdated(attributes: list[Attribute], platform: str, deprecated_version: Version) -> bool:
    dep_version = deprecated(attributes, platform)
    if dep_version is None or dep_version[0] < 0:
        return False
    return dep_version <= deprecated_version
