"""OpenGL loader generator.

Resolves the Khronos gl.xml registry down to the exact set of types,
enumerants and commands for one API, version, profile and extension list,
then hands the result to an output sink (C header + loader source by
default).

Usage:
    python glgen.py gl.xml --api gl --ver 4.5 --profile core --filename gl
"""

import argparse
import re
import sys
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from collections.abc import Callable, Iterable
from typing import Generic, NamedTuple, TypeVar


# ===--- CLI config contracts ---=== #


class ApiVersion(NamedTuple):
    major: int
    minor: int

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}"


@dataclass(frozen=True)
class GenerateConfig:
    registry: Path
    api: str
    version: ApiVersion
    profile: str
    filename: str
    generator: str
    extensions: frozenset[str]
    output_dir: Path
    strict: bool = False


VALID_ERROR_CODES = {
    "INVALID_API",
    "INVALID_VERSION",
    "INVALID_PROFILE",
    "UNKNOWN_GENERATOR",
    "INVALID_EXTENSION_NAME",
    "UNRESOLVED_EXTENSIONS",
    "PATH_NOT_FOUND",
}
VALID_REGISTRY_ERROR_CODES = {
    "MISSING_ATTRIBUTE",
    "UNEXPECTED_ELEMENT",
    "MALFORMED_VERSION",
    "UNDEFINED_ENTITY",
    "AMBIGUOUS_ENTITY",
    "INVALID_PATTERN",
    "TYPE_CYCLE",
}

VALID_APIS = ("gl", "gles1", "gles2", "glsc2")
VALID_PROFILES = ("core", "compatibility")
DEFAULT_API = "gl"
DEFAULT_PROFILE = "compatibility"
DEFAULT_GENERATOR = "c_noload"
DEFAULT_VERSIONS = {
    "gl": "4.0",
    "gles1": "1.0",
    "gles2": "2.0",
    "glsc2": "2.0",
}
EXTENSION_PREFIX = "GL_"

_VERSION_RE = re.compile(r"^([0-9]+)\.([0-9]+)$")
_EXT_SHORT_NAME_RE = re.compile(r"^[A-Za-z0-9]+_[A-Za-z0-9_]+$")


class ConfigError(Exception):
    def __init__(self, code: str, message: str, suggestion: str | None = None):
        if code not in VALID_ERROR_CODES:
            raise ValueError(f"Unknown config error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message
        self.suggestion = suggestion


class RegistryError(Exception):
    """Malformed or inconsistent registry content. Always fatal."""

    def __init__(self, code: str, message: str):
        if code not in VALID_REGISTRY_ERROR_CODES:
            raise ValueError(f"Unknown registry error code: {code}")
        super().__init__(message)
        self.code = code
        self.message = message


def parse_version(raw: str) -> ApiVersion:
    m = _VERSION_RE.match(raw)
    if not m:
        raise ConfigError(
            "INVALID_VERSION",
            f'Invalid version "{raw}"',
            "Pass --ver as major.minor, for example 4.5.",
        )
    return ApiVersion(int(m.group(1)), int(m.group(2)))


def parse_extension_list(raw: str | None) -> frozenset[str]:
    """Expand a comma-separated --exts value into full extension names.

    Each short name gets the GL_ prefix, so "ARB_debug_output" becomes
    "GL_ARB_debug_output". Blank entries are ignored.
    """
    if not raw:
        return frozenset()
    names: set[str] = set()
    for token in raw.split(","):
        short_name = token.strip()
        if not short_name:
            continue
        if not _EXT_SHORT_NAME_RE.match(short_name):
            raise ConfigError(
                "INVALID_EXTENSION_NAME",
                f"Invalid extension name: {short_name}",
                "Pass short names without the GL_ prefix, e.g. --exts ARB_debug_output,KHR_debug.",
            )
        names.add(EXTENSION_PREFIX + short_name)
    return frozenset(names)


def validate_path_exists(path: Path) -> Path:
    if path.exists():
        return path
    raise ConfigError(
        "PATH_NOT_FOUND",
        f"Registry file does not exist: {path}",
        "Pass the path to gl.xml from the OpenGL-Registry repository.",
    )


def default_filename(api: str, version: ApiVersion, profile: str) -> str:
    return f"{api}_{version.major}_{version.minor}_{profile}"


class _ArgumentParser(argparse.ArgumentParser):
    # Usage errors share exit code 1 with every other fatal error.
    def error(self, message: str):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_argument_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="glgen",
        description=(
            "Generate headers and loader code for the exact OpenGL API "
            "version, profile and extensions that you specify."
        ),
        epilog="Example:\n  glgen gl.xml --api gl --ver 4.5 --profile core --filename gl",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("registry", type=Path, nargs="?", default=None)
    parser.add_argument("--api", type=str, default=DEFAULT_API)
    parser.add_argument("--ver", type=str, default=None)
    parser.add_argument("--profile", type=str, default=DEFAULT_PROFILE)
    parser.add_argument("--filename", type=str, default=None)
    parser.add_argument("--generator", type=str, default=DEFAULT_GENERATOR)
    parser.add_argument("--exts", type=str, default=None)
    parser.add_argument("--output-dir", type=Path, default=Path("."))
    parser.add_argument("--strict", action="store_true", default=False)

    return parser


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = build_argument_parser()
    return parser.parse_args(argv)


def validate_config(args: argparse.Namespace) -> GenerateConfig:
    if args.api not in VALID_APIS:
        raise ConfigError(
            "INVALID_API",
            f"Invalid API name {args.api}",
            f"Use one of: {', '.join(VALID_APIS)}.",
        )

    raw_version = args.ver if args.ver is not None else DEFAULT_VERSIONS[args.api]
    version = parse_version(raw_version)

    if args.profile not in VALID_PROFILES:
        raise ConfigError(
            "INVALID_PROFILE",
            'Profile must be either "core" or "compatibility"',
            f"Got {args.profile!r}.",
        )

    if args.generator not in GENERATORS:
        raise ConfigError(
            "UNKNOWN_GENERATOR",
            f'Invalid generator "{args.generator}" specified.',
            f"Use one of: {', '.join(sorted(GENERATORS))}.",
        )

    extensions = parse_extension_list(args.exts)
    registry = validate_path_exists(args.registry)
    filename = args.filename or default_filename(args.api, version, args.profile)

    return GenerateConfig(
        registry=registry,
        api=args.api,
        version=version,
        profile=args.profile,
        filename=filename,
        generator=args.generator,
        extensions=extensions,
        output_dir=args.output_dir,
        strict=bool(args.strict),
    )


def build_config(argv: list[str] | None = None) -> GenerateConfig:
    return validate_config(parse_args(argv))


# ===--- Entity data ---=== #


@dataclass(frozen=True)
class DefaultApi:
    """Variant applies to any API without a more specific definition."""

    def __str__(self) -> str:
        return "<default>"


@dataclass(frozen=True)
class SpecificApi:
    """Variant applies only to the named API."""

    name: str

    def __str__(self) -> str:
        return self.name


ApiTag = DefaultApi | SpecificApi


def api_tag(value: str | None) -> ApiTag:
    if value:
        return SpecificApi(value)
    return DefaultApi()


@dataclass(frozen=True)
class TypeInfo:
    name: str
    cdecl: str
    requires: str | None = None
    api: ApiTag = field(default_factory=DefaultApi)


@dataclass(frozen=True)
class EnumerantInfo:
    name: str
    value: str
    suffix: str = ""
    alias: str | None = None
    api: ApiTag = field(default_factory=DefaultApi)


@dataclass(frozen=True)
class GroupInfo:
    name: str
    enums: tuple[EnumerantInfo, ...] = ()
    api: ApiTag = field(default_factory=DefaultApi)


@dataclass(frozen=True)
class ParamInfo:
    name: str
    ctype: str
    referenced_api_type: str | None = None
    group: str | None = None
    length: str | None = None


@dataclass(frozen=True)
class CommandInfo:
    name: str
    prototype: str
    return_ctype: str
    referenced_api_type: str | None = None
    params: tuple[ParamInfo, ...] = ()
    alias: str | None = None
    vecequiv: str | None = None
    api: ApiTag = field(default_factory=DefaultApi)


EntityT = TypeVar("EntityT", TypeInfo, EnumerantInfo, GroupInfo, CommandInfo)


class ApiEntity(Generic[EntityT]):
    """All variant definitions that share one entity name.

    The registry may define the same name differently per API (an enumerant
    with one value for gl and another for gles2). A variant tagged for the
    requested API wins over the default variant.
    """

    def __init__(self, name: str):
        self.name = name
        self.variants: list[EntityT] = []

    def add(self, variant: EntityT) -> None:
        self.variants.append(variant)

    def get(self, api: str, strict: bool = False) -> EntityT | None:
        """Return the variant that applies to api, or None.

        Args:
            api: Requested API name, e.g. "gles2".
            strict: Treat several variants matching the same rule as a
                registry error instead of letting the last one win.

        Returns:
            The SpecificApi(api) variant if present, else the DefaultApi
            variant if present, else None.

        Raises:
            RegistryError: AMBIGUOUS_ENTITY when strict and the winning rule
                matches more than one variant.
        """
        specific = [v for v in self.variants if v.api == SpecificApi(api)]
        candidates = specific or [
            v for v in self.variants if isinstance(v.api, DefaultApi)
        ]
        if not candidates:
            return None
        if strict and len(candidates) > 1:
            raise RegistryError(
                "AMBIGUOUS_ENTITY",
                f"{len(candidates)} definitions of {self.name} apply to api {api}",
            )
        return candidates[-1]

    def __len__(self) -> int:
        return len(self.variants)


EntityMap = dict[str, ApiEntity]

ENTITY_KINDS: tuple[str, ...] = ("type", "enum", "group", "command")


# ===--- XML parsing ---=== #


def _element_hint(e: ET.Element) -> str:
    name = e.get("name")
    return f"<{e.tag} name={name!r}>" if name else f"<{e.tag}>"


def _require_attr(e: ET.Element, attr: str) -> str:
    value = e.get(attr)
    if not value:
        raise RegistryError(
            "MISSING_ATTRIBUTE",
            f'{_element_hint(e)} missing "{attr}" attribute',
        )
    return value


def _normalize_ctype(text: str) -> str:
    return " ".join(text.split())


def parse_type(e: ET.Element) -> TypeInfo:
    name = e.get("name") or ""
    parts = [e.text or ""]
    for child in e:
        if child.tag == "name":
            name = child.text or ""
            parts.append(" " + name)
        elif child.tag == "apientry":
            parts.append(" GL_APIENTRY ")
        else:
            raise RegistryError(
                "UNEXPECTED_ELEMENT",
                f'Unexpected element "{child.tag}" in type definition {_element_hint(e)}',
            )
        parts.append(child.tail or "")
    if not name:
        raise RegistryError("MISSING_ATTRIBUTE", 'Type missing "name" attribute')
    return TypeInfo(
        name=name,
        cdecl="".join(parts),
        requires=e.get("requires") or None,
        api=api_tag(e.get("api")),
    )


def parse_enumerant(e: ET.Element) -> EnumerantInfo:
    name = e.get("name")
    value = e.get("value")
    if not name or not value:
        raise RegistryError(
            "MISSING_ATTRIBUTE",
            f'Enumerant {_element_hint(e)} missing "name" or "value" attribute',
        )
    return EnumerantInfo(
        name=name,
        value=value,
        suffix=e.get("type", ""),
        alias=e.get("alias") or None,
        api=api_tag(e.get("api")),
    )


def parse_group(e: ET.Element, enum_map: EntityMap, api: str) -> GroupInfo:
    name = _require_attr(e, "name")
    members: list[EnumerantInfo] = []
    for ref in e.findall("enum"):
        ref_name = ref.get("name")
        if not ref_name:
            raise RegistryError(
                "MISSING_ATTRIBUTE",
                f"Enum reference in group {name} missing name attribute",
            )
        entity = enum_map.get(ref_name)
        if entity is None:
            raise RegistryError(
                "UNDEFINED_ENTITY",
                f"Reference to undefined enum {ref_name} in group {name}",
            )
        info = entity.get(api)
        if info is None:
            raise RegistryError(
                "UNDEFINED_ENTITY",
                f"Failed to find enum {ref_name} for api {api}",
            )
        members.append(info)
    return GroupInfo(name=name, enums=tuple(members), api=api_tag(e.get("api")))


def parse_param(e: ET.Element) -> ParamInfo:
    name = ""
    referenced: str | None = None
    ctype = [e.text or ""]
    for child in e:
        if child.tag == "ptype":
            referenced = child.text or ""
            ctype.append(referenced)
        elif child.tag == "name":
            name = child.text or ""
        else:
            raise RegistryError(
                "UNEXPECTED_ELEMENT",
                f'Unknown tag "{child.tag}" in parameter {name or "<unnamed>"}',
            )
        ctype.append(child.tail or "")
    return ParamInfo(
        name=name,
        ctype=_normalize_ctype("".join(ctype)),
        referenced_api_type=referenced or None,
        group=e.get("group") or None,
        length=e.get("len") or None,
    )


def parse_command(e: ET.Element) -> CommandInfo:
    proto = e.find("proto")
    if proto is None:
        raise RegistryError(
            "MISSING_ATTRIBUTE", f"Command {_element_hint(e)} missing <proto> element"
        )
    name = ""
    referenced: str | None = None
    prototype = [proto.text or ""]
    return_ctype = [proto.text or ""]
    for child in proto:
        if child.tag == "ptype":
            referenced = child.text or ""
            prototype.append(referenced)
            return_ctype.append(" " + referenced)
        elif child.tag == "name":
            name = child.text or ""
            prototype.append(name)
        else:
            raise RegistryError(
                "UNEXPECTED_ELEMENT",
                f'Unknown tag "{child.tag}" in prototype of {name or "<unnamed>"}',
            )
        prototype.append(child.tail or "")
        return_ctype.append(" " + (child.tail or ""))
    if not name:
        raise RegistryError("MISSING_ATTRIBUTE", "Command prototype missing <name>")

    alias_el = e.find("alias")
    vecequiv_el = e.find("vecequiv")
    return CommandInfo(
        name=name,
        prototype="".join(prototype),
        return_ctype=_normalize_ctype("".join(return_ctype)),
        referenced_api_type=referenced or None,
        params=tuple(parse_param(p) for p in e.findall("param")),
        alias=alias_el.get("name") if alias_el is not None else None,
        vecequiv=vecequiv_el.get("name") if vecequiv_el is not None else None,
        api=api_tag(e.get("api")),
    )


def _load_into(
    entity_map: EntityMap,
    elements: Iterable[ET.Element],
    parse: Callable[[ET.Element], EntityT],
) -> None:
    for element in elements:
        info = parse(element)
        entity = entity_map.get(info.name)
        if entity is None:
            entity = entity_map[info.name] = ApiEntity(info.name)
        entity.add(info)


# ===--- Entity store ---=== #


@dataclass
class EntityStore:
    """Name-keyed variant maps for every entity kind in one registry.

    Built once by load_entity_store. Never shrinks: removal directives only
    change SelectionState membership.
    """

    types: EntityMap = field(default_factory=dict)
    enums: EntityMap = field(default_factory=dict)
    groups: EntityMap = field(default_factory=dict)
    commands: EntityMap = field(default_factory=dict)
    strict: bool = False

    def entity_map(self, kind: str) -> EntityMap:
        if kind == "type":
            return self.types
        if kind == "enum":
            return self.enums
        if kind == "group":
            return self.groups
        if kind == "command":
            return self.commands
        raise ValueError(f"Unknown entity kind: {kind}")

    def lookup(self, kind: str, name: str, api: str):
        """Return the variant of a named entity that applies to api.

        Args:
            kind: One of ENTITY_KINDS.
            name: Entity name, e.g. "glBindTexture".
            api: Requested API name.

        Returns:
            The matching TypeInfo / EnumerantInfo / GroupInfo / CommandInfo.

        Raises:
            RegistryError: UNDEFINED_ENTITY when the name is unknown or has no
                variant for api. AMBIGUOUS_ENTITY in strict mode.
        """
        entity = self.entity_map(kind).get(name)
        if entity is None:
            raise RegistryError(
                "UNDEFINED_ENTITY", f"Reference to undefined {kind} {name}"
            )
        info = entity.get(api, strict=self.strict)
        if info is None:
            raise RegistryError(
                "UNDEFINED_ENTITY", f"Failed to find {kind} {name} for api {api}"
            )
        return info


def load_entity_store(root: ET.Element, api: str, strict: bool = False) -> EntityStore:
    """Load every type, command, enumerant and group from a registry root.

    Groups are loaded last: their members are enumerant references that
    must already resolve for api.

    Args:
        root: Registry XML root element.
        api: Requested API, used to resolve group members.
        strict: Forwarded to EntityStore.strict.

    Returns:
        Populated EntityStore.

    Raises:
        RegistryError: On a missing required attribute, an unexpected element
            or a group member that names an undefined enumerant.
    """
    store = EntityStore(strict=strict)
    _load_into(store.types, root.findall("types/type"), parse_type)
    _load_into(store.commands, root.findall("commands/command"), parse_command)
    _load_into(store.enums, root.findall("enums/enum"), parse_enumerant)
    _load_into(
        store.groups,
        root.findall("groups/group"),
        lambda e: parse_group(e, store.enums, api),
    )
    return store


# ===--- Registry diffs ---=== #


@dataclass(frozen=True)
class EntityRef:
    kind: str
    name: str


@dataclass(frozen=True)
class DirectiveBlock:
    """One <require> or <remove> block of a feature or extension.

    Attributes:
        require: True for <require>, False for <remove>.
        refs: Entity references in document order.
        profile: Profile scope ("core" / "compatibility"), or None.
    """

    require: bool
    refs: tuple[EntityRef, ...]
    profile: str | None = None


@dataclass(frozen=True)
class FeatureBlock:
    api: str
    name: str
    number: str
    blocks: tuple[DirectiveBlock, ...]


@dataclass(frozen=True)
class ExtensionBlock:
    name: str
    supported: str
    blocks: tuple[DirectiveBlock, ...]


def parse_directive_blocks(container: ET.Element) -> tuple[DirectiveBlock, ...]:
    blocks: list[DirectiveBlock] = []
    for op in container:
        if op.tag not in ("require", "remove"):
            continue
        refs: list[EntityRef] = []
        for ref in op:
            if ref.tag not in ENTITY_KINDS:
                continue
            refs.append(EntityRef(ref.tag, _require_attr(ref, "name")))
        blocks.append(
            DirectiveBlock(
                require=op.tag == "require",
                refs=tuple(refs),
                profile=op.get("profile") or None,
            )
        )
    return tuple(blocks)


def load_features(root: ET.Element) -> list[FeatureBlock]:
    features: list[FeatureBlock] = []
    for feat in root.findall("feature"):
        features.append(
            FeatureBlock(
                api=_require_attr(feat, "api"),
                name=feat.get("name", ""),
                number=feat.get("number", ""),
                blocks=parse_directive_blocks(feat),
            )
        )
    return features


def load_extensions(root: ET.Element) -> list[ExtensionBlock]:
    extensions: list[ExtensionBlock] = []
    for ext in root.findall("extensions/extension"):
        extensions.append(
            ExtensionBlock(
                name=_require_attr(ext, "name"),
                supported=_require_attr(ext, "supported"),
                blocks=parse_directive_blocks(ext),
            )
        )
    return extensions


# ===--- Selection and operation replay ---=== #


class SelectionState:
    """Names of the entities currently selected for output, per kind.

    Each kind is an insertion-ordered set so repeated runs emit groups,
    enumerants and commands in the same order.
    """

    def __init__(self) -> None:
        self._sets: dict[str, dict[str, None]] = {kind: {} for kind in ENTITY_KINDS}

    def add(self, kind: str, name: str) -> None:
        self._sets[kind][name] = None

    def discard(self, kind: str, name: str) -> None:
        self._sets[kind].pop(name, None)

    def names(self, kind: str) -> tuple[str, ...]:
        return tuple(self._sets[kind])

    def contains(self, kind: str, name: str) -> bool:
        return name in self._sets[kind]

    def snapshot(self) -> dict[str, frozenset[str]]:
        return {kind: frozenset(names) for kind, names in self._sets.items()}

    @property
    def types(self) -> tuple[str, ...]:
        return self.names("type")

    @property
    def enums(self) -> tuple[str, ...]:
        return self.names("enum")

    @property
    def groups(self) -> tuple[str, ...]:
        return self.names("group")

    @property
    def commands(self) -> tuple[str, ...]:
        return self.names("command")


def _block_applies(block: DirectiveBlock, profile: str) -> bool:
    return block.profile is None or block.profile == profile


def _require_command(
    name: str, store: EntityStore, selection: SelectionState, api: str
) -> None:
    # gl.xml rarely lists types or groups directly; they are implied by the
    # signatures of the commands that use them.
    command: CommandInfo = store.lookup("command", name, api)
    selection.add("command", name)
    if command.referenced_api_type:
        selection.add("type", command.referenced_api_type)
    for param in command.params:
        if param.referenced_api_type:
            selection.add("type", param.referenced_api_type)
        if param.group:
            selection.add("group", param.group)


def apply_operations(
    blocks: Iterable[DirectiveBlock],
    store: EntityStore,
    selection: SelectionState,
    api: str,
    profile: str,
) -> None:
    """Replay require/remove blocks onto a selection, in order.

    Blocks scoped to another profile are skipped. An api attribute on a
    block does not restrict it. Requiring a command also requires the API
    types of its return value and parameters and the groups of its
    parameters. Removal never cascades.

    Args:
        blocks: Directive blocks in document order.
        store: Loaded registry entities, used to read command signatures.
        selection: Selection to mutate.
        api: Requested API name.
        profile: Requested profile.

    Raises:
        RegistryError: UNDEFINED_ENTITY when a required command has no
            definition for api.
    """
    for block in blocks:
        if not _block_applies(block, profile):
            continue
        for ref in block.refs:
            if not block.require:
                selection.discard(ref.kind, ref.name)
            elif ref.kind == "command":
                _require_command(ref.name, store, selection, api)
            else:
                selection.add(ref.kind, ref.name)


# ===--- Version resolution ---=== #


def parse_feature_version(feature: FeatureBlock) -> ApiVersion:
    m = _VERSION_RE.match(feature.number)
    if not m:
        raise RegistryError(
            "MALFORMED_VERSION",
            f'Feature {feature.name or feature.api} has malformed version "{feature.number}"',
        )
    return ApiVersion(int(m.group(1)), int(m.group(2)))


def resolve_versions(
    features: Iterable[FeatureBlock],
    store: EntityStore,
    selection: SelectionState,
    api: str,
    version: ApiVersion,
    profile: str,
) -> list[ApiVersion]:
    """Replay every feature of api up to and including version.

    Each feature is a diff against the previous version, so the features are
    sorted ascending (document order is not guaranteed) and applied until
    the first one above the target.

    Args:
        features: All feature blocks from load_features.
        store: Loaded registry entities.
        selection: Selection to mutate.
        api: Requested API name; features for other APIs are ignored.
        version: Target version (inclusive).
        profile: Requested profile.

    Returns:
        Versions applied, ascending.

    Raises:
        RegistryError: MALFORMED_VERSION for a feature of api whose number is
            not "major.minor". Propagated from apply_operations.
    """
    numbered = [(parse_feature_version(f), f) for f in features if f.api == api]
    numbered.sort(key=lambda pair: pair[0])

    applied: list[ApiVersion] = []
    for feature_version, feature in numbered:
        if feature_version > version:
            break
        apply_operations(feature.blocks, store, selection, api, profile)
        applied.append(feature_version)
    return applied


# ===--- Extension resolution ---=== #


def extension_supports_api(extension: ExtensionBlock, api: str) -> bool:
    """Return True when the extension's supported pattern matches all of api.

    The supported attribute is a regular expression such as "gl|glcore";
    it must match the whole API name, not a substring of it.
    """
    try:
        return re.fullmatch(extension.supported, api) is not None
    except re.error as err:
        raise RegistryError(
            "INVALID_PATTERN",
            f'Extension {extension.name} has invalid supported pattern "{extension.supported}": {err}',
        ) from err


def resolve_extensions(
    extensions: Iterable[ExtensionBlock],
    store: EntityStore,
    selection: SelectionState,
    api: str,
    requested: set[str],
    profile: str,
) -> list[str]:
    """Apply every requested extension that supports api.

    Consumed names are removed from requested. A requested extension that
    does not support api produces a warning on stderr and stays pending.

    Args:
        extensions: Extension blocks in document order.
        store: Loaded registry entities.
        selection: Selection to mutate.
        api: Requested API name.
        requested: Pending extension names. Mutated.
        profile: Requested profile.

    Returns:
        Names of the consumed extensions in document order.

    Raises:
        ConfigError: UNRESOLVED_EXTENSIONS when any requested name is still
            pending after the scan. All pending names are listed.
        RegistryError: INVALID_PATTERN, or propagated from apply_operations.
    """
    consumed: list[str] = []
    for extension in extensions:
        if extension.name not in requested:
            continue
        if not extension_supports_api(extension, api):
            print(
                f"WARNING: extension {extension.name} requested, "
                f"but not supported by API {api}",
                file=sys.stderr,
            )
            continue
        apply_operations(extension.blocks, store, selection, api, profile)
        requested.discard(extension.name)
        consumed.append(extension.name)

    if requested:
        raise ConfigError(
            "UNRESOLVED_EXTENSIONS",
            f"Invalid extensions specified: {', '.join(sorted(requested))}",
            "Check the names against the <extensions> section of the registry "
            "and the --api they support.",
        )
    return consumed


# ===--- Type dependency ordering ---=== #

# GLDEBUGPROC uses these without declaring them through "requires".
BOOTSTRAP_TYPES: tuple[str, ...] = ("GLenum", "GLuint", "GLsizei", "GLchar")

_UNVISITED = 0
_IN_PROGRESS = 1
_DONE = 2


def order_types(
    store: EntityStore,
    type_names: Iterable[str],
    api: str,
    bootstrap: tuple[str, ...] = BOOTSTRAP_TYPES,
) -> list[TypeInfo]:
    """Order types so that every "requires" dependency precedes its dependent.

    Every reachable type gets an index and an adjacency list of its
    requires edges; an iterative post-order walk then emits each type once.
    The bootstrap types are walked first, then type_names in order.

    Args:
        store: Loaded registry entities.
        type_names: Selected type names.
        api: Requested API name.
        bootstrap: Types forced to the front of the output.

    Returns:
        TypeInfo variants for api, in declaration order, without duplicates.

    Raises:
        RegistryError: UNDEFINED_ENTITY for an unknown type or one without a
            variant for api. TYPE_CYCLE when requires edges form a cycle.
    """
    index: dict[str, int] = {}
    infos: list[TypeInfo] = []
    edges: list[list[int]] = []

    def node(name: str) -> int:
        if name in index:
            return index[name]
        info: TypeInfo = store.lookup("type", name, api)
        index[name] = len(infos)
        infos.append(info)
        edges.append([])
        return index[name]

    roots = [node(name) for name in (*bootstrap, *type_names)]
    pending = list(roots)
    while pending:
        current = pending.pop()
        requires = infos[current].requires
        if requires and not edges[current]:
            is_new = requires not in index
            dep = node(requires)
            edges[current].append(dep)
            if is_new:
                pending.append(dep)

    state = [_UNVISITED] * len(infos)
    ordered: list[TypeInfo] = []
    for root in roots:
        if state[root] != _UNVISITED:
            continue
        state[root] = _IN_PROGRESS
        stack: list[tuple[int, int]] = [(root, 0)]
        while stack:
            current, edge_pos = stack[-1]
            if edge_pos < len(edges[current]):
                stack[-1] = (current, edge_pos + 1)
                dep = edges[current][edge_pos]
                if state[dep] == _IN_PROGRESS:
                    path = [infos[n].name for n, _ in stack]
                    cycle = path[path.index(infos[dep].name) :] + [infos[dep].name]
                    raise RegistryError(
                        "TYPE_CYCLE",
                        f"Type dependency cycle: {' -> '.join(cycle)}",
                    )
                if state[dep] == _UNVISITED:
                    state[dep] = _IN_PROGRESS
                    stack.append((dep, 0))
            else:
                stack.pop()
                state[current] = _DONE
                ordered.append(infos[current])
    return ordered


# ===--- Output sinks ---=== #


@dataclass(frozen=True)
class FileWriteResult:
    """Result of writing a single generated file.

    Attributes:
        filename: Filename written, e.g. "gl.h".
        path: Absolute path of the written file.
        line_count: Number of newline characters in the written content.
        byte_count: Number of bytes written (UTF-8 encoded).
    """

    filename: str
    path: Path
    line_count: int
    byte_count: int


class OutputSink:
    """Receives the resolved entity set. Every callback defaults to a no-op.

    Subclass and override the callbacks you need, then register a factory
    in GENERATORS.
    """

    def on_start(
        self, name: str, api: str, profile: str, version_major: int, version_minor: int
    ) -> None:
        pass

    def on_type(self, info: TypeInfo) -> None:
        pass

    def on_enum_group(self, info: GroupInfo) -> None:
        pass

    def on_enumerant(self, info: EnumerantInfo) -> None:
        pass

    def on_command(self, info: CommandInfo) -> None:
        pass

    def on_end(self) -> None:
        pass

    def files_written(self) -> tuple[FileWriteResult, ...]:
        return ()


HEADER_PREAMBLE = """\
/* This file was auto-generated by glgen */
#ifndef _GLGEN_HEADER_
#define _GLGEN_HEADER_
#if defined(__gl_h_) || defined(__GL_H__) || defined(__glext_h_) || defined(__GLEXT_H_) || defined(__gltypes_h_) || defined(__glcorearb_h_) || defined(__gl_glcorearb_h)
#error glgen-generated header included after a GL header.
#endif

#define __gl_h_ 1
#define __gl32_h_ 1
#define __gl31_h_ 1
#define __GL_H__ 1
#define __glext_h_ 1
#define __GLEXT_H_ 1
#define __gltypes_h_ 1
#define __glcorearb_h_ 1
#define __gl_glcorearb_h_ 1

#if defined(_WIN32)
#define WIN32_LEAN_AND_MEAN
#include <windows.h>
#define GL_APIENTRY APIENTRY
#else
#define GL_APIENTRY
#endif

#if defined(__cplusplus)
extern "C" {
#endif
"""

HEADER_EPILOGUE = """\
#if defined(__cplusplus)
}
#endif
#endif
"""

SOURCE_PREAMBLE = """\
/* This file was auto-generated by glgen */
#include <assert.h>
#if defined(_WIN32)
void* GlgenGetProcAddress(const char *name) {
  static HMODULE opengl32module = NULL;
  static PROC(WINAPI *wgl_get_proc_address)(LPCSTR name) = NULL;
  if (!wgl_get_proc_address) {
    if (!opengl32module) {
      opengl32module = LoadLibraryA("opengl32.dll");
    }
    wgl_get_proc_address = (PROC(WINAPI*)(LPCSTR))GetProcAddress(opengl32module, "wglGetProcAddress");
    assert(wgl_get_proc_address);
  }
  void *ptr = (void *)wgl_get_proc_address(name);
  if (ptr == 0 || (ptr == (void*)1) || (ptr == (void*)2) || (ptr == (void*)3) ||
      (ptr == (void*)-1)) {
    if (opengl32module == NULL) {
      opengl32module = LoadLibraryA("opengl32.dll");
      assert(opengl32module);
    }
    ptr = (void *)GetProcAddress(opengl32module, name);
  }
  return ptr;
}

#elif defined(__APPLE__)
#include <dlfcn.h>

static void* GlgenGetProcAddress(const char *name) {
  static void* lib = NULL;
  if (NULL == lib)
    lib = dlopen(
      "/System/Library/Frameworks/OpenGL.framework/Versions/Current/OpenGL",
      RTLD_LAZY);
  return lib ? dlsym(lib, name) : NULL;
}
#elif defined(__ANDROID__)
#include <dlfcn.h>
#if GLGEN_API_VER_MAJ == 3
#define GLGEN_GLES_LIB "libGLESv3.so"
#elif GLGEN_API_VER_MAJ == 2
#define GLGEN_GLES_LIB "libGLESv2.so"
#else
#define GLGEN_GLES_LIB "libGLESv1_CM.so"
#endif
static void* GlgenGetProcAddress(const char *name) {
  static void* lib = NULL;
  if (NULL == lib) {
    lib = dlopen(GLGEN_GLES_LIB, RTLD_LAZY);
    assert(lib);
  }
  return lib ? dlsym(lib, name) : NULL;
}

#else

#include <GL/glx.h>
#define GlgenGetProcAddress(name) (*glXGetProcAddressARB)((const GLubyte*)name)

#endif
"""


def format_header_start(api: str, profile: str, version: ApiVersion) -> list[str]:
    return [
        HEADER_PREAMBLE,
        f'#define GLGEN_API_NAME "{api}"',
        f'#define GLGEN_API_PROFILE "{profile}"',
        f"#define GLGEN_API_VER_MAJ {version.major}",
        f"#define GLGEN_API_VER_MIN {version.minor}",
    ]


def format_enumerant(info: EnumerantInfo) -> list[str]:
    lines = [f"#define {info.name} {info.value}{info.suffix}"]
    if info.alias:
        lines.append(f"#define {info.alias} {info.value}{info.suffix}")
    return lines


def format_parameter_lists(info: CommandInfo) -> tuple[str, str]:
    """Return (signature, call) parameter lists for a command.

    The signature pairs each C type with its parameter name; the call list
    has the names only, for forwarding.
    """
    signature = ", ".join(f"{p.ctype} {p.name}" for p in info.params)
    call = ", ".join(p.name for p in info.params)
    return signature, call


def format_command_header(info: CommandInfo) -> list[str]:
    """Return the header declarations for one command.

    Output shape:
        typedef RET (GL_APIENTRY *PFN_glFoo)(PARAMS);
        extern PFN_glFoo _glptr_glFoo;
        #define glFoo _glptr_glFoo
        #define glFooEXT glFoo            <- only when the command has an alias
    """
    signature, _ = format_parameter_lists(info)
    lines = [
        "",
        f"typedef {info.return_ctype} (GL_APIENTRY *PFN_{info.name})({signature});",
        f"extern PFN_{info.name} _glptr_{info.name};",
        f"#define {info.name} _glptr_{info.name}",
    ]
    if info.alias:
        lines.append(f"#define {info.alias} {info.name}")
    return lines


def format_command_source(info: CommandInfo, null_driver: bool) -> list[str]:
    """Return the loader stub and pointer definition for one command.

    The loader stub resolves the real entry point on first call, stores it
    in the pointer and forwards the call. The null-driver stub returns a
    zero value of the return type instead.

    Args:
        info: Command to render.
        null_driver: Emit do-nothing stubs instead of loading stubs.

    Returns:
        Source lines, ending with a blank separator line.
    """
    signature, call = format_parameter_lists(info)
    returns_value = info.return_ctype != "void"
    lines = [
        f"static {info.return_ctype} GL_APIENTRY _impl_{info.name} ({signature}) {{"
    ]
    if null_driver:
        if returns_value:
            lines.append(f"  return ({info.return_ctype})0;")
    else:
        lines.append(
            f'  _glptr_{info.name} = (PFN_{info.name})GlgenGetProcAddress("{info.name}");'
        )
        keyword = "return " if returns_value else ""
        lines.append(f"  {keyword}_glptr_{info.name}({call});")
    lines.append("}")
    lines.append(f"PFN_{info.name} _glptr_{info.name} = _impl_{info.name};")
    lines.append("")
    return lines


def _write_text(path: Path, content: str) -> FileWriteResult:
    path.write_text(content, encoding="utf-8")
    resolved = path.resolve()
    return FileWriteResult(
        filename=path.name,
        path=resolved,
        line_count=content.count("\n"),
        byte_count=len(resolved.read_bytes()),
    )


class CLoaderSink(OutputSink):
    """Writes <name>.h with declarations and <name>.c with loader stubs.

    Lines are buffered during emission and both files are written in
    on_end, so a fatal error mid-emission leaves no half-written output.
    """

    def __init__(self, output_dir: Path, null_driver: bool = False) -> None:
        self.output_dir = Path(output_dir)
        self.null_driver = null_driver
        self.name = ""
        self.header_lines: list[str] = []
        self.source_lines: list[str] = []
        self._written: tuple[FileWriteResult, ...] = ()

    def on_start(
        self, name: str, api: str, profile: str, version_major: int, version_minor: int
    ) -> None:
        self.name = name
        self.header_lines = format_header_start(
            api, profile, ApiVersion(version_major, version_minor)
        )
        self.source_lines = [f'#include "{name}.h"']
        if not self.null_driver:
            self.source_lines.append(SOURCE_PREAMBLE)

    def on_type(self, info: TypeInfo) -> None:
        self.header_lines.append(info.cdecl)

    def on_enumerant(self, info: EnumerantInfo) -> None:
        self.header_lines.extend(format_enumerant(info))

    def on_command(self, info: CommandInfo) -> None:
        self.header_lines.extend(format_command_header(info))
        self.source_lines.extend(format_command_source(info, self.null_driver))

    def on_end(self) -> None:
        self.header_lines.append(HEADER_EPILOGUE)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self._written = (
            _write_text(
                self.output_dir / f"{self.name}.h", "\n".join(self.header_lines)
            ),
            _write_text(
                self.output_dir / f"{self.name}.c", "\n".join(self.source_lines) + "\n"
            ),
        )

    def files_written(self) -> tuple[FileWriteResult, ...]:
        return self._written


def _c_noload(output_dir: Path) -> OutputSink:
    return CLoaderSink(output_dir)


def _c_nulldriver(output_dir: Path) -> OutputSink:
    return CLoaderSink(output_dir, null_driver=True)


GENERATORS: dict[str, Callable[[Path], OutputSink]] = {
    "c_noload": _c_noload,
    "c_nulldriver": _c_nulldriver,
}
"""Output sinks selectable with --generator, by name."""


def create_sink(generator: str, output_dir: Path) -> OutputSink:
    factory = GENERATORS.get(generator)
    if factory is None:
        raise ConfigError(
            "UNKNOWN_GENERATOR",
            f'Invalid generator "{generator}" specified.',
            f"Use one of: {', '.join(sorted(GENERATORS))}.",
        )
    return factory(output_dir)


# ===--- Emission ---=== #


@dataclass(frozen=True)
class EmissionCounts:
    types: int
    groups: int
    enumerants: int
    commands: int
    skipped_groups: int = 0


def emit_selection(
    store: EntityStore,
    selection: SelectionState,
    ordered_types: list[TypeInfo],
    sink: OutputSink,
    name: str,
    api: str,
    profile: str,
    version: ApiVersion,
) -> EmissionCounts:
    """Drive a sink through the finalized selection.

    Types go out in the given dependency order. Groups, enumerants and
    commands follow in selection order, which callers must not rely on.
    A selected group with no definition at all is skipped silently: the
    registry allows references to groups it never declares.

    Args:
        store: Loaded registry entities.
        selection: Finalized selection.
        ordered_types: Output of order_types.
        sink: Receiver of the callbacks.
        name: Output base name passed to on_start.
        api: Requested API name.
        profile: Requested profile.
        version: Target version.

    Returns:
        EmissionCounts for the summary report.

    Raises:
        RegistryError: UNDEFINED_ENTITY for a selected enumerant or command
            without a definition for api, or a declared group without one.
    """
    sink.on_start(name, api, profile, version.major, version.minor)

    for info in ordered_types:
        sink.on_type(info)

    group_count = 0
    skipped_groups = 0
    for group_name in selection.groups:
        if group_name not in store.groups:
            skipped_groups += 1
            continue
        sink.on_enum_group(store.lookup("group", group_name, api))
        group_count += 1

    for enum_name in selection.enums:
        sink.on_enumerant(store.lookup("enum", enum_name, api))

    for command_name in selection.commands:
        sink.on_command(store.lookup("command", command_name, api))

    sink.on_end()
    return EmissionCounts(
        types=len(ordered_types),
        groups=group_count,
        enumerants=len(selection.enums),
        commands=len(selection.commands),
        skipped_groups=skipped_groups,
    )


# ===--- Summary report ---=== #


@dataclass(frozen=True)
class GenerationSummary:
    """Immutable data for the post-generation console report.

    Attributes:
        target_label: e.g. "gl 4.5 core + GL_KHR_debug".
        source_label: Registry path as given on the command line.
        generator: Name of the sink used.
        features: Feature versions replayed, ascending.
        counts: Emitted entity counts.
        files: Files written by the sink, in write order.
    """

    target_label: str
    source_label: str
    generator: str
    features: tuple[ApiVersion, ...]
    counts: EmissionCounts
    files: tuple[FileWriteResult, ...]


def build_target_label(config: GenerateConfig) -> str:
    label = f"{config.api} {config.version} {config.profile}"
    if config.extensions:
        label += " + " + ", ".join(sorted(config.extensions))
    return label


def build_generation_summary(
    config: GenerateConfig,
    applied: list[ApiVersion],
    counts: EmissionCounts,
    files: tuple[FileWriteResult, ...],
) -> GenerationSummary:
    return GenerationSummary(
        target_label=build_target_label(config),
        source_label=str(config.registry),
        generator=config.generator,
        features=tuple(applied),
        counts=counts,
        files=files,
    )


def format_generation_summary(summary: GenerationSummary) -> str:
    """Render a GenerationSummary as a multi-line console string.

    The skipped-groups annotation appears only when groups were skipped.
    Returns a string with exactly one trailing newline.
    """
    features = ", ".join(str(v) for v in summary.features) or "none"
    lines: list[str] = [
        f"{summary.target_label} loader generated:",
        "",
        f"  Source:     {summary.source_label}",
        f"  Generator:  {summary.generator}",
        f"  Features:   {features}",
        "",
        "  Entities emitted:",
        f"    {'Types:':<12}{summary.counts.types:>6}",
    ]
    groups_row = f"    {'Groups:':<12}{summary.counts.groups:>6}"
    if summary.counts.skipped_groups:
        groups_row += f"  ({summary.counts.skipped_groups} undeclared, skipped)"
    lines.append(groups_row)
    lines.append(f"    {'Enumerants:':<12}{summary.counts.enumerants:>6}")
    lines.append(f"    {'Commands:':<12}{summary.counts.commands:>6}")

    if summary.files:
        lines.append("")
        lines.append("  Files written:")
        for file_result in summary.files:
            lines.append(
                f"    {file_result.filename:<28} {file_result.line_count:>6,} lines"
            )
    lines.append("")
    return "\n".join(lines)


# ===--- Pipeline ---=== #


def resolve_selection(
    root: ET.Element,
    store: EntityStore,
    config: GenerateConfig,
) -> tuple[SelectionState, list[ApiVersion]]:
    """Build the finalized selection for config: versions first, then extensions.

    Returns:
        The selection and the feature versions that were replayed.

    Raises:
        ConfigError: UNRESOLVED_EXTENSIONS from resolve_extensions.
        RegistryError: Propagated from the loaders and resolvers.
    """
    selection = SelectionState()
    applied = resolve_versions(
        load_features(root),
        store,
        selection,
        config.api,
        config.version,
        config.profile,
    )
    resolve_extensions(
        load_extensions(root),
        store,
        selection,
        config.api,
        set(config.extensions),
        config.profile,
    )
    return selection, applied


def run_generate(config: GenerateConfig) -> GenerationSummary:
    """Execute the complete generation pipeline for a GenerateConfig.

    parse -> load entities -> resolve versions -> resolve extensions ->
    order types -> emit -> summarize.

    Raises:
        OSError: Registry not readable or output not writable.
        ET.ParseError: Malformed XML.
        ConfigError: Unresolved extensions.
        RegistryError: Malformed or inconsistent registry content.
    """
    print(f"Parsing: {config.registry}")
    root = ET.parse(config.registry).getroot()

    store = load_entity_store(root, config.api, strict=config.strict)
    print(
        f"  Registry: {len(store.types)} types, {len(store.enums)} enumerants, "
        f"{len(store.groups)} groups, {len(store.commands)} commands"
    )

    selection, applied = resolve_selection(root, store, config)
    print(
        f"  Selection: {len(selection.types)} types, {len(selection.enums)} enumerants, "
        f"{len(selection.commands)} commands"
    )

    ordered_types = order_types(store, selection.types, config.api)
    print(f"  Types: {len(ordered_types)} in declaration order")

    sink = create_sink(config.generator, config.output_dir)
    counts = emit_selection(
        store,
        selection,
        ordered_types,
        sink,
        config.filename,
        config.api,
        config.profile,
        config.version,
    )
    summary = build_generation_summary(config, applied, counts, sink.files_written())
    print(format_generation_summary(summary), end="")
    return summary


# ===--- Main ---=== #


def main(argv: list[str] | None = None) -> None:
    parser = build_argument_parser()
    args = parser.parse_args(argv)
    if args.registry is None:
        parser.print_help()
        return

    try:
        config = validate_config(args)
        run_generate(config)
    except ConfigError as err:
        print(f"Config error [{err.code}]: {err.message}", file=sys.stderr)
        if err.suggestion:
            print(f"Hint: {err.suggestion}", file=sys.stderr)
        raise SystemExit(1) from err
    except RegistryError as err:
        print(f"Registry error [{err.code}]: {err.message}", file=sys.stderr)
        raise SystemExit(1) from err
    except (OSError, ET.ParseError) as err:
        print(f"Error: {err}", file=sys.stderr)
        raise SystemExit(1) from err

    print("Generation finished successfully!")


if __name__ == "__main__":
    main()
