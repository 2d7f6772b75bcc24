import sys
import xml.etree.ElementTree as ET
from collections.abc import Callable
from pathlib import Path

import pytest

GENERATOR_DIR = Path(__file__).resolve().parent.parent
if str(GENERATOR_DIR) not in sys.path:
    sys.path.insert(0, str(GENERATOR_DIR))

import glgen  # noqa: E402

FIXTURE_REGISTRY = GENERATOR_DIR / "tests" / "fixtures" / "gl_minimal.xml"

# Smallest type section that satisfies the bootstrap types.
BOOTSTRAP_TYPES_XML = """
    <type>typedef unsigned int <name>GLenum</name>;</type>
    <type>typedef unsigned int <name>GLuint</name>;</type>
    <type>typedef int <name>GLsizei</name>;</type>
    <type>typedef char <name>GLchar</name>;</type>
"""


@pytest.fixture
def fixture_registry() -> Path:
    return FIXTURE_REGISTRY


@pytest.fixture
def make_registry_root() -> Callable[[str], ET.Element]:
    def _make_registry_root(inner_xml: str) -> ET.Element:
        return ET.fromstring(f"<registry>{inner_xml}</registry>")

    return _make_registry_root


@pytest.fixture
def make_store(
    make_registry_root: Callable[[str], ET.Element],
) -> Callable[..., glgen.EntityStore]:
    def _make_store(
        inner_xml: str, api: str = "gl", strict: bool = False
    ) -> glgen.EntityStore:
        return glgen.load_entity_store(make_registry_root(inner_xml), api, strict)

    return _make_store


@pytest.fixture
def make_config(tmp_path: Path) -> Callable[..., glgen.GenerateConfig]:
    def _make_config(**overrides: object) -> glgen.GenerateConfig:
        values: dict[str, object] = {
            "registry": FIXTURE_REGISTRY,
            "api": "gl",
            "version": glgen.ApiVersion(4, 0),
            "profile": "compatibility",
            "filename": "gl",
            "generator": "c_noload",
            "extensions": frozenset(),
            "output_dir": tmp_path / "out",
            "strict": False,
        }
        values.update(overrides)
        return glgen.GenerateConfig(**values)

    return _make_config


class RecordingSink(glgen.OutputSink):
    """Records every callback as (event, payload) in call order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, object]] = []

    def on_start(self, name, api, profile, version_major, version_minor):
        self.events.append(("start", (name, api, profile, version_major, version_minor)))

    def on_type(self, info):
        self.events.append(("type", info.name))

    def on_enum_group(self, info):
        self.events.append(("group", info.name))

    def on_enumerant(self, info):
        self.events.append(("enum", info.name))

    def on_command(self, info):
        self.events.append(("command", info.name))

    def on_end(self):
        self.events.append(("end", None))

    def names(self, event: str) -> list[object]:
        return [payload for kind, payload in self.events if kind == event]


@pytest.fixture
def recording_sink() -> RecordingSink:
    return RecordingSink()
