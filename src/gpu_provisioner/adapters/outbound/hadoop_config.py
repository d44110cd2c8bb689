"""ConfigStorePort implementation for Hadoop and Spark configuration files.

Supported formats, chosen by file extension:
- ``.xml``: Hadoop ``<configuration><property>`` documents
- ``.cfg``: container-executor.cfg, ``key=value`` lines with ``[section]`` headers
- ``.sh``: environment files of ``export KEY=value`` lines

Every write replaces the existing value, so repeating a write leaves the
file unchanged.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Optional, Sequence

from gpu_provisioner.ports.outbound import ConfigStoreError

logger = logging.getLogger(__name__)

XML_DECLARATION = '<?xml version="1.0" ?>'
EMPTY_CONFIGURATION = f"{XML_DECLARATION}\n<configuration/>"
BLOCK_BEGIN = "###### BEGIN : {marker}"
BLOCK_END = "###### END   : {marker}"

_SECTION_RE = re.compile(r"^\s*\[(?P<name>[^\]]+)\]\s*$")
_ROOT_START_RE = re.compile(r"<configuration[\s/>]")
_DECLARATION_RE = re.compile(r"^\s*<\?xml\s[^?]*\?>")


def _cfg_key(line: str) -> Optional[str]:
    stripped = line.strip()
    if not stripped or stripped.startswith("#") or "=" not in stripped:
        return None
    return stripped.split("=", 1)[0].strip()


def _xml_prolog(text: str) -> str:
    """Comments and processing instructions between the declaration and the root."""
    match = _ROOT_START_RE.search(text)
    if match is None:
        return ""
    prolog = _DECLARATION_RE.sub("", text[: match.start()], count=1).strip()
    return f"{prolog}\n" if prolog else ""


def _parse_configuration(text: str) -> ET.Element:
    parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))
    try:
        root = ET.fromstring(text, parser=parser)
    except ET.ParseError as e:
        raise ConfigStoreError(f"Malformed Hadoop configuration: {e}") from e
    if root.tag != "configuration":
        raise ConfigStoreError(f"Unexpected root element <{root.tag}>")
    return root


def _render_configuration(text: str, root: ET.Element) -> str:
    ET.indent(root, space="  ")
    return f"{XML_DECLARATION}\n{_xml_prolog(text)}{ET.tostring(root, encoding='unicode')}\n"


def _named_properties(root: ET.Element, key: str) -> list[ET.Element]:
    return [
        prop for prop in root.findall("property")
        if (prop.findtext("name") or "").strip() == key
    ]


def set_xml_property(text: str, key: str, value: str) -> str:
    """Set a Hadoop configuration property in an XML document.

    The prolog (license comment, ``<?xml-stylesheet?>``) is kept. Anything
    after the closing ``</configuration>`` is dropped.
    """
    root = _parse_configuration(text)

    matches = _named_properties(root, key)
    if matches:
        prop = matches[0]
        value_element = prop.find("value")
        if value_element is None:
            value_element = ET.SubElement(prop, "value")
        value_element.text = value
        for duplicate in matches[1:]:
            root.remove(duplicate)
    else:
        prop = ET.SubElement(root, "property")
        ET.SubElement(prop, "name").text = key
        ET.SubElement(prop, "value").text = value

    return _render_configuration(text, root)


def unset_xml_property(text: str, key: str) -> str:
    """Remove every definition of a property; unchanged text if there is none."""
    root = _parse_configuration(text)
    matches = _named_properties(root, key)
    if not matches:
        return text
    for prop in matches:
        root.remove(prop)
    return _render_configuration(text, root)


def _section_bounds(lines: list[str], section: Optional[str]) -> Optional[tuple[int, int]]:
    """Line range of a ``[section]`` body, or of the top level when section is None."""
    headers = [i for i, line in enumerate(lines) if _SECTION_RE.match(line)]
    if section is None:
        return 0, headers[0] if headers else len(lines)

    header = next(
        (i for i in headers if _SECTION_RE.match(lines[i]).group("name").strip() == section),
        None,
    )
    if header is None:
        return None
    return header + 1, next((i for i in headers if i > header), len(lines))


def set_cfg_property(text: str, key: str, value: str, section: Optional[str] = None) -> str:
    """Set ``key=value`` at top level or inside a ``[section]``."""
    lines = text.splitlines()
    entry = f"{key}={value}"

    bounds = _section_bounds(lines, section)
    if bounds is None:
        if lines and lines[-1].strip():
            lines.append("")
        lines.extend([f"[{section}]", entry])
        return "\n".join(lines) + "\n"
    start, end = bounds

    matches = [i for i in range(start, end) if _cfg_key(lines[i]) == key]
    if matches:
        lines[matches[0]] = entry
        for i in reversed(matches[1:]):
            del lines[i]
    else:
        content = [i for i in range(start, end) if lines[i].strip()]
        lines.insert(content[-1] + 1 if content else start, entry)

    return "\n".join(lines) + "\n"


def unset_cfg_property(text: str, key: str, section: Optional[str] = None) -> str:
    lines = text.splitlines()
    bounds = _section_bounds(lines, section)
    if bounds is None:
        return text
    start, end = bounds
    kept = [line for i, line in enumerate(lines) if not (start <= i < end and _cfg_key(line) == key)]
    if len(kept) == len(lines):
        return text
    return "\n".join(kept) + "\n"


def _export_pattern(key: str) -> re.Pattern[str]:
    return re.compile(rf"^\s*export\s+{re.escape(key)}=")


def unset_env_export(text: str, key: str) -> str:
    pattern = _export_pattern(key)
    lines = text.splitlines()
    kept = [line for line in lines if not pattern.match(line)]
    if len(kept) == len(lines):
        return text
    return "\n".join(kept) + "\n"


def set_env_export(text: str, key: str, value: str) -> str:
    """Set ``export KEY=value`` in a shell environment file."""
    pattern = _export_pattern(key)
    lines = text.splitlines()
    entry = f"export {key}={value}"

    matches = [i for i, line in enumerate(lines) if pattern.match(line)]
    if matches:
        lines[matches[0]] = entry
        for i in reversed(matches[1:]):
            del lines[i]
    else:
        lines.append(entry)
    return "\n".join(lines) + "\n"


def replace_block(text: str, marker: str, block: Sequence[str]) -> str:
    """Replace or append a BEGIN/END delimited block."""
    begin = BLOCK_BEGIN.format(marker=marker)
    end = BLOCK_END.format(marker=marker)
    rendered = [f"{begin} ######", *block, f"{end} ######"]
    lines = text.splitlines()

    start = next((i for i, line in enumerate(lines) if line.startswith(begin)), None)
    if start is not None:
        stop = next((i for i in range(start, len(lines)) if lines[i].startswith(end)), None)
        if stop is None:
            raise ConfigStoreError(f"Unterminated block '{marker}'")
        lines[start:stop + 1] = rendered
    else:
        if lines and lines[-1].strip():
            lines.append("")
        lines.extend(rendered)
    return "\n".join(lines) + "\n"


class HadoopConfigStore:
    """Edit configuration files in place."""

    def ensure_file(self, path: Path, initial_content: str) -> bool:
        if path.exists():
            return False
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(initial_content)
        logger.debug(f"Created {path}")
        return True

    def set_property(
        self,
        path: Path,
        key: str,
        value: str,
        section: Optional[str] = None,
    ) -> None:
        suffix = path.suffix
        if suffix == ".xml":
            text = path.read_text() if path.exists() else EMPTY_CONFIGURATION
            updated = set_xml_property(text, key, value)
        elif suffix == ".cfg":
            updated = set_cfg_property(self._read(path), key, value, section)
        elif suffix == ".sh":
            updated = set_env_export(self._read(path), key, value)
        else:
            raise ConfigStoreError(f"Unsupported configuration file type: {path.name}")

        self._write(path, updated)
        logger.debug(f"{path.name}: {key}={value}" + (f" [{section}]" if section else ""))

    def unset_property(self, path: Path, key: str, section: Optional[str] = None) -> bool:
        if not path.exists():
            return False

        text = path.read_text()
        suffix = path.suffix
        if suffix == ".xml":
            updated = unset_xml_property(text, key)
        elif suffix == ".cfg":
            updated = unset_cfg_property(text, key, section)
        elif suffix == ".sh":
            updated = unset_env_export(text, key)
        else:
            raise ConfigStoreError(f"Unsupported configuration file type: {path.name}")

        if updated == text:
            return False
        self._write(path, updated)
        logger.debug(f"{path.name}: removed {key}" + (f" [{section}]" if section else ""))
        return True

    def write_block(self, path: Path, marker: str, lines: Sequence[str]) -> None:
        self._write(path, replace_block(self._read(path), marker, lines))

    @staticmethod
    def _read(path: Path) -> str:
        return path.read_text() if path.exists() else ""

    @staticmethod
    def _write(path: Path, content: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
