from __future__ import annotations

import logging
import os
import shutil
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

from .errors import SyncError
from .locations import LIB_DIR, STORAGE_DIR, FileLocationSet

logger = logging.getLogger(__name__)

SCHEMA_FILE = "schema.xml"
CONFIG_FILE = "solrconfig.xml"
IMPORT_DESCRIPTOR = "data-config.xml"

# Copied individually at the end of a pass, never by the bulk conf copy.
ALWAYS_COPY_LAST = frozenset({SCHEMA_FILE, CONFIG_FILE})

CONF_FILES_XPATH = (
    "./requestHandler[@class='solr.ReplicationHandler']"
    "/lst[@name='master']/str[@name='confFiles']"
)


def parse_replicated_files(config_path: str) -> frozenset[str]:
    """Return the uppercase names the master replicates to this node.

    Reads the replication handler's `confFiles` list from a server config
    file. A config without that declaration yields an empty set.
    """
    try:
        root = ET.parse(config_path).getroot()
    except (OSError, ET.ParseError) as e:
        raise SyncError(f"Cannot read replication declaration from {config_path}: {e}") from e

    if root.tag != "config":
        raise SyncError(f"{config_path} is not a server config: root element is <{root.tag}>, expected <config>")
    node = root.find(CONF_FILES_XPATH)
    if node is None or not (node.text or "").strip():
        return frozenset()
    return frozenset(part.strip().upper() for part in node.text.split(",") if part.strip())


def should_copy(dest_path: str, replicated: frozenset[str]) -> bool:
    """A replicated file is only protected once a local copy exists."""
    name = os.path.basename(dest_path).upper()
    return not os.path.exists(dest_path) or name not in replicated


@dataclass
class SyncReport:
    copied: list[str] = field(default_factory=list)
    protected: list[str] = field(default_factory=list)
    replicated: frozenset[str] = frozenset()


class ConfigSynchronizer:
    """Merges the server distribution and master templates into the storage tree.

    `server_root` is the unpacked server distribution, `template_root` holds
    the master-authored schema/config and the data-import descriptor.
    """

    def __init__(self, server_root: str, template_root: str, locations: FileLocationSet):
        self.server_root = server_root
        self.template_root = template_root
        self.locations = locations

    def storage_root(self, volume_root: str) -> str:
        return os.path.join(volume_root, STORAGE_DIR)

    def sync(self, volume_root: str) -> SyncReport:
        loc = self.locations
        storage = self.storage_root(volume_root)
        conf_dest = os.path.join(storage, loc.storage_conf_dir)
        lang_dest = os.path.join(storage, loc.storage_lang_dir)
        report = SyncReport()

        # 1. Registry comes from the template, not from the copy on the volume.
        report.replicated = parse_replicated_files(os.path.join(self.template_root, loc.config_xml))
        logger.info("Replicated conf files: %s", ", ".join(sorted(report.replicated)) or "(none)")

        # 2. Distribution conf files.
        for name, src in self._list_files(os.path.join(self.server_root, loc.solr_conf_dir)):
            if name in ALWAYS_COPY_LAST:
                continue
            self._copy_gated(src, os.path.join(conf_dest, name), report)

        # 3. Language resources are never replicated.
        for name, src in self._list_files(os.path.join(self.server_root, loc.solr_lang_dir)):
            self._copy(src, os.path.join(lang_dest, name), report)

        # 4. Master templates.
        self._copy(os.path.join(self.template_root, IMPORT_DESCRIPTOR), os.path.join(conf_dest, IMPORT_DESCRIPTOR), report)
        self._copy_gated(os.path.join(self.template_root, loc.schema_xml), os.path.join(conf_dest, SCHEMA_FILE), report)
        self._copy_gated(os.path.join(self.template_root, loc.config_xml), os.path.join(conf_dest, CONFIG_FILE), report)

        # 5. Libraries.
        self._refresh_libs(storage, report)

        logger.info("Sync done: %d copied, %d protected", len(report.copied), len(report.protected))
        return report

    def _refresh_libs(self, storage: str, report: SyncReport) -> None:
        lib_dest = os.path.join(storage, LIB_DIR)
        for name, src in self._list_files(os.path.join(self.server_root, self.locations.dist_dir)):
            self._copy(src, os.path.join(lib_dest, name), report)

        extraction = os.path.join(self.server_root, self.locations.extraction_lib_dir)
        try:
            shutil.copytree(extraction, lib_dest, copy_function=shutil.copyfile, dirs_exist_ok=True)
        except (OSError, shutil.Error) as e:
            raise SyncError(f"Copying extraction libraries from {extraction} failed: {e}") from e
        report.copied.append(os.path.relpath(extraction, self.server_root))

    def _list_files(self, directory: str) -> list[tuple[str, str]]:
        try:
            with os.scandir(directory) as it:
                return sorted((e.name, e.path) for e in it if e.is_file())
        except OSError as e:
            raise SyncError(f"Cannot list {directory}: {e}") from e

    def _copy_gated(self, src: str, dest: str, report: SyncReport) -> None:
        if should_copy(dest, report.replicated):
            self._copy(src, dest, report)
        else:
            logger.info("Keeping replicated %s", dest)
            report.protected.append(os.path.basename(dest))

    def _copy(self, src: str, dest: str, report: SyncReport) -> None:
        try:
            os.makedirs(os.path.dirname(dest), exist_ok=True)
            shutil.copyfile(src, dest)
        except OSError as e:
            raise SyncError(f"Copying {src} -> {dest} failed: {e}") from e
        report.copied.append(os.path.basename(dest))
