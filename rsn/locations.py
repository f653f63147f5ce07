from __future__ import annotations

import posixpath
from dataclasses import dataclass, replace

STORAGE_DIR = "SolrStorage"
DATA_DIR = "data"
LIB_DIR = "lib"


@dataclass(frozen=True)
class FileLocationSet:
    """Where each piece of the server's configuration lives for one major version.

    `solr_*` paths are relative to the unpacked server distribution,
    `storage_*` paths are relative to `{volume}/SolrStorage`, and the two
    `*_xml` names are files in the master-authored template directory.
    """

    major_version: str
    solr_conf_dir: str
    solr_lang_dir: str
    storage_conf_dir: str
    storage_lang_dir: str
    schema_xml: str
    config_xml: str
    dist_dir: str = "Solr/dist"
    extraction_lib_dir: str = "Solr/contrib/extraction/lib"
    example_dir: str = "Solr/example"
    start_jar: str = "start.jar"

    @property
    def skeleton(self) -> tuple[str, ...]:
        """Directories that must exist under the storage root, relative to it."""
        return ("", self.storage_lang_dir, self.storage_conf_dir, DATA_DIR, LIB_DIR)


_LAYOUTS: dict[str, FileLocationSet] = {
    "3": FileLocationSet(
        major_version="3",
        solr_conf_dir="Solr/example/solr/conf",
        solr_lang_dir="Solr/example/solr/conf/lang",
        storage_conf_dir="conf",
        storage_lang_dir=posixpath.join("conf", "lang"),
        schema_xml="schema.xml",
        config_xml="solrconfig.xml",
    ),
    "4": FileLocationSet(
        major_version="4",
        solr_conf_dir="Solr/example/solr/collection1/conf",
        solr_lang_dir="Solr/example/solr/collection1/conf/lang",
        storage_conf_dir=posixpath.join("slaveCore", "conf"),
        storage_lang_dir=posixpath.join("slaveCore", "conf", "lang"),
        schema_xml="schema-4.xml",
        config_xml="solrconfig-4.xml",
    ),
}

# 1.4 shipped the same single-core layout as 3.x.
_LAYOUTS["1"] = replace(_LAYOUTS["3"], major_version="1")


def resolve_locations(major_version: str) -> FileLocationSet:
    key = str(major_version).strip().split(".")[0]
    try:
        return _LAYOUTS[key]
    except KeyError:
        raise ValueError(
            f"Unsupported server major version {major_version!r}. Known: {', '.join(sorted(_LAYOUTS))}."
        ) from None
