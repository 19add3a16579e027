# vulnfeed

vulnfeed reads the JSON security feeds that some distributions publish:
Red Hat CVE data and OVAL v2 streams, Rocky Linux errata, the Ubuntu CVE
tracker, SUSE and openSUSE CVRF documents, and the Wolfi security database.
It loads them into one nested key/value advisory store. You can then ask the
store which vulnerabilities affect a package on a given release.

## What it stores

Every feed writes into a `vulnfeed.store.Store`. The store holds nested
buckets, and each leaf is a JSON-encoded value:

- `data-source / <platform>`: the feed that the platform's advisories come from
- `advisory-detail / <vuln id> / <platform> / <package>`: the fixed version,
  arches, vendor IDs and status
- `vulnerability-detail / <vuln id> / <source id>`: the title, description,
  severity, CVSS data and references
- `vulnerability-id / <vuln id>`: every known identifier
- `Red Hat CPE / repository|nvr|cpe / ...`: the Red Hat CPE index tables

`Store.save(path)` writes the whole tree to a JSON file. `Store.load(path)`
reads it back. `Store.batch_update()` is a context manager: if the block
raises, every write made inside it is undone.

## Expected input layout

Each source reads its own part of a cache directory:

| Source                 | Directory                                                   |
|------------------------|-------------------------------------------------------------|
| `redhat`               | `vuln-list-redhat/api`                                      |
| `redhat-oval`          | `vuln-list-redhat/oval/<ver>/<stream>`, `vuln-list-redhat/cpe` |
| `rocky`                | `vuln-list/rocky/<ver>/<repo>/<arch>/<dir>/<file>.json`     |
| `ubuntu`               | `vuln-list/ubuntu`                                          |
| `suse-cvrf`            | `vuln-list/cvrf/suse/suse`                                  |
| `opensuse-cvrf`        | `vuln-list/cvrf/suse/opensuse`                              |
| `wolfi`                | `vuln-list/wolfi`                                           |

The source reads every `*.json` file under its directory in sorted order.

## Building a store

```python
from vulnfeed.registry import update_all
from vulnfeed.store import Store

store = Store()
update_all(store, "cache", ["ubuntu", "wolfi", "redhat-oval"])
store.save("vulnfeed.json")
```

When `names` is left out, `update_all` updates every source. An unknown name
raises `ValueError`. `vulnfeed.registry.all_sources(store)` returns every
source bound to the store.

## Querying

```python
from vulnfeed.store import Store
from vulnfeed.ubuntu import UbuntuSource
from vulnfeed.vulnerability import VulnerabilityResolver

store = Store.load("vulnfeed.json")

for advisory in UbuntuSource(store).get("18.04", "xen"):
    print(advisory.vulnerability_id, advisory.fixed_version)

resolver = VulnerabilityResolver(store)
details = resolver.get_details("CVE-2020-1234")
if details and not resolver.is_rejected(details):
    print(resolver.normalize(details).severity)
```

Red Hat OVAL lookups take the repositories or NVRs of the installed image.
Matching goes through the CPE index tables:

```python
from vulnfeed.redhat_oval import RedHatOvalSource

advisories = RedHatOvalSource(store).get("bind", ["rhel-8-for-x86_64-baseos-rpms"], [])
```

Rocky lookups also take an architecture:
`RockySource(store).get("8", "bind", "x86_64")`.

`vulnfeed.vulnerability.normalize_pkg_name(ecosystem, name)` puts a package
name into the canonical form of its ecosystem. `score_to_severity(score)`
maps a CVSS score to a `Severity`.

## Errors

- A missing feed directory or mapping file raises `FileNotFoundError`.
- A feed file that cannot be decoded, or that has fields of the wrong type,
  raises `ValueError`. The message names what failed, for example
  `failed to decode Rocky erratum` or `JSON parse error`.
- A stored advisory that cannot be decoded at lookup time raises
  `vulnfeed.store.StoreError`.
- A Red Hat OVAL lookup whose repositories and NVRs match no CPE raises
  `ValueError`.

## What it does not do

- It does not download feeds. The cache directory must already hold them.
- It has no command-line tool. Use it as a library.
- The store is a JSON file held in memory, not an on-disk database.
- It covers only the sources listed above. NVD, Debian, Alpine, Amazon and
  the language ecosystems have no loaders here. Their identifiers exist in
  `vulnfeed.models.SourceID` and `Ecosystem` so that details merged from them
  can still be read.