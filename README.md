# vuldbgen

`vuldbgen` collects vulnerability records from operating-system and
application security feeds and packs them into the encrypted database
files that container scanners read.

It is a library: your own code reads the feeds, hands the records to the
in-memory store and asks it to write the database files.

## What is in the package

| Module | Purpose |
| --- | --- |
| `vuldbgen.version` | Debian-style package versions (`Version`, `new_version_unsafe`) |
| `vuldbgen.models` | Records (`Vulnerability`, `AppModuleVul`, `VulFull`, ...), `Priority`, error classes |
| `vuldbgen.appvuls` | `AppVulCollection` of application vulnerabilities |
| `vuldbgen.openssl` | OpenSSL advisory page reader |
| `vuldbgen.k8s` | Kubernetes CVE feed reader |
| `vuldbgen.ruby` | RubySec advisory database reader |
| `vuldbgen.amazon` | Amazon Linux ALAS feed reader (`AmazonFetcher`) |
| `vuldbgen.memdb` | `MemDB`, which splits records and writes the database files |
| `vuldbgen.dbfile` | Database file layout, AES-GCM `encrypt`/`decrypt`, `parse_year` |
| `vuldbgen.archive` | Tar and zip reading and writing |
| `vuldbgen.registry` | `Fetcher`, `AppFetcher`, `RawFetcher`, `Datastore` interfaces and registries |
| `vuldbgen.debug` | Debug filters for tracing chosen vulnerabilities |
| `vuldbgen.utils` | gzip helpers, AES-CFB `encrypt_cfb`, `LogFormatter`, `run_command` |

## Versions

```python
from vuldbgen.version import Version

a = Version.parse("1:2.9.1-6.el7.4")
b = Version.parse("1:2.9.1-6.el7_2.2")
assert a.compare(b) > 0
assert a > b
print(str(a))  # 1:2.9.1-6.el7.4
```

Versions are parsed into an epoch, upstream version, revision and an
Enterprise Linux `.el` suffix, and compared the way `dpkg` does, with two
additions: `.` sorts after `_` (so `el7.4` is newer than `el7_2.2`), and
`rc`/`pre` tags sort before the release they precede.

`Version.parse` raises `InvalidVersionError` (a `ValueError`) for empty
strings, bad epochs, disallowed characters and `NA`/`N/A`.
`new_version_unsafe` returns an empty `Version` instead of raising.

## Application advisories

Application records are gathered in an `AppVulCollection`, keyed by module
and vulnerability name; adding a record with the same key replaces the
earlier one.

```python
from vuldbgen.appvuls import AppVulCollection
from vuldbgen.k8s import k8s_update
from vuldbgen.openssl import openssl_update
from vuldbgen.ruby import ruby_update

collection = AppVulCollection()
collection.load_calibration()       # optional "apps_calibration" file
k8s_update(collection)              # reads vul-source/apps/k8s.json.gz
openssl_update(collection)          # downloads the OpenSSL advisory page
ruby_update(collection)             # clones the advisory repository with git
app_vuls = collection.results()
```

- `k8s_update(collection, root)` reads the gzip JSON feed at
  `root + "apps/k8s.json.gz"`; `parse_k8s_feed` does the same for data
  already in memory.
- `openssl_update` downloads the page and `parse_openssl_page(collection,
  body)` parses a page you already have. `get_openssl_vul_version` turns
  `from X before Y` items into fixed and affected version lists.
- `ruby_update` runs `git clone` into a temporary directory and reads
  every gem advisory under `gems/`; `parse_ruby_yml`, `parse_ruby_version`
  and `generate_affected_ver` are usable on their own.
- `results()` drops withdrawn CVEs and leaves out CVEs from before 2014 or
  whose year cannot be read; CWE and GHSA entries are always kept.

Readers raise `NotFoundError`, `CouldNotDownloadError` or
`CouldNotParseError` from `vuldbgen.models` when they cannot produce any
records.

## Amazon Linux

```python
from vuldbgen.amazon import AmazonFetcher

response = AmazonFetcher(root="vul-source/").fetch_update()
```

`fetch_update` reads `amazon/alas.rss.gz`, `amazon/alas2.rss.gz` and
`amazon/alas2023.rss.gz` under the root, downloads each advisory page over
HTTP to find the fixed package versions, and raises `CouldNotParseError`
when fewer than 1000 advisories were read. `parse_alas_page(name, body,
plain)` returns the issue description and a mapping of package name to
fixed version for a page you already have; `html_to_text` produces the
plain-text form it expects.

## Building the database

```python
from vuldbgen.memdb import MemDB

with MemDB.open("out/") as db:
    db.insert_vulnerabilities(os_vuls, app_vuls, raw_files)
    db.update_db("0.90")
```

`insert_vulnerabilities` takes lists of `Vulnerability`, `AppModuleVul` and
`RawFile`; an empty `rhel-cpe.map` raw file is added when it is missing.
`update_db` writes `out/cvedb.compact` (Ubuntu, Debian, CentOS, Alpine and
applications only) and `out/cvedb.regular` (every distribution,
applications and raw files) and returns their `DBFile` descriptions. It
raises `ValueError` when a record's namespace matches no known
distribution.

Each file starts with a 4-byte big-endian header length, then a JSON
header with the database version, update time and SHA-256 sums of every
table, then a gzip-compressed tar archive sealed with AES-GCM. The
`encrypt` and `decrypt` helpers in `vuldbgen.dbfile` perform that sealing
for a given 32-byte key.

## Logging and debug filters

Modules log through the standard `logging` package and pass structured
values in a `fields` mapping. `LogFormatter` renders them as
`time|LEVL|MODULE|caller: message - key=value ...`:

```python
import logging
from vuldbgen.debug import parse_debug_filters
from vuldbgen.utils import LogFormatter

handler = logging.StreamHandler()
handler.setFormatter(LogFormatter("DBG"))
logging.basicConfig(level=logging.DEBUG, handlers=[handler])

parse_debug_filters("v=CVE-2023-1000")
```

Once a filter is set, `debug_vuln` logs the full details of every named
vulnerability as the feeds are read.

## What the package does not do

- There is no command-line program; the steps above are driven from your
  own code.
- There are no readers for GitHub Security Advisories or the Go
  vulnerability database, and no readers for distributions other than
  Amazon Linux. `MemDB` still writes tables for every distribution it
  knows, empty where no records were inserted.
- Fetchers are not registered automatically; `register_fetcher`,
  `register_app_fetcher` and `register_raw_fetcher` in `vuldbgen.registry`
  hold whatever you register.