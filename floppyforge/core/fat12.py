"""FAT12 floppy image encoder and reader.

Layout of every supported geometry:

    sector 0            boot sector with BPB
    reserved..          FAT #1, FAT #2
    root directory      fixed number of 32-byte entries
    data area           clusters 2..N

Names that do not fit 8.3 (or are not upper case) get VFAT long-file-name
entries plus a unique ``~N`` short alias. Clusters are allocated
contiguously, directories first in depth-first order, so an image built from
the same tree, label, serial and timestamp is byte-for-byte reproducible.
"""

from __future__ import annotations

import os
import struct
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from floppyforge.core.errors import CapacityExceeded, InvalidDestination, IOFailure

SECTOR_SIZE = 512
DIR_ENTRY_SIZE = 32

ATTR_VOLUME_ID = 0x08
ATTR_DIRECTORY = 0x10
ATTR_ARCHIVE = 0x20
ATTR_LONG_NAME = 0x0F

FAT12_EOC = 0xFFF
LFN_CHARS_PER_ENTRY = 13

_SHORT_NAME_CHARS = frozenset(
    "ABCDEFGHIJKLMNOPQRSTUVWXYZ0123456789!#$%&'()-@^_`{}~"
)


class ImageFormatError(IOFailure):
    """The bytes on disk are not a FAT12 image this module can read."""


@dataclass(frozen=True)
class FloppyGeometry:
    """Physical and logical parameters of one floppy format."""

    name: str
    total_sectors: int
    sectors_per_cluster: int
    root_entries: int
    sectors_per_fat: int
    media: int
    sectors_per_track: int
    heads: int = 2
    reserved_sectors: int = 1
    num_fats: int = 2

    @property
    def root_dir_sectors(self) -> int:
        return (self.root_entries * DIR_ENTRY_SIZE + SECTOR_SIZE - 1) // SECTOR_SIZE

    @property
    def first_root_sector(self) -> int:
        return self.reserved_sectors + self.num_fats * self.sectors_per_fat

    @property
    def first_data_sector(self) -> int:
        return self.first_root_sector + self.root_dir_sectors

    @property
    def cluster_size(self) -> int:
        return self.sectors_per_cluster * SECTOR_SIZE

    @property
    def cluster_count(self) -> int:
        return (self.total_sectors - self.first_data_sector) // self.sectors_per_cluster

    @property
    def capacity(self) -> int:
        """Bytes available for file and subdirectory clusters."""
        return self.cluster_count * self.cluster_size

    @property
    def image_size(self) -> int:
        return self.total_sectors * SECTOR_SIZE

    def clusters_for(self, nbytes: int) -> int:
        return (nbytes + self.cluster_size - 1) // self.cluster_size


GEOMETRIES: dict[str, FloppyGeometry] = {
    "720K": FloppyGeometry("720K", 1440, 2, 112, 3, 0xF9, 9),
    "1.44M": FloppyGeometry("1.44M", 2880, 1, 224, 9, 0xF0, 18),
    "2.88M": FloppyGeometry("2.88M", 5760, 2, 240, 9, 0xF0, 36),
}
DEFAULT_GEOMETRY = GEOMETRIES["1.44M"]


def get_geometry(name: str) -> FloppyGeometry:
    """Look up a geometry by name (case-insensitive)."""
    for key, geometry in GEOMETRIES.items():
        if key.lower() == name.lower():
            return geometry
    raise ValueError(
        f"Unknown floppy format {name!r}. Supported: {sorted(GEOMETRIES)}"
    )


# =====================================================================
# Name helpers
# =====================================================================


def fits_short_name(filename: str) -> bool:
    """True if *filename* can be stored as a plain upper-case 8.3 name."""
    if not filename or filename.startswith(".") or filename.count(".") > 1:
        return False
    base, _, ext = filename.partition(".")
    if not base or len(base) > 8 or len(ext) > 3:
        return False
    return all(c in _SHORT_NAME_CHARS for c in base + ext)


def _pack_short(base: str, ext: str) -> bytes:
    raw = (base.ljust(8) + ext.ljust(3)).encode("ascii")
    if raw[0] == 0xE5:
        raw = b"\x05" + raw[1:]
    return raw


def _short_basis(filename: str) -> tuple[str, str]:
    """Upper-cased, sanitised (base, ext) used to build a ``~N`` alias."""
    name = filename.upper().lstrip(".")
    if "." in name:
        base, ext = name.rsplit(".", 1)
    else:
        base, ext = name, ""

    def clean(part: str) -> str:
        out = []
        for c in part:
            if c in " .":
                continue
            out.append(c if c in _SHORT_NAME_CHARS else "_")
        return "".join(out)

    return clean(base)[:6] or "_", clean(ext)[:3]


def lfn_checksum(name83: bytes) -> int:
    """Compute the VFAT LFN checksum from an 8.3 name (11 bytes)."""
    s = 0
    for b in name83:
        s = (((s & 1) << 7) + (s >> 1) + b) & 0xFF
    return s


def make_lfn_entries(filename: str, name83: bytes) -> list[bytes]:
    """Create LFN directory entries in on-disk order (last fragment first)."""
    chk = lfn_checksum(name83)
    encoded = filename.encode("utf-16-le")
    units = list(struct.unpack(f"<{len(encoded) // 2}H", encoded))
    count = (len(units) + LFN_CHARS_PER_ENTRY - 1) // LFN_CHARS_PER_ENTRY

    entries = []
    for seq in range(1, count + 1):
        entry = bytearray(DIR_ENTRY_SIZE)
        entry[0] = seq | (0x40 if seq == count else 0)
        entry[11] = ATTR_LONG_NAME
        entry[13] = chk

        chars = []
        for j in range(LFN_CHARS_PER_ENTRY):
            idx = (seq - 1) * LFN_CHARS_PER_ENTRY + j
            if idx < len(units):
                chars.append(units[idx])
            elif idx == len(units):
                chars.append(0x0000)
            else:
                chars.append(0xFFFF)

        for j in range(5):
            struct.pack_into("<H", entry, 1 + j * 2, chars[j])
        for j in range(6):
            struct.pack_into("<H", entry, 14 + j * 2, chars[5 + j])
        for j in range(2):
            struct.pack_into("<H", entry, 28 + j * 2, chars[11 + j])
        entries.append(bytes(entry))

    entries.reverse()
    return entries


def lfn_entry_count(filename: str) -> int:
    if fits_short_name(filename):
        return 0
    units = len(filename.encode("utf-16-le")) // 2
    return (units + LFN_CHARS_PER_ENTRY - 1) // LFN_CHARS_PER_ENTRY


def normalize_label(label: str) -> bytes:
    """Volume label as the 11 space-padded bytes stored in the BPB."""
    text = label.strip().upper()
    if len(text) > 11 or not text.isascii():
        raise InvalidDestination("volume label must be at most 11 ASCII characters", subject=label)
    if any(c in '"*+,./:;<=>?[\\]|' for c in text):
        raise InvalidDestination("volume label contains invalid characters", subject=label)
    return (text or "NO NAME").ljust(11).encode("ascii")


def _fat_datetime(stamp: datetime) -> tuple[int, int]:
    year = min(max(stamp.year, 1980), 2107)
    date = ((year - 1980) << 9) | (stamp.month << 5) | stamp.day
    time = (stamp.hour << 11) | (stamp.minute << 5) | (stamp.second // 2)
    return time, date


def _set_fat12(fat: bytearray, cluster: int, value: int) -> None:
    offset = cluster + cluster // 2
    if cluster & 1:
        fat[offset] = (fat[offset] & 0x0F) | ((value << 4) & 0xF0)
        fat[offset + 1] = (value >> 4) & 0xFF
    else:
        fat[offset] = value & 0xFF
        fat[offset + 1] = (fat[offset + 1] & 0xF0) | ((value >> 8) & 0x0F)


def _get_fat12(fat: bytes, cluster: int) -> int:
    offset = cluster + cluster // 2
    raw = fat[offset] | (fat[offset + 1] << 8)
    return raw >> 4 if cluster & 1 else raw & 0xFFF


# =====================================================================
# Encoder
# =====================================================================


@dataclass
class _Node:
    name: str
    is_dir: bool
    source: Path | None = None
    data: bytes | None = None
    size: int = 0
    children: dict[str, "_Node"] = field(default_factory=dict)
    short_name: bytes = b""
    cluster: int = 0
    clusters: int = 0

    def ordered(self) -> list["_Node"]:
        return sorted(self.children.values(), key=lambda n: n.name)


class Fat12Image:
    """Builds a FAT12 floppy image from an in-memory tree description.

    Parameters
    ----------
    geometry:
        Target floppy format.
    label:
        Volume label (at most 11 ASCII characters).
    serial:
        Volume serial number; defaults to one derived from *timestamp*.
    timestamp:
        Creation/modification time written into every directory entry.
    """

    def __init__(
        self,
        geometry: FloppyGeometry = DEFAULT_GEOMETRY,
        label: str = "",
        *,
        serial: int | None = None,
        timestamp: datetime | None = None,
    ) -> None:
        self.geometry = geometry
        self.label = normalize_label(label)
        self.timestamp = timestamp or datetime.now()
        if serial is None:
            time, date = _fat_datetime(self.timestamp)
            serial = (date << 16) | time
        self.serial = serial & 0xFFFFFFFF
        self._root = _Node("", True)

    # ------------------------------------------------------------------
    # Tree construction
    # ------------------------------------------------------------------

    def add_directory(self, path: str) -> None:
        self._ensure_dir([p for p in path.split("/") if p])

    def add_file(
        self, path: str, data: bytes | None = None, *, source: Path | None = None
    ) -> None:
        """Add a file from in-memory *data* or from a *source* path on disk."""
        parts = [p for p in path.split("/") if p]
        if not parts:
            raise InvalidDestination("empty image path", subject=repr(path))
        parent = self._ensure_dir(parts[:-1])
        key = parts[-1].casefold()
        if key in parent.children:
            raise InvalidDestination("image path already exists", subject=path)
        if source is not None:
            size = os.stat(source).st_size
        else:
            data = data or b""
            size = len(data)
        parent.children[key] = _Node(parts[-1], False, source=source, data=data, size=size)

    def add_tree(self, root: Path) -> None:
        """Mirror every directory and regular file below *root*."""
        root = Path(root)
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames.sort()
            rel_dir = Path(dirpath).relative_to(root).as_posix()
            prefix = "" if rel_dir == "." else rel_dir + "/"
            for name in dirnames:
                self.add_directory(prefix + name)
            for name in sorted(filenames):
                self.add_file(prefix + name, source=Path(dirpath) / name)

    def _ensure_dir(self, parts: list[str]) -> _Node:
        node = self._root
        for part in parts:
            child = node.children.get(part.casefold())
            if child is None:
                child = _Node(part, True)
                node.children[part.casefold()] = child
            elif not child.is_dir:
                raise InvalidDestination(
                    "a file is in the way of a directory", subject="/".join(parts)
                )
            node = child
        return node

    # ------------------------------------------------------------------
    # Sizing
    # ------------------------------------------------------------------

    def _entry_slots(self, node: _Node) -> int:
        slots = sum(1 + lfn_entry_count(c.name) for c in node.children.values())
        if node is self._root:
            return slots + (1 if self.label.strip() != b"NO NAME" else 0)
        return slots + 2  # "." and ".."

    def required_clusters(self) -> int:
        """Clusters needed by every file and subdirectory in the tree."""
        total = 0
        stack = [self._root]
        while stack:
            node = stack.pop()
            for child in node.children.values():
                if child.is_dir:
                    total += max(1, self.geometry.clusters_for(self._entry_slots(child) * DIR_ENTRY_SIZE))
                    stack.append(child)
                else:
                    total += self.geometry.clusters_for(child.size)
        return total

    def check_capacity(self) -> None:
        """Raise ``CapacityExceeded`` if the tree cannot fit the geometry."""
        root_slots = self._entry_slots(self._root)
        if root_slots > self.geometry.root_entries:
            raise CapacityExceeded(
                f"root directory needs {root_slots} entries, "
                f"{self.geometry.name} holds {self.geometry.root_entries}",
                subject=self.geometry.name,
            )
        needed = self.required_clusters()
        if needed > self.geometry.cluster_count:
            raise CapacityExceeded(
                f"payload needs {needed * self.geometry.cluster_size} bytes, "
                f"{self.geometry.name} holds {self.geometry.capacity}",
                subject=self.geometry.name,
            )

    # ------------------------------------------------------------------
    # Encoding
    # ------------------------------------------------------------------

    def build(self) -> bytearray:
        """Encode the tree and return the complete image bytes."""
        self.check_capacity()
        g = self.geometry
        image = bytearray(g.image_size)
        fat = bytearray(g.sectors_per_fat * SECTOR_SIZE)
        _set_fat12(fat, 0, 0xF00 | g.media)
        _set_fat12(fat, 1, FAT12_EOC)

        self._assign_short_names(self._root)
        next_cluster = self._allocate(self._root, 2, fat)
        self._allocate_files(self._root, next_cluster, fat)

        self._write_boot_sector(image)
        for i in range(g.num_fats):
            offset = (g.reserved_sectors + i * g.sectors_per_fat) * SECTOR_SIZE
            image[offset:offset + len(fat)] = fat

        root_raw = self._directory_bytes(self._root, parent_cluster=0)
        root_offset = g.first_root_sector * SECTOR_SIZE
        image[root_offset:root_offset + len(root_raw)] = root_raw
        self._write_contents(self._root, image)
        return image

    def write(self, path: Path) -> None:
        """Encode the tree and write the image to *path*."""
        data = self.build()
        with open(path, "wb") as fh:
            fh.write(data)

    def _assign_short_names(self, node: _Node) -> None:
        used: set[bytes] = set()
        pending = []
        for child in node.ordered():
            if fits_short_name(child.name):
                base, _, ext = child.name.partition(".")
                child.short_name = _pack_short(base, ext)
                used.add(child.short_name)
            else:
                pending.append(child)
        for child in pending:
            base, ext = _short_basis(child.name)
            n = 1
            while True:
                tail = f"~{n}"
                candidate = _pack_short(base[: 8 - len(tail)] + tail, ext)
                if candidate not in used:
                    break
                n += 1
            child.short_name = candidate
            used.add(candidate)
        for child in node.children.values():
            if child.is_dir:
                self._assign_short_names(child)

    def _chain(self, fat: bytearray, first: int, count: int) -> None:
        for i in range(count):
            cluster = first + i
            _set_fat12(fat, cluster, cluster + 1 if i < count - 1 else FAT12_EOC)

    def _allocate(self, node: _Node, next_cluster: int, fat: bytearray) -> int:
        """Give every subdirectory below *node* its clusters (depth first)."""
        for child in node.ordered():
            if not child.is_dir:
                continue
            child.clusters = max(
                1, self.geometry.clusters_for(self._entry_slots(child) * DIR_ENTRY_SIZE)
            )
            child.cluster = next_cluster
            self._chain(fat, next_cluster, child.clusters)
            next_cluster = self._allocate(child, next_cluster + child.clusters, fat)
        return next_cluster

    def _allocate_files(self, node: _Node, next_cluster: int, fat: bytearray) -> int:
        for child in node.ordered():
            if child.is_dir:
                next_cluster = self._allocate_files(child, next_cluster, fat)
            elif child.size:
                child.clusters = self.geometry.clusters_for(child.size)
                child.cluster = next_cluster
                self._chain(fat, next_cluster, child.clusters)
                next_cluster += child.clusters
        return next_cluster

    def _dir_entry(self, name83: bytes, attr: int, cluster: int, size: int) -> bytes:
        time, date = _fat_datetime(self.timestamp)
        entry = bytearray(DIR_ENTRY_SIZE)
        entry[0:11] = name83
        entry[11] = attr
        struct.pack_into("<HHH", entry, 14, time, date, date)
        struct.pack_into("<HHHI", entry, 22, time, date, cluster, size)
        return bytes(entry)

    def _directory_bytes(self, node: _Node, parent_cluster: int) -> bytes:
        raw = bytearray()
        if node is self._root:
            if self.label.strip() != b"NO NAME":
                raw += self._dir_entry(self.label, ATTR_VOLUME_ID, 0, 0)
        else:
            raw += self._dir_entry(b".          ", ATTR_DIRECTORY, node.cluster, 0)
            raw += self._dir_entry(b"..         ", ATTR_DIRECTORY, parent_cluster, 0)
        for child in node.ordered():
            if not fits_short_name(child.name):
                for lfn in make_lfn_entries(child.name, child.short_name):
                    raw += lfn
            if child.is_dir:
                raw += self._dir_entry(child.short_name, ATTR_DIRECTORY, child.cluster, 0)
            else:
                raw += self._dir_entry(
                    child.short_name, ATTR_ARCHIVE, child.cluster, child.size
                )
        return bytes(raw)

    def _cluster_offset(self, cluster: int) -> int:
        g = self.geometry
        return (g.first_data_sector + (cluster - 2) * g.sectors_per_cluster) * SECTOR_SIZE

    def _write_contents(self, node: _Node, image: bytearray) -> None:
        for child in node.ordered():
            if child.is_dir:
                raw = self._directory_bytes(child, parent_cluster=node.cluster)
                offset = self._cluster_offset(child.cluster)
                image[offset:offset + len(raw)] = raw
                self._write_contents(child, image)
            elif child.size:
                data = child.data
                if data is None:
                    with open(child.source, "rb") as fh:
                        data = fh.read()
                if len(data) != child.size:
                    raise IOFailure("source changed size while encoding", subject=str(child.source))
                offset = self._cluster_offset(child.cluster)
                image[offset:offset + len(data)] = data

    def _write_boot_sector(self, image: bytearray) -> None:
        g = self.geometry
        bpb = bytearray(SECTOR_SIZE)
        bpb[0:3] = b"\xEB\x3C\x90"  # jmp short 0x3E; nop
        bpb[3:11] = b"FLOPPYFG"
        struct.pack_into("<H", bpb, 11, SECTOR_SIZE)
        struct.pack_into("<B", bpb, 13, g.sectors_per_cluster)
        struct.pack_into("<H", bpb, 14, g.reserved_sectors)
        struct.pack_into("<B", bpb, 16, g.num_fats)
        struct.pack_into("<H", bpb, 17, g.root_entries)
        struct.pack_into("<H", bpb, 19, g.total_sectors)
        struct.pack_into("<B", bpb, 21, g.media)
        struct.pack_into("<H", bpb, 22, g.sectors_per_fat)
        struct.pack_into("<H", bpb, 24, g.sectors_per_track)
        struct.pack_into("<H", bpb, 26, g.heads)
        struct.pack_into("<B", bpb, 38, 0x29)  # extended boot signature
        struct.pack_into("<I", bpb, 39, self.serial)
        bpb[43:54] = self.label
        bpb[54:62] = b"FAT12   "
        bpb[62:66] = b"\xCD\x18\xEB\xFE"  # int 18h; jmp $ (not a system disk)
        bpb[510] = 0x55
        bpb[511] = 0xAA
        image[0:SECTOR_SIZE] = bpb


def build_image(
    root: Path,
    path: Path,
    geometry: FloppyGeometry = DEFAULT_GEOMETRY,
    label: str = "",
    *,
    timestamp: datetime | None = None,
) -> None:
    """Encode the directory tree at *root* into a floppy image at *path*."""
    image = Fat12Image(geometry, label, timestamp=timestamp)
    image.add_tree(root)
    image.write(path)


# =====================================================================
# Reader
# =====================================================================


@dataclass(frozen=True)
class _Bpb:
    bytes_per_sector: int
    sectors_per_cluster: int
    reserved: int
    num_fats: int
    root_entries: int
    sectors_per_fat: int

    @property
    def root_offset(self) -> int:
        return (self.reserved + self.num_fats * self.sectors_per_fat) * self.bytes_per_sector

    @property
    def data_offset(self) -> int:
        root_bytes = self.root_entries * DIR_ENTRY_SIZE
        root_sectors = (root_bytes + self.bytes_per_sector - 1) // self.bytes_per_sector
        return self.root_offset + root_sectors * self.bytes_per_sector

    @property
    def cluster_size(self) -> int:
        return self.sectors_per_cluster * self.bytes_per_sector


def _parse_bpb(data: bytes) -> _Bpb:
    if len(data) < SECTOR_SIZE or data[510:512] != b"\x55\xAA":
        raise ImageFormatError("missing boot sector signature")
    bps, spc, reserved, nfats, root_entries = struct.unpack_from("<HBHBH", data, 11)
    spf = struct.unpack_from("<H", data, 22)[0]
    if bps == 0 or spc == 0 or nfats == 0:
        raise ImageFormatError("corrupt BIOS parameter block")
    return _Bpb(bps, spc, reserved, nfats, root_entries, spf)


def _decode_lfn(parts: list[bytes]) -> str:
    units: list[int] = []
    for entry in parts:
        units += struct.unpack_from("<5H", entry, 1)
        units += struct.unpack_from("<6H", entry, 14)
        units += struct.unpack_from("<2H", entry, 28)
    if 0 in units:
        units = units[: units.index(0)]
    units = [u for u in units if u != 0xFFFF]
    return struct.pack(f"<{len(units)}H", *units).decode("utf-16-le")


def _decode_short(name83: bytes) -> str:
    raw = bytearray(name83)
    if raw[0] == 0x05:
        raw[0] = 0xE5
    base = raw[:8].decode("ascii", "replace").rstrip()
    ext = raw[8:11].decode("ascii", "replace").rstrip()
    return f"{base}.{ext}" if ext else base


def _iter_dir(raw: bytes):
    """Yield (name, attr, cluster, size) for every live entry in *raw*."""
    pending: list[bytes] = []
    for offset in range(0, len(raw) - DIR_ENTRY_SIZE + 1, DIR_ENTRY_SIZE):
        entry = raw[offset:offset + DIR_ENTRY_SIZE]
        if entry[0] == 0x00:
            return
        if entry[0] == 0xE5:
            pending = []
            continue
        attr = entry[11]
        if attr == ATTR_LONG_NAME:
            if entry[0] & 0x40:
                pending = []
            pending.insert(0, entry)
            continue
        name = _decode_lfn(pending) if pending else _decode_short(entry[0:11])
        pending = []
        cluster = struct.unpack_from("<H", entry, 26)[0]
        size = struct.unpack_from("<I", entry, 28)[0]
        yield name, attr, cluster, size


class _Reader:
    def __init__(self, data: bytes) -> None:
        self.data = data
        self.bpb = _parse_bpb(data)
        fat_offset = self.bpb.reserved * self.bpb.bytes_per_sector
        self.fat = data[fat_offset:fat_offset + self.bpb.sectors_per_fat * self.bpb.bytes_per_sector]

    def chain(self, first: int) -> list[int]:
        clusters = []
        cluster = first
        while 2 <= cluster < 0xFF8:
            if cluster in clusters:
                raise ImageFormatError("cluster chain loops", subject=str(first))
            clusters.append(cluster)
            cluster = _get_fat12(self.fat, cluster)
        return clusters

    def read_chain(self, first: int, size: int | None = None) -> bytes:
        out = bytearray()
        for cluster in self.chain(first):
            offset = self.bpb.data_offset + (cluster - 2) * self.bpb.cluster_size
            out += self.data[offset:offset + self.bpb.cluster_size]
        return bytes(out if size is None else out[:size])

    def root(self) -> bytes:
        return self.data[self.bpb.root_offset:self.bpb.data_offset]

    def walk(self, raw: bytes, prefix: str, out: dict[str, bytes]) -> None:
        for name, attr, cluster, size in _iter_dir(raw):
            if attr & ATTR_VOLUME_ID or name in (".", ".."):
                continue
            path = prefix + name
            if attr & ATTR_DIRECTORY:
                self.walk(self.read_chain(cluster), path + "/", out)
            else:
                out[path] = self.read_chain(cluster, size) if size else b""


def read_image(path: Path) -> dict[str, bytes]:
    """Return every file stored in the image at *path*, keyed by POSIX path."""
    reader = _Reader(Path(path).read_bytes())
    files: dict[str, bytes] = {}
    reader.walk(reader.root(), "", files)
    return files


def read_label(path: Path) -> str:
    """Return the volume label of the image at *path* ("" if none)."""
    reader = _Reader(Path(path).read_bytes())
    for name, attr, _cluster, _size in _iter_dir(reader.root()):
        if attr & ATTR_VOLUME_ID and attr != ATTR_LONG_NAME:
            return name.replace(".", "").strip()
    return ""
