"""Sample file lookup and audio metadata.

Instrument files reference their samples by name only.  The lookup order is:
the stored path, the instrument's own folder, then a recursive search from
each ancestor folder up to a caller supplied depth.

Metadata comes from ``soundfile``; root key and loops come from the RIFF
``smpl`` chunk when the file has one.
"""

from __future__ import annotations

import logging
import os
import shutil
import struct
from pathlib import Path
from typing import List, Optional, Tuple

import soundfile

from .errors import SampleError
from .model import SampleData


logger = logging.getLogger(__name__)

SUBTYPE_BIT_DEPTH = {
    "PCM_S8": 8,
    "PCM_U8": 8,
    "PCM_16": 16,
    "PCM_24": 24,
    "PCM_32": 32,
    "FLOAT": 32,
    "DOUBLE": 64,
}

SMPL_HEADER = struct.Struct("<9I")
SMPL_LOOP = struct.Struct("<6I")


def _match_in_folder(folder: Path, name: str) -> Optional[Path]:
    candidate = folder / name
    if candidate.is_file():
        return candidate
    if not folder.is_dir():
        return None
    lowered = name.lower()
    for entry in sorted(folder.iterdir()):
        if entry.is_file() and entry.name.lower() == lowered:
            return entry
    return None


def _search_tree(root: Path, name: str) -> Optional[Path]:
    lowered = name.lower()
    for dirpath, dirnames, filenames in os.walk(root):
        dirnames.sort()
        for filename in sorted(filenames):
            if filename.lower() == lowered:
                return Path(dirpath) / filename
    return None


def find_sample_file(
    folder: Path,
    name: str,
    search_depth: int = 0,
    stored_path: str = "",
) -> Optional[Path]:
    """Locate sample ``name`` for an instrument living in ``folder``.

    Parameters
    ----------
    folder:
        Folder of the instrument file.
    name:
        File name of the sample (case is ignored when matching).
    search_depth:
        How many ancestor folders to search recursively when the file is
        not next to the instrument.  0 disables the search.
    stored_path:
        Folder recorded inside the instrument, tried first.
    """
    if not name:
        return None
    if stored_path:
        found = _match_in_folder(Path(stored_path), name)
        if found is not None:
            return found

    found = _match_in_folder(folder, name)
    if found is not None:
        return found

    ancestor = folder
    for _ in range(search_depth):
        parent = ancestor.parent
        if parent == ancestor:
            break
        ancestor = parent
        found = _search_tree(ancestor, name)
        if found is not None:
            logger.debug("found %s below %s", name, ancestor)
            return found
    return None


def read_smpl_chunk(path: Path) -> Tuple[Optional[int], List[Tuple[int, int]]]:
    """Return ``(root_key, loops)`` from a WAV ``smpl`` chunk.

    Files without the chunk (or that are not RIFF/WAVE) give ``(None, [])``.
    Chunks are skipped by seeking, so the audio data is never read.
    """
    with path.open("rb") as handle:
        head = handle.read(12)
        if len(head) < 12 or head[:4] != b"RIFF" or head[8:12] != b"WAVE":
            return None, []

        while True:
            chunk = handle.read(8)
            if len(chunk) < 8:
                return None, []
            chunk_id = chunk[:4]
            size = int.from_bytes(chunk[4:], "little")
            if chunk_id == b"smpl":
                return _parse_smpl(handle.read(size))
            # Chunks are word aligned.
            handle.seek(size + (size & 1), os.SEEK_CUR)


def _parse_smpl(body: bytes) -> Tuple[Optional[int], List[Tuple[int, int]]]:
    if len(body) < SMPL_HEADER.size:
        return None, []
    header = SMPL_HEADER.unpack_from(body, 0)
    unity_note = header[3]
    loop_count = header[7]
    loops: List[Tuple[int, int]] = []
    pos = SMPL_HEADER.size
    for _ in range(loop_count):
        if pos + SMPL_LOOP.size > len(body):
            break
        _cue, _type, start, end, _fraction, _count = SMPL_LOOP.unpack_from(body, pos)
        loops.append((start, end))
        pos += SMPL_LOOP.size
    root = unity_note if 0 <= unity_note <= 127 else None
    return root, loops


def read_sample_data(path: Path) -> SampleData:
    """Read rate, length, channels and bit depth of ``path``."""
    if not path.is_file():
        raise SampleError(f"sample file does not exist: {path}")
    try:
        info = soundfile.info(str(path))
    except RuntimeError as exc:
        raise SampleError(f"can not read sample {path}: {exc}") from exc

    root_key: Optional[int] = None
    loops: List[Tuple[int, int]] = []
    if info.format == "WAV":
        root_key, loops = read_smpl_chunk(path)

    return SampleData(
        path=path,
        sample_rate=int(info.samplerate),
        frames=int(info.frames),
        channels=int(info.channels),
        bit_depth=SUBTYPE_BIT_DEPTH.get(info.subtype, 16),
        root_key=root_key,
        loops=loops,
    )


def export_sample(source: Path, destination: Path) -> None:
    """Place the audio of ``source`` at ``destination``.

    The file is copied when both share a suffix and rewritten as WAV
    otherwise.  Nothing happens when both name the same file.
    """
    if not source.is_file():
        raise SampleError(f"sample file does not exist: {source}")
    if destination.exists() and destination.resolve() == source.resolve():
        return
    destination.parent.mkdir(parents=True, exist_ok=True)
    try:
        if source.suffix.lower() == destination.suffix.lower():
            shutil.copy2(source, destination)
            return
        info = soundfile.info(str(source))
        subtype = info.subtype if soundfile.check_format("WAV", info.subtype) else "PCM_16"
        data, rate = soundfile.read(str(source), always_2d=True)
        soundfile.write(str(destination), data, rate, subtype=subtype, format="WAV")
    except (OSError, RuntimeError) as exc:
        raise SampleError(f"can not write sample {destination}: {exc}") from exc
    logger.debug("converted %s -> %s", source, destination)
