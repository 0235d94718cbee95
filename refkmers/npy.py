"""Byte-level writer for the NumPy .npy / .npz container formats.

Files produced here are read by numpy.load and scipy.sparse.load_npz, so
the layout is spelled out rather than delegated:

  .npy (format version 1.0)
    b'\\x93NUMPY' b'\\x01\\x00'  magic + version
    uint16 little-endian         header length H
    H bytes of ASCII             "{'descr': '<u8', 'fortran_order': False, 'shape': (2, 3), }"
                                 right-padded with spaces, ending in '\\n',
                                 so that 10 + H is a multiple of 64
    data                         C order, dtype as described (little-endian)

  .npz
    ZIP archive, one '<name>.npy' member per array, DEFLATE-compressed.
"""

import struct
import zipfile

import numpy as np

from .errors import ReferenceIOError

NPY_MAGIC = b'\x93NUMPY'
NPY_VERSION = b'\x01\x00'
NPY_ALIGN = 64
_PREAMBLE_LEN = len(NPY_MAGIC) + len(NPY_VERSION) + 2


def npy_header(descr, shape):
    """Encoded v1.0 preamble + header for an array of `descr` and `shape`."""
    shape_repr = repr(tuple(int(d) for d in shape))
    body = ("{'descr': '%s', 'fortran_order': False, 'shape': %s, }"
            % (descr, shape_repr)).encode('latin1')
    # +1 for the terminating newline
    pad = -(_PREAMBLE_LEN + len(body) + 1) % NPY_ALIGN
    header = body + b' ' * pad + b'\n'
    if len(header) > 0xFFFF:
        raise ValueError(f"npy header too long for format 1.0 ({len(header)} bytes)")
    return NPY_MAGIC + NPY_VERSION + struct.pack('<H', len(header)) + header


def array_to_npy(arr, dtype):
    """Serialise `arr` as .npy bytes with the exact dtype string `dtype`.

    `dtype` must be explicit about byte order ('<u8', '<i8') or be a byte
    string type ('|S3').
    """
    dtype = np.dtype(dtype)
    data = np.asarray(arr, dtype=dtype)
    return npy_header(dtype.str, data.shape) + data.tobytes(order='C')


def string_scalar_to_npy(value):
    """0-d byte-string array, e.g. 'coo' -> dtype '|S3', shape ()."""
    raw = value.encode('ascii')
    return array_to_npy(np.array(raw, dtype=f'S{len(raw)}'), f'|S{len(raw)}')


def write_npy(path, arr, dtype):
    try:
        with open(path, 'wb') as f:
            f.write(array_to_npy(arr, dtype))
    except OSError as exc:
        raise ReferenceIOError(f"cannot write {path}: {exc}") from exc


def write_npz(path, members):
    """Write {name: npy_bytes} as a DEFLATE-compressed .npz archive.

    Members are written in the iteration order of `members`.
    """
    try:
        with zipfile.ZipFile(path, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
            for name, payload in members.items():
                zf.writestr(f"{name}.npy", payload)
    except OSError as exc:
        raise ReferenceIOError(f"cannot write {path}: {exc}") from exc
