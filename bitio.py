"""
Bit-granular reader/writer over binary file objects, backed by bitarray.

Bits are big-endian within each byte (first bit written is the MSB of the
first output byte). The writer zero-pads the final partial byte on close.
"""

import io
from typing import BinaryIO, Optional

from bitarray import bitarray
from bitarray.util import ba2int, int2ba

CHUNK_SIZE = 64 * 1024  # bytes moved per read()/write() on the underlying file


class BitWriter:
    def __init__(self, outfile: BinaryIO, chunk_size: int = CHUNK_SIZE):
        self.outfile = outfile
        self.chunk_size = chunk_size
        self.bits_written = 0
        self._buf = bitarray(endian="big")
        self._closed = False

    @property
    def bytes_written(self) -> int:
        return (self.bits_written + 7) // 8

    def write_bits(self, n: int, value: int) -> None:
        """Write the low n bits of value, most significant first."""
        if n <= 0:
            return
        if n == 1:
            self._buf.append(value & 1)
        else:
            self._buf.extend(int2ba(value & ((1 << n) - 1), length=n, endian="big"))
        self.bits_written += n
        self._maybe_drain()

    def write_code(self, code: bitarray) -> None:
        """Append a whole code (possibly empty)."""
        self._buf.extend(code)
        self.bits_written += len(code)
        self._maybe_drain()

    def _maybe_drain(self) -> None:
        if len(self._buf) >= self.chunk_size * 8:
            self._drain()

    def _drain(self) -> None:
        # only whole bytes leave the buffer; the partial tail waits for more bits
        whole = len(self._buf) - len(self._buf) % 8
        if whole:
            self.outfile.write(self._buf[:whole].tobytes())
            del self._buf[:whole]

    def flush(self) -> None:
        self._drain()
        self.outfile.flush()

    def close(self) -> None:
        """Pad the last byte with zeros and flush. The file itself stays open."""
        if self._closed:
            return
        if len(self._buf):
            self.outfile.write(self._buf.tobytes())
            del self._buf[:]
        self.outfile.flush()
        self._closed = True


class BitReader:
    def __init__(self, infile: BinaryIO, chunk_size: int = CHUNK_SIZE):
        self.infile = infile
        self.chunk_size = chunk_size
        self.bits_read = 0
        self._buf = bitarray(endian="big")
        self._pos = 0
        self._origin = infile.tell() if infile.seekable() else None

    def _fill(self, n: int) -> bool:
        while len(self._buf) - self._pos < n:
            chunk = self.infile.read(self.chunk_size)
            if not chunk:
                return False
            del self._buf[:self._pos]
            self._pos = 0
            self._buf.frombytes(chunk)
        return True

    def read_bits(self, n: int) -> Optional[int]:
        """
        Read n bits as an unsigned int.
        Returns None once fewer than n bits are left in the source.
        """
        if not self._fill(n):
            return None
        if n == 1:
            value = self._buf[self._pos]
        else:
            value = ba2int(self._buf[self._pos:self._pos + n])
        self._pos += n
        self.bits_read += n
        return value

    def reset(self) -> None:
        if self._origin is None:
            raise io.UnsupportedOperation("cannot reset a non-seekable bit source")
        self.infile.seek(self._origin)
        self._buf = bitarray(endian="big")
        self._pos = 0
        self.bits_read = 0
