# ========================= midi/stream.py =========================
from errors import FormatError

class ByteStream:
    """Sequential reader over an immutable byte buffer.

    ``read`` past the end returns a short (possibly empty) slice; fixed-width
    integer reads past the end raise FormatError.
    """
    def __init__(self, data: bytes):
        self.data = bytes(data)
        self.position = 0

    def read(self, length: int) -> bytes:
        result = self.data[self.position:self.position + length]
        self.position += length
        return result

    def _read_int(self, width: int) -> int:
        end = self.position + width
        if end > len(self.data):
            raise FormatError(
                f"unexpected end of data: need {width} bytes at offset {self.position}, "
                f"have {max(0, len(self.data) - self.position)}"
            )
        result = int.from_bytes(self.data[self.position:end], "big")
        self.position = end
        return result

    def read_uint32(self) -> int:
        return self._read_int(4)

    def read_uint16(self) -> int:
        return self._read_int(2)

    def read_uint8(self, signed: bool = False) -> int:
        result = self._read_int(1)
        if signed and result > 127:
            result -= 256
        return result

    def read_var_len(self) -> int:
        # 7 bits per byte, big-endian, high bit set on every byte but the last
        result = 0
        while True:
            b = self.read_uint8()
            result = (result << 7) | (b & 0x7F)
            if not (b & 0x80):
                return result

    def eof(self) -> bool:
        return self.position >= len(self.data)
