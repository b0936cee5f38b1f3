"""Baseline JPEG/JFIF decoding.

Supports 8-bit baseline (sequential Huffman) images with one or three
components, chroma subsampling, restart intervals and bilinear upsampling of
subsampled channels. Progressive images are rejected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Sequence

from .core import ByteReader, DecodedImage, ImageError

_FAST_BITS = 9
_MARKER_NONE = 0xFF
_NO_RESTART = 0x7FFFFFFF

# Position in the row-major 8x8 block of each zigzag index; the tail lets
# corrupt input index past the end without failing.
_DEZIGZAG = (
    0, 1, 8, 16, 9, 2, 3, 10,
    17, 24, 32, 25, 18, 11, 4, 5,
    12, 19, 26, 33, 40, 48, 41, 34,
    27, 20, 13, 6, 7, 14, 21, 28,
    35, 42, 49, 56, 57, 50, 43, 36,
    29, 22, 15, 23, 30, 37, 44, 51,
    58, 59, 52, 45, 38, 31, 39, 46,
    53, 60, 61, 54, 47, 55, 62, 63,
    63, 63, 63, 63, 63, 63, 63, 63,
    63, 63, 63, 63, 63, 63, 63,
)


def _f2f(x: float) -> int:
    return int(x * 4096 + 0.5)


def _float2fixed(x: float) -> int:
    return int(x * 65536 + 0.5)


_C0541 = _f2f(0.5411961)
_CM1847 = _f2f(-1.847759065)
_C0765 = _f2f(0.765366865)
_C1175 = _f2f(1.175875602)
_C0298 = _f2f(0.298631336)
_C2053 = _f2f(2.053119869)
_C3072 = _f2f(3.072711026)
_C1501 = _f2f(1.501321110)
_CM0899 = _f2f(-0.899976223)
_CM2562 = _f2f(-2.562915447)
_CM1961 = _f2f(-1.961570560)
_CM0390 = _f2f(-0.390180644)

_CR_TO_R = _float2fixed(1.40200)
_CR_TO_G = _float2fixed(0.71414)
_CB_TO_G = _float2fixed(0.34414)
_CB_TO_B = _float2fixed(1.77200)


def _corrupt(reason: str) -> ImageError:
    return ImageError("Corrupt JPEG", reason)


def _int16(value: int) -> int:
    return ((value + 0x8000) & 0xFFFF) - 0x8000


def _clamp_sample(x: int) -> int:
    x += 128
    if x < 0:
        return 0
    if x > 255:
        return 255
    return x


def _clamp_byte(x: int) -> int:
    if x < 0:
        return 0
    if x > 255:
        return 255
    return x


class _Huffman:
    """JPEG Huffman table with a fast lookup for codes of up to nine bits."""

    __slots__ = ("fast", "sizes", "values", "maxcode", "delta")

    def __init__(self, counts: Sequence[int], values: bytes) -> None:
        sizes: list[int] = []
        for length, count in enumerate(counts, start=1):
            sizes.extend([length] * count)
        if len(sizes) > 256:
            raise _corrupt("bad code lengths")
        sizes.append(0)

        codes: list[int] = []
        maxcode = [0] * 18
        delta = [0] * 17
        code = 0
        k = 0
        for j in range(1, 17):
            delta[j] = k - code
            if sizes[k] == j:
                while sizes[k] == j:
                    codes.append(code)
                    code += 1
                    k += 1
                if code - 1 >= (1 << j):
                    raise _corrupt("bad code lengths")
            maxcode[j] = code << (16 - j)
            code <<= 1
        maxcode[17] = 0xFFFFFFFF

        fast = [255] * (1 << _FAST_BITS)
        for index, (size, symbol_code) in enumerate(zip(sizes, codes)):
            if size <= _FAST_BITS:
                span = 1 << (_FAST_BITS - size)
                start = symbol_code << (_FAST_BITS - size)
                fast[start:start + span] = [index] * span

        self.fast = fast
        self.sizes = sizes
        self.values = bytes(values)
        self.maxcode = maxcode
        self.delta = delta


@dataclass
class _Component:
    ident: int
    h: int
    v: int
    tq: int
    hd: int = 0
    ha: int = 0
    dc_pred: int = 0
    x: int = 0
    y: int = 0
    w2: int = 0
    h2: int = 0
    data: bytearray = field(default_factory=bytearray)


def _idct_1d(s0, s1, s2, s3, s4, s5, s6, s7):
    p2 = s2
    p3 = s6
    p1 = (p2 + p3) * _C0541
    t2 = p1 + p3 * _CM1847
    t3 = p1 + p2 * _C0765
    p2 = s0
    p3 = s4
    t0 = (p2 + p3) * 4096
    t1 = (p2 - p3) * 4096
    x0 = t0 + t3
    x3 = t0 - t3
    x1 = t1 + t2
    x2 = t1 - t2
    t0 = s7
    t1 = s5
    t2 = s3
    t3 = s1
    p3 = t0 + t2
    p4 = t1 + t3
    p1 = t0 + t3
    p2 = t1 + t2
    p5 = (p3 + p4) * _C1175
    t0 = t0 * _C0298
    t1 = t1 * _C2053
    t2 = t2 * _C3072
    t3 = t3 * _C1501
    p1 = p5 + p1 * _CM0899
    p2 = p5 + p2 * _CM2562
    p3 = p3 * _CM1961
    p4 = p4 * _CM0390
    t3 += p1 + p4
    t2 += p2 + p3
    t1 += p2 + p4
    t0 += p1 + p3
    return x0, x1, x2, x3, t0, t1, t2, t3


def _idct_block(out: bytearray, offset: int, stride: int,
                coeffs: Sequence[int], dequant: Sequence[int]) -> None:
    """Dequantize and inverse-transform one block into ``out``."""
    val = [0] * 64
    for i in range(8):
        column = coeffs[i::8]
        if not any(column[1:]):
            dcterm = (coeffs[i] * dequant[i]) << 2
            val[i::8] = [dcterm] * 8
            continue
        x0, x1, x2, x3, t0, t1, t2, t3 = _idct_1d(
            *(coeffs[i + 8 * r] * dequant[i + 8 * r] for r in range(8))
        )
        x0 += 512
        x1 += 512
        x2 += 512
        x3 += 512
        val[i] = (x0 + t3) >> 10
        val[56 + i] = (x0 - t3) >> 10
        val[8 + i] = (x1 + t2) >> 10
        val[48 + i] = (x1 - t2) >> 10
        val[16 + i] = (x2 + t1) >> 10
        val[40 + i] = (x2 - t1) >> 10
        val[24 + i] = (x3 + t0) >> 10
        val[32 + i] = (x3 - t0) >> 10

    for row in range(8):
        x0, x1, x2, x3, t0, t1, t2, t3 = _idct_1d(*val[row * 8:row * 8 + 8])
        x0 += 65536
        x1 += 65536
        x2 += 65536
        x3 += 65536
        start = offset + row * stride
        out[start:start + 8] = bytes((
            _clamp_sample((x0 + t3) >> 17),
            _clamp_sample((x1 + t2) >> 17),
            _clamp_sample((x2 + t1) >> 17),
            _clamp_sample((x3 + t0) >> 17),
            _clamp_sample((x3 - t0) >> 17),
            _clamp_sample((x2 - t1) >> 17),
            _clamp_sample((x1 - t2) >> 17),
            _clamp_sample((x0 - t3) >> 17),
        ))


class _Decoder:
    """State for decoding one JPEG stream."""

    def __init__(self, data: bytes) -> None:
        self.reader = ByteReader(data)
        self.huff_dc: list[_Huffman | None] = [None] * 4
        self.huff_ac: list[_Huffman | None] = [None] * 4
        self.dequant: list[list[int] | None] = [None] * 4
        self.components: list[_Component] = []
        self.order: list[int] = []
        self.code_buffer = 0
        self.code_bits = 0
        self.marker = _MARKER_NONE
        self.nomore = False
        self.restart_interval = 0
        self.todo = _NO_RESTART
        self.img_x = 0
        self.img_y = 0
        self.h_max = 1
        self.v_max = 1
        self.mcu_x = 0
        self.mcu_y = 0

    @property
    def img_n(self) -> int:
        return len(self.components)

    # -- entropy-coded bit stream -------------------------------------------

    def _grow(self) -> None:
        while True:
            b = 0 if self.nomore else self.reader.read8()
            if b == 0xFF:
                c = self.reader.read8()
                if c != 0:
                    self.marker = c
                    self.nomore = True
                    return
            self.code_buffer = ((self.code_buffer << 8) | b) & 0xFFFFFFFF
            self.code_bits += 8
            if self.code_bits > 24:
                return

    def _peek(self, n: int) -> int:
        shift = self.code_bits - n
        if shift >= 0:
            return (self.code_buffer >> shift) & ((1 << n) - 1)
        return (self.code_buffer << -shift) & ((1 << n) - 1)

    def _decode(self, table: _Huffman) -> int:
        if self.code_bits < 16:
            self._grow()
        k = table.fast[self._peek(_FAST_BITS)]
        if k < 255:
            size = table.sizes[k]
            if size > self.code_bits:
                return -1
            self.code_bits -= size
            return table.values[k]

        temp = self._peek(16)
        k = _FAST_BITS + 1
        while temp >= table.maxcode[k]:
            k += 1
        if k == 17:
            self.code_bits -= 16
            return -1
        if k > self.code_bits:
            return -1
        index = self._peek(k) + table.delta[k]
        self.code_bits -= k
        if not 0 <= index < len(table.values):
            return -1
        return table.values[index]

    def _extend_receive(self, n: int) -> int:
        if n > 16:
            raise _corrupt("bad huffman code")
        if self.code_bits < n:
            self._grow()
        k = self._peek(n)
        self.code_bits -= n
        if k < (1 << (n - 1)):
            return (-1 << n) + k + 1
        return k

    def _decode_block(self, comp: _Component) -> list[int]:
        hdc = self.huff_dc[comp.hd]
        hac = self.huff_ac[comp.ha]
        t = self._decode(hdc)
        if t < 0:
            raise _corrupt("bad huffman code")
        coeffs = [0] * 64
        diff = self._extend_receive(t) if t else 0
        dc = comp.dc_pred + diff
        comp.dc_pred = dc
        coeffs[0] = _int16(dc)

        k = 1
        while k < 64:
            rs = self._decode(hac)
            if rs < 0:
                raise _corrupt("bad huffman code")
            s = rs & 15
            r = rs >> 4
            if s == 0:
                if rs != 0xF0:
                    break
                k += 16
            else:
                k += r
                coeffs[_DEZIGZAG[k]] = _int16(self._extend_receive(s))
                k += 1
        return coeffs

    # -- markers ---------------------------------------------------------------

    def _get_marker(self) -> int:
        if self.marker != _MARKER_NONE:
            value = self.marker
            self.marker = _MARKER_NONE
            return value
        x = self.reader.read8()
        if x != 0xFF:
            return _MARKER_NONE
        while x == 0xFF:
            x = self.reader.read8()
        return x

    def _reset(self) -> None:
        self.code_bits = 0
        self.code_buffer = 0
        self.nomore = False
        for comp in self.components:
            comp.dc_pred = 0
        self.marker = _MARKER_NONE
        self.todo = self.restart_interval or _NO_RESTART

    def _process_marker(self, m: int) -> None:
        reader = self.reader
        if m == _MARKER_NONE:
            raise _corrupt("expected marker")
        if m == 0xC2:
            raise ImageError("JPEG format not supported (progressive)", "progressive jpeg")
        if m == 0xDD:
            if reader.read16be() != 4:
                raise _corrupt("bad DRI len")
            self.restart_interval = reader.read16be()
            return
        if m == 0xDB:
            remaining = reader.read16be() - 2
            while remaining > 0:
                q = reader.read8()
                if q >> 4 != 0:
                    raise _corrupt("bad DQT type")
                t = q & 15
                if t > 3:
                    raise _corrupt("bad DQT table")
                table = [0] * 64
                for i in range(64):
                    table[_DEZIGZAG[i]] = reader.read8()
                self.dequant[t] = table
                remaining -= 65
            if remaining != 0:
                raise _corrupt("bad DQT len")
            return
        if m == 0xC4:
            remaining = reader.read16be() - 2
            while remaining > 0:
                q = reader.read8()
                tc = q >> 4
                th = q & 15
                if tc > 1 or th > 3:
                    raise _corrupt("bad DHT header")
                counts = [reader.read8() for _ in range(16)]
                total = sum(counts)
                remaining -= 17
                values = reader.read(total)
                table = _Huffman(counts, values)
                if tc == 0:
                    self.huff_dc[th] = table
                else:
                    self.huff_ac[th] = table
                remaining -= total
            if remaining != 0:
                raise _corrupt("bad DHT len")
            return
        if 0xE0 <= m <= 0xEF or m == 0xFE:
            reader.skip(reader.read16be() - 2)
            return
        raise _corrupt("unknown marker")

    def _process_scan_header(self) -> None:
        reader = self.reader
        length = reader.read16be()
        scan_n = reader.read8()
        if scan_n < 1 or scan_n > 4 or scan_n > self.img_n:
            raise _corrupt("bad SOS component count")
        if length != 6 + 2 * scan_n:
            raise _corrupt("bad SOS len")
        order = []
        for _ in range(scan_n):
            ident = reader.read8()
            q = reader.read8()
            which = next(
                (i for i, comp in enumerate(self.components) if comp.ident == ident), None
            )
            if which is None:
                raise _corrupt("bad component ID")
            comp = self.components[which]
            comp.hd = q >> 4
            if comp.hd > 3:
                raise _corrupt("bad DC huff")
            comp.ha = q & 15
            if comp.ha > 3:
                raise _corrupt("bad AC huff")
            order.append(which)
        if reader.read8() != 0:
            raise _corrupt("bad SOS")
        reader.read8()
        if reader.read8() != 0:
            raise _corrupt("bad SOS")
        self.order = order

    def _process_frame_header(self) -> None:
        reader = self.reader
        length = reader.read16be()
        if length < 11:
            raise _corrupt("bad SOF len")
        if reader.read8() != 8:
            raise ImageError("JPEG format not supported: 8-bit only", "only 8-bit")
        self.img_y = reader.read16be()
        if self.img_y == 0:
            raise ImageError("JPEG format not supported: delayed height", "no header height")
        self.img_x = reader.read16be()
        if self.img_x == 0:
            raise _corrupt("0 width")
        count = reader.read8()
        if count not in (1, 3):
            raise _corrupt("bad component count")
        if length != 8 + 3 * count:
            raise _corrupt("bad SOF len")

        components = []
        for i in range(count):
            ident = reader.read8()
            if ident != i + 1 and ident != i:
                raise _corrupt("bad component ID")
            q = reader.read8()
            h = q >> 4
            if not 1 <= h <= 4:
                raise _corrupt("bad H")
            v = q & 15
            if not 1 <= v <= 4:
                raise _corrupt("bad V")
            tq = reader.read8()
            if tq > 3:
                raise _corrupt("bad TQ")
            components.append(_Component(ident, h, v, tq))
        self.components = components

        if (1 << 30) // self.img_x // count < self.img_y:
            raise ImageError("Image too large to decode", "too large")

        self.h_max = max(comp.h for comp in components)
        self.v_max = max(comp.v for comp in components)
        mcu_w = self.h_max * 8
        mcu_h = self.v_max * 8
        self.mcu_x = (self.img_x + mcu_w - 1) // mcu_w
        self.mcu_y = (self.img_y + mcu_h - 1) // mcu_h
        for comp in components:
            comp.x = (self.img_x * comp.h + self.h_max - 1) // self.h_max
            comp.y = (self.img_y * comp.v + self.v_max - 1) // self.v_max
            comp.w2 = self.mcu_x * comp.h * 8
            comp.h2 = self.mcu_y * comp.v * 8
            comp.data = bytearray(comp.w2 * comp.h2)

    def decode_header(self) -> None:
        self.marker = _MARKER_NONE
        if self._get_marker() != 0xD8:
            raise _corrupt("no SOI")
        m = self._get_marker()
        while m not in (0xC0, 0xC1):
            self._process_marker(m)
            m = self._get_marker()
            while m == _MARKER_NONE:
                if self.reader.at_eof():
                    raise _corrupt("no SOF")
                m = self._get_marker()
        self._process_frame_header()

    # -- scans -----------------------------------------------------------------

    def _restart_due(self) -> bool:
        """Count down one MCU; True when decoding of this scan should stop."""
        self.todo -= 1
        if self.todo <= 0:
            if self.code_bits < 24:
                self._grow()
            if not 0xD0 <= self.marker <= 0xD7:
                return True
            self._reset()
        return False

    def _block(self, comp: _Component, offset: int) -> None:
        coeffs = self._decode_block(comp)
        _idct_block(comp.data, offset, comp.w2, coeffs, self.dequant[comp.tq])

    def _parse_entropy_coded_data(self) -> None:
        for index in self.order:
            comp = self.components[index]
            if self.huff_dc[comp.hd] is None or self.huff_ac[comp.ha] is None:
                raise _corrupt("missing huffman table")
            if self.dequant[comp.tq] is None:
                raise _corrupt("missing quantization table")
        self._reset()
        if len(self.order) == 1:
            comp = self.components[self.order[0]]
            blocks_w = (comp.x + 7) >> 3
            blocks_h = (comp.y + 7) >> 3
            for j in range(blocks_h):
                for i in range(blocks_w):
                    self._block(comp, comp.w2 * j * 8 + i * 8)
                    if self._restart_due():
                        return
            return
        for j in range(self.mcu_y):
            for i in range(self.mcu_x):
                for index in self.order:
                    comp = self.components[index]
                    for y in range(comp.v):
                        for x in range(comp.h):
                            x2 = (i * comp.h + x) * 8
                            y2 = (j * comp.v + y) * 8
                            self._block(comp, comp.w2 * y2 + x2)
                if self._restart_due():
                    return

    def decode_image(self) -> None:
        self.restart_interval = 0
        self.decode_header()
        m = self._get_marker()
        while m != 0xD9:
            if m == 0xDA:
                self._process_scan_header()
                self._parse_entropy_coded_data()
            else:
                self._process_marker(m)
            m = self._get_marker()


# -- upsampling ------------------------------------------------------------------

_Resample = Callable[[bytes, bytes, int, int], Sequence[int]]


def _resample_row_1(near: bytes, far: bytes, w: int, hs: int) -> Sequence[int]:
    """Full-resolution component: the first ``w`` samples of the near row."""
    return bytes(near[:w])


def _resample_row_v_2(near: bytes, far: bytes, w: int, hs: int) -> Sequence[int]:
    return [(3 * a + b + 2) >> 2 for a, b in zip(near[:w], far[:w])]


def _resample_row_h_2(near: bytes, far: bytes, w: int, hs: int) -> Sequence[int]:
    if w == 1:
        return [near[0], near[0]]
    out = [0] * (2 * w)
    out[0] = near[0]
    out[1] = (near[0] * 3 + near[1] + 2) >> 2
    for i in range(1, w - 1):
        n = 3 * near[i] + 2
        out[2 * i] = (n + near[i - 1]) >> 2
        out[2 * i + 1] = (n + near[i + 1]) >> 2
    last = w - 1
    out[2 * last] = (near[w - 2] * 3 + near[w - 1] + 2) >> 2
    out[2 * last + 1] = near[w - 1]
    return out


def _resample_row_hv_2(near: bytes, far: bytes, w: int, hs: int) -> Sequence[int]:
    if w == 1:
        value = (3 * near[0] + far[0] + 2) >> 2
        return [value, value]
    out = [0] * (2 * w)
    t1 = 3 * near[0] + far[0]
    out[0] = (t1 + 2) >> 2
    for i in range(1, w):
        t0 = t1
        t1 = 3 * near[i] + far[i]
        out[2 * i - 1] = (3 * t0 + t1 + 8) >> 4
        out[2 * i] = (3 * t1 + t0 + 8) >> 4
    out[2 * w - 1] = (t1 + 2) >> 2
    return out


def _resample_row_generic(near: bytes, far: bytes, w: int, hs: int) -> Sequence[int]:
    return [value for value in near[:w] for _ in range(hs)]


@dataclass
class _Resampler:
    resample: _Resample
    hs: int
    vs: int
    w_lores: int
    ystep: int
    ypos: int = 0
    line0: int = 0
    line1: int = 0


def _pick_resampler(hs: int, vs: int) -> _Resample:
    return {
        (1, 1): _resample_row_1,
        (1, 2): _resample_row_v_2,
        (2, 1): _resample_row_h_2,
        (2, 2): _resample_row_hv_2,
    }.get((hs, vs), _resample_row_generic)


def _component_row(comp: _Component, offset: int, width: int) -> bytes:
    chunk = bytes(comp.data[offset:offset + width])
    return chunk + bytes(width - len(chunk))


def _ycbcr_row(y: bytes, cb: Sequence[int], cr: Sequence[int], width: int, n: int) -> bytearray:
    reds, greens, blues = [], [], []
    for i in range(width):
        y_fixed = (y[i] << 16) + 32768
        crv = cr[i] - 128
        cbv = cb[i] - 128
        reds.append(_clamp_byte((y_fixed + crv * _CR_TO_R) >> 16))
        greens.append(_clamp_byte((y_fixed - crv * _CR_TO_G - cbv * _CB_TO_G) >> 16))
        blues.append(_clamp_byte((y_fixed + cbv * _CB_TO_B) >> 16))
    row = bytearray(width * n)
    row[0::n] = bytes(reds)
    row[1::n] = bytes(greens)
    row[2::n] = bytes(blues)
    if n == 4:
        row[3::4] = b"\xff" * width
    return row


def _assemble(dec: _Decoder, n: int) -> bytes:
    width = dec.img_x
    decode_n = 1 if dec.img_n == 3 and n < 3 else dec.img_n
    comps = dec.components[:decode_n]
    resamplers = []
    for comp in comps:
        hs = dec.h_max // comp.h
        vs = dec.v_max // comp.v
        resamplers.append(_Resampler(
            resample=_pick_resampler(hs, vs),
            hs=hs,
            vs=vs,
            w_lores=(width + hs - 1) // hs,
            ystep=vs >> 1,
        ))

    out = bytearray()
    for _ in range(dec.img_y):
        rows = []
        for comp, r in zip(comps, resamplers):
            y_bot = r.ystep >= (r.vs >> 1)
            near = r.line1 if y_bot else r.line0
            far = r.line0 if y_bot else r.line1
            rows.append(r.resample(
                _component_row(comp, near, r.w_lores),
                _component_row(comp, far, r.w_lores),
                r.w_lores,
                r.hs,
            ))
            r.ystep += 1
            if r.ystep >= r.vs:
                r.ystep = 0
                r.line0 = r.line1
                r.ypos += 1
                if r.ypos < comp.y:
                    r.line1 += comp.w2
        luma = bytes(rows[0][:width])
        if n >= 3:
            if dec.img_n == 3:
                out += _ycbcr_row(luma, rows[1], rows[2], width, n)
            else:
                row = bytearray(width * n)
                row[0::n] = luma
                row[1::n] = luma
                row[2::n] = luma
                if n == 4:
                    row[3::4] = b"\xff" * width
                out += row
        elif n == 1:
            out += luma
        else:
            row = bytearray(width * 2)
            row[0::2] = luma
            row[1::2] = b"\xff" * width
            out += row
    return bytes(out)


def is_jpeg(data: bytes) -> bool:
    """Return True if ``data`` starts with a JPEG start-of-image marker."""
    return _Decoder(data)._get_marker() == 0xD8


def load_jpeg(data: bytes, req_comp: int = 0) -> DecodedImage:
    """Decode a baseline JPEG.

    ``req_comp`` of 0 keeps the file's channel count; 1 to 4 force that many
    interleaved components in the result.
    """
    if not 0 <= req_comp <= 4:
        raise ImageError("Internal error", "bad req_comp")
    dec = _Decoder(data)
    dec.decode_image()
    n = req_comp or dec.img_n
    pixels = _assemble(dec, n)
    return DecodedImage(
        width=dec.img_x,
        height=dec.img_y,
        channels=dec.img_n,
        components=n,
        data=pixels,
    )