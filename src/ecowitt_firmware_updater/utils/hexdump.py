"""Hex dump formatting for debug logging of raw gateway traffic."""


def hexdump(data: bytes, width: int = 16) -> str:
    """
    Format bytes as an offset-prefixed hex dump.

    Offsets are decimal and zero-padded to the width of len(data); an
    extra space separates each group of eight bytes.

    Example:
        >>> print(hexdump(bytes.fromhex("ffff50035350")))
          0:  ff ff 50 03 53 50
    """
    digits = len(str(len(data)))
    lines = []
    for offset in range(0, len(data), width):
        row = data[offset:offset + width]
        groups = [
            " ".join(f"{b:02x}" for b in row[i:i + 8])
            for i in range(0, len(row), 8)
        ]
        lines.append(f"  {offset:0{digits}d}:  " + "  ".join(groups))
    return "\n".join(lines)
