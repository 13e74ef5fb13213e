"""Read the CPU architectures a Mach-O binary was built for.

macOS binaries can be thin (one architecture) or universal ("fat"). dtrace
and its symbol libraries work best when tracer, target and host agree, so
before tracing on macOS we look at the target's header and hint the
architecture ``arch`` should run dtrace as.
"""

import platform
import struct
from typing import List, Optional, Tuple

MH_MAGIC = 0xFEEDFACE
MH_MAGIC_64 = 0xFEEDFACF
MH_CIGAM = 0xCEFAEDFE
MH_CIGAM_64 = 0xCFFAEDFE
FAT_MAGIC = 0xCAFEBABE
FAT_MAGIC_64 = 0xCAFEBABF

CPU_ARCH_ABI64 = 0x01000000
CPU_TYPE_X86 = 7
CPU_TYPE_ARM = 12
CPU_TYPE_POWERPC = 18

CPU_SUBTYPE_MASK = 0x00FFFFFF
CPU_SUBTYPE_ARM64E = 2
CPU_SUBTYPE_X86_64_H = 8

# Java class files share the fat magic; no real universal binary has this many slices
MAX_FAT_ARCHS = 32


def arch_name(cputype: int, cpusubtype: int) -> str:
    subtype = cpusubtype & CPU_SUBTYPE_MASK
    if cputype == CPU_TYPE_X86 | CPU_ARCH_ABI64:
        return "x86_64h" if subtype == CPU_SUBTYPE_X86_64_H else "x86_64"
    if cputype == CPU_TYPE_X86:
        return "i386"
    if cputype == CPU_TYPE_ARM | CPU_ARCH_ABI64:
        return "arm64e" if subtype == CPU_SUBTYPE_ARM64E else "arm64"
    if cputype == CPU_TYPE_ARM:
        return "arm"
    if cputype == CPU_TYPE_POWERPC | CPU_ARCH_ABI64:
        return "ppc64"
    if cputype == CPU_TYPE_POWERPC:
        return "ppc"
    raise ValueError(f"invalid cpu type code {cputype}:{cpusubtype}")


def parse_architectures(data: bytes) -> List[str]:
    if len(data) < 8:
        raise ValueError("could not parse mach-o file")

    magic = struct.unpack(">I", data[:4])[0]
    if magic in (MH_MAGIC, MH_MAGIC_64):
        cputype, cpusubtype = struct.unpack(">ii", data[4:12])
        return [arch_name(cputype, cpusubtype)]
    if magic in (MH_CIGAM, MH_CIGAM_64):
        cputype, cpusubtype = struct.unpack("<ii", data[4:12])
        return [arch_name(cputype, cpusubtype)]
    if magic in (FAT_MAGIC, FAT_MAGIC_64):
        nfat = struct.unpack(">I", data[4:8])[0]
        if nfat == 0 or nfat > MAX_FAT_ARCHS:
            raise ValueError("could not parse mach-o file")
        entry_size = 20 if magic == FAT_MAGIC else 32
        archs = []
        offset = 8
        for _ in range(nfat):
            entry = data[offset:offset + 8]
            if len(entry) < 8:
                raise ValueError("truncated universal binary header")
            cputype, cpusubtype = struct.unpack(">ii", entry)
            archs.append(arch_name(cputype, cpusubtype))
            offset += entry_size
        return archs
    raise ValueError("could not parse mach-o file")


def read_architectures(binary: str) -> List[str]:
    with open(binary, "rb") as f:
        # Largest header we need: fat header plus MAX_FAT_ARCHS 64-bit entries
        return parse_architectures(f.read(8 + 32 * MAX_FAT_ARCHS))


def arch_hint_for_binary(binary: str, native_arch: Optional[str] = None) -> Tuple[Optional[str], Optional[str]]:
    """Return ``(hint, warning)`` for tracing ``binary``.

    1. If the native architecture is among the binary's, hint it.
    2. Otherwise, if the binary has a single architecture, hint that one.
    3. Otherwise hint nothing.
    A warning is returned whenever tracing may fail; it never stops the run.
    """
    try:
        archs = read_architectures(binary)
    except (OSError, ValueError) as e:
        return None, f"{binary}: hinting subcommand architecture preference failed: {e}"

    native_arch = native_arch or platform.machine()
    if native_arch in archs:
        return native_arch, None

    warning = (
        f"binary architecture {','.join(archs)} does not match system "
        f"architecture {native_arch}; tracing may fail"
    )
    if len(archs) == 1:
        return archs[0], warning
    return None, (
        f"{warning}; multiple architectures found: {','.join(archs)}; "
        "probably a universal binary, not hinting arch"
    )


def parse_arch_preference(value: str) -> List[str]:
    """Architectures from an ``ARCHPREFERENCE`` value like ``x86_64,arm64``.

    Specifiers are separated by semicolons; those of the form
    ``name:arch,arch`` apply to one program only and are skipped.
    """
    archs = []
    for specifier in value.split(";"):
        specifier = specifier.strip()
        if not specifier or ":" in specifier:
            continue
        archs.extend(a.strip() for a in specifier.split(",") if a.strip())
    return archs
