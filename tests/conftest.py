"""Shared test fixtures for the KTP OCR test suite."""

import io
from pathlib import Path

import pytest
from PIL import Image

SAMPLE_KTP_TEXT = """PROVINSI DKI JAKARTA
KOTA JAKARTA SELATAN
NIK : 3171234567890001
Nama : BUDI SANTOSO
Tempat/Tgl Lahir : JAKARTA, 17-08-1985
Jenis Kelamin : LAKI-LAKI Gol Darah : B
Alamat : JL. MELATI NO. 5
RTRW : 003/006
Kel/Desa : KEBAYORAN
Kecamatan : KEBAYORAN BARU
Agama : ISLAM
Status Perkawinan : KAWIN
Pekerjaan : KARYAWAN SWASTA
Kewarganegaraan : WNI
Berlaku Hingga : SEUMUR HIDUP
"""


@pytest.fixture
def ktp_text() -> str:
    """Return OCR output of a complete KTP card."""
    return SAMPLE_KTP_TEXT


@pytest.fixture
def png_bytes() -> bytes:
    """Create a small encoded PNG image."""
    image = Image.new("RGB", (120, 80), color=(255, 255, 255))
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture
def png_file(tmp_path: Path, png_bytes: bytes) -> Path:
    """Write the test PNG to a temporary file."""
    path = tmp_path / "ktp.png"
    path.write_bytes(png_bytes)
    return path


@pytest.fixture
def project_root() -> Path:
    """Return the project root directory."""
    return Path(__file__).parent.parent
