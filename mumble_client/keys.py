from __future__ import annotations
import datetime
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID


@dataclass
class ClientCertificate:
    """PEM encoded certificate and private key; voice servers use the certificate as user identity."""
    certificate_pem: bytes
    private_key_pem: bytes

    def fingerprint(self) -> str:
        return certificate_fingerprint(self.certificate_pem)

    @classmethod
    def generate(
        cls,
        common_name: str,
        key_size: int = 2048,
        days: int = 365 * 20,
        *,
        alt_names: Optional[list] = None,
    ) -> "ClientCertificate":
        key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
        name = x509.Name([x509.NameAttribute(NameOID.COMMON_NAME, common_name)])
        now = datetime.datetime.now(datetime.timezone.utc)
        builder = (
            x509.CertificateBuilder()
            .subject_name(name)
            .issuer_name(name)
            .public_key(key.public_key())
            .serial_number(x509.random_serial_number())
            .not_valid_before(now - datetime.timedelta(minutes=5))
            .not_valid_after(now + datetime.timedelta(days=days))
        )
        if alt_names:
            builder = builder.add_extension(x509.SubjectAlternativeName(alt_names), critical=False)
        cert = builder.sign(key, hashes.SHA256())
        private_key_pem = key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
        return cls(
            certificate_pem=cert.public_bytes(serialization.Encoding.PEM),
            private_key_pem=private_key_pem,
        )


def certificate_fingerprint(certificate_pem: bytes) -> str:
    """SHA-1 hex digest of the DER certificate, the hash servers record for registered users."""
    cert = x509.load_pem_x509_certificate(certificate_pem)
    return cert.fingerprint(hashes.SHA1()).hex()


def save_certificate(path: Path, cert: ClientCertificate) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    (path.with_suffix(".pem")).write_bytes(cert.certificate_pem)
    key_path = path.with_suffix(".key")
    key_path.write_bytes(cert.private_key_pem)
    key_path.chmod(0o600)


def load_certificate(path: Path) -> Optional[ClientCertificate]:
    cert = path.with_suffix(".pem")
    key = path.with_suffix(".key")
    if not (cert.exists() and key.exists()):
        return None
    return ClientCertificate(certificate_pem=cert.read_bytes(), private_key_pem=key.read_bytes())
