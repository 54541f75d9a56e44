"""Trust-store loading and TLS context construction for cluster connections."""

from __future__ import annotations

import logging
import ssl
from dataclasses import dataclass
from pathlib import Path

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from .config import TLSConfig
from .errors import SecurityConfigError

LOG = logging.getLogger(__name__)

_PROTOCOL_MINIMUMS: dict[str, ssl.TLSVersion | None] = {
    "TLS": None,
    "TLSV1.2": ssl.TLSVersion.TLSv1_2,
    "TLSV1.3": ssl.TLSVersion.TLSv1_3,
}


@dataclass(frozen=True, slots=True)
class SecurityOptions:
    """TLS context plus the cipher suites it was restricted to."""

    ssl_context: ssl.SSLContext
    cipher_suites: tuple[str, ...] = ()


def build_security_options(tls: TLSConfig) -> SecurityOptions | None:
    """Build security options backed by the configured trust store.

    Returns ``None`` when no trust store path is configured; the caller is
    expected to fall back to system trust in that case. Every call reads the
    trust store afresh and produces its own context.
    """

    path = tls.trust_store_path
    if path is None:
        return None

    certificates = _load_trust_store(path, tls)
    context = _new_context(tls)
    cadata = "".join(
        cert.public_bytes(serialization.Encoding.PEM).decode("ascii") for cert in certificates
    )
    try:
        context.load_verify_locations(cadata=cadata)
    except ssl.SSLError as exc:
        raise SecurityConfigError(f"Trust store '{path}' could not be installed: {exc}", path=path) from exc
    LOG.debug(
        "Built TLS context from trust store",
        extra={"path": str(path), "certificates": len(certificates), "protocol": tls.protocol},
    )
    return SecurityOptions(ssl_context=context, cipher_suites=tls.enabled_cipher_suites)


def default_security_options(tls: TLSConfig) -> SecurityOptions:
    """System-trust options used when TLS is enabled without a trust store."""

    LOG.warning(
        "TLS enabled without a trust store; validating nodes against the system trust store",
        extra={"protocol": tls.protocol},
    )
    context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    _configure(context, tls)
    return SecurityOptions(ssl_context=context, cipher_suites=tls.enabled_cipher_suites)


def _load_trust_store(path: Path, tls: TLSConfig) -> list[x509.Certificate]:
    store_type = tls.trust_store_type
    password = tls.trust_store_password
    try:
        with open(path, "rb") as handle:
            data = handle.read()
            if store_type == "PKCS12":
                secret = password.get_secret_value().encode("utf-8") if password is not None else None
                _, certificate, additional = pkcs12.load_key_and_certificates(data, secret)
                certificates = [certificate] if certificate is not None else []
                certificates.extend(additional)
            elif store_type == "PEM":
                certificates = x509.load_pem_x509_certificates(data)
            elif store_type == "DER":
                certificates = [x509.load_der_x509_certificate(data)]
            else:
                raise SecurityConfigError(f"Unsupported trust store type '{store_type}'", path=path)
    except OSError as exc:
        raise SecurityConfigError(f"Cannot read trust store '{path}': {exc}", path=path) from exc
    except (ValueError, TypeError) as exc:
        raise SecurityConfigError(
            f"Cannot load {store_type} trust store '{path}' (malformed or wrong password): {exc}",
            path=path,
        ) from exc
    if not certificates:
        raise SecurityConfigError(f"Trust store '{path}' contains no certificates", path=path)
    return certificates


def _new_context(tls: TLSConfig) -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    _configure(context, tls)
    return context


def _configure(context: ssl.SSLContext, tls: TLSConfig) -> None:
    key = tls.protocol.strip().upper()
    if key not in _PROTOCOL_MINIMUMS:
        raise SecurityConfigError(f"Unsupported TLS protocol '{tls.protocol}'")
    minimum = _PROTOCOL_MINIMUMS[key]
    if minimum is not None:
        context.minimum_version = minimum
    context.check_hostname = tls.check_hostname
    context.verify_mode = ssl.CERT_REQUIRED
    if tls.enabled_cipher_suites:
        try:
            context.set_ciphers(":".join(tls.enabled_cipher_suites))
        except ssl.SSLError as exc:
            raise SecurityConfigError(
                f"None of the cipher suites {list(tls.enabled_cipher_suites)} are usable: {exc}"
            ) from exc


__all__ = ["SecurityOptions", "build_security_options", "default_security_options"]
