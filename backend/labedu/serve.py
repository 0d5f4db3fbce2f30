"""Process entry point: `labedu-serve` or `python -m labedu.serve`."""

import logging
import os
from typing import Dict

import uvicorn

_TRUTHY = {"1", "true", "yes", "on"}

# environment variable -> uvicorn keyword
_SSL_ENV = {
    "SSL_CERTFILE": "ssl_certfile",
    "SSL_KEYFILE": "ssl_keyfile",
    "SSL_CA_CERTS": "ssl_ca_certs",
    "SSL_KEYFILE_PASSWORD": "ssl_keyfile_password",
}


def _ssl_options() -> Dict[str, str]:
    """Only the TLS settings that are actually present in the environment."""
    return {option: os.environ[env] for env, option in _SSL_ENV.items() if os.getenv(env)}


def _configure_logging(log_level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def uvicorn_options() -> Dict[str, object]:
    log_level = os.getenv("LOG_LEVEL", "info").lower()
    return {
        "host": os.getenv("HOST", "0.0.0.0"),
        "port": int(os.getenv("PORT", "8000")),
        "reload": os.getenv("RELOAD", "false").lower() in _TRUTHY,
        "log_level": log_level,
        "proxy_headers": True,
        "forwarded_allow_ips": os.getenv("FORWARDED_ALLOW_IPS", "*"),
        **_ssl_options(),
    }


def main() -> None:
    options = uvicorn_options()
    _configure_logging(str(options["log_level"]))
    logging.getLogger(__name__).info(
        "Starting LabEdu API",
        extra={"host": options["host"], "port": options["port"], "tls": "ssl_certfile" in options},
    )
    uvicorn.run("labedu.main:app", **options)


if __name__ == "__main__":
    main()
